"""Similarity search engine over Postgres + pgvector."""
import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

import asyncpg

from pgsearch.clients.postgres import ConnectionPool
from pgsearch.config import ConnectionConfig, Settings
from pgsearch.retrieval.base import EmbeddingProvider
from pgsearch.retrieval.exceptions import ConfigurationError, ExecutionError, StoreConnectionError
from pgsearch.retrieval.models import Document, ScoredDocument
from pgsearch.retrieval.query_builder import (
    BuiltQuery,
    ColumnNames,
    SingleVectorQueryBuilder,
    TemplateQueryBuilder,
    parse_top_k,
)
from pgsearch.retrieval.retriever import Retriever, VectorStoreHandle
from pgsearch.retrieval.row_mapper import RowMapper

logger = logging.getLogger(__name__)


def _collapse(sql: str) -> str:
    return " ".join(sql.split())


class PostgresVectorStore:
    """
    Vector store running similarity searches against an existing pgvector table.

    Two query strategies are fixed at construction time: the single-vector
    builder is always present, the template builder only when a full query
    template is configured.
    """

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        pool: ConnectionPool,
        table_name: Optional[str] = None,
        where_clause: Optional[str] = None,
        full_query: Optional[str] = None,
        k: Any = None,
        distance_strategy: str = "euclidean",
        columns: ColumnNames = ColumnNames(),
        query_timeout: Optional[float] = None,
        connect_max_retries: int = 0,
        retry_delay: float = 1.0,
    ):
        """
        Initialize vector store.

        Args:
            embeddings: Embedding provider for text queries and multi-key payloads
            pool: Connection pool for the store
            table_name: Vector table (defaults to "documents")
            where_clause: Operator-authored predicate ANDed onto every single-vector search
            full_query: Operator-authored template for multi-key searches
            k: Default number of results (4 when absent or unparsable)
            distance_strategy: euclidean, cosine or inner_product
            columns: Column layout of the table
            query_timeout: Statement timeout in seconds (None waits forever)
            connect_max_retries: Retries when no connection can be obtained
            retry_delay: Base delay for exponential backoff in seconds
        """
        self.embeddings = embeddings
        self.pool = pool
        self.k = parse_top_k(k)
        self.single_builder = SingleVectorQueryBuilder(
            table_name=table_name,
            where_clause=where_clause,
            distance_strategy=distance_strategy,
            columns=columns,
        )
        self.template_builder = TemplateQueryBuilder(full_query) if full_query else None
        self.row_mapper = RowMapper(columns)
        self.query_timeout = query_timeout
        self.connect_max_retries = connect_max_retries
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(
        cls,
        embeddings: EmbeddingProvider,
        app_settings: Settings,
        pool: Optional[ConnectionPool] = None,
    ) -> "PostgresVectorStore":
        """Build a store (and its pool, unless given) from settings."""
        if pool is None:
            pool = ConnectionPool(ConnectionConfig.from_settings(app_settings))
        return cls(
            embeddings=embeddings,
            pool=pool,
            table_name=app_settings.table_name,
            where_clause=app_settings.where_clause,
            full_query=app_settings.full_query,
            k=app_settings.top_k,
            distance_strategy=app_settings.distance_strategy,
            query_timeout=app_settings.pg_query_timeout,
            connect_max_retries=app_settings.pg_connect_max_retries,
            retry_delay=app_settings.pg_retry_delay,
        )

    async def _fetch_once(self, query: BuiltQuery) -> List[Any]:
        async with self.pool.connection() as conn:
            try:
                return await conn.fetch(query.sql, *query.params, timeout=self.query_timeout)
            except asyncio.TimeoutError as e:
                raise ExecutionError(
                    f"Query exceeded the {self.query_timeout}s timeout", sql=query.sql
                ) from e
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                raise ExecutionError(f"Query failed: {e}", sql=query.sql) from e

    async def _fetch(self, query: BuiltQuery) -> List[Any]:
        """Execute on one pooled connection; only connection failures are retried."""
        logger.debug(f"Executing: {_collapse(query.sql)}")
        attempt = 0
        while True:
            try:
                return await self._fetch_once(query)
            except StoreConnectionError as e:
                if attempt >= self.connect_max_retries:
                    raise
                delay = self.retry_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"Store connection failed, retry {attempt}/{self.connect_max_retries} in {delay}s: {e}"
                )
                await asyncio.sleep(delay)

    async def search_single(
        self,
        vector: Sequence[float],
        k: Any = None,
        filter: Any = None,
    ) -> List[ScoredDocument]:
        """
        Nearest-neighbour search for one query vector.

        Args:
            vector: Query embedding
            k: Number of results (store default when None, 4 when unparsable)
            filter: Metadata containment filter ({} when absent or invalid)

        Returns:
            Scored documents in ascending distance
        """
        start = time.perf_counter()
        k = self.k if k is None else parse_top_k(k)
        rows = await self._fetch(self.single_builder.build(vector, k, filter))
        results = sorted(self.row_mapper.map_scored(rows), key=lambda result: result.distance)
        logger.info(
            f"Single-vector search returned {len(results)}/{len(rows)} rows "
            f"(k={k}) in {time.perf_counter() - start:.3f}s"
        )
        return results

    async def search_multi(self, payload: Any) -> List[ScoredDocument]:
        """
        Templated search over several embedded fields.

        Args:
            payload: {"to_embed": {...}, "direct_filters": {...}} or a flat {name: text} mapping,
                as a mapping or JSON string

        Returns:
            Documents in row order, all carrying the sentinel score

        Raises:
            ConfigurationError: If no template is configured or the payload does not resolve it
        """
        if self.template_builder is None:
            raise ConfigurationError("Multi-key search requires a full query template")
        start = time.perf_counter()
        query = await self.template_builder.build(payload, self.embeddings)
        built = time.perf_counter()
        logger.debug(f"Multi-key template resolved in {built - start:.3f}s")
        rows = await self._fetch(query)
        results = self.row_mapper.map_unscored(rows)
        logger.info(
            f"Multi-key search returned {len(results)}/{len(rows)} rows in {time.perf_counter() - start:.3f}s"
        )
        return results

    def _as_multi_payload(self, query: str) -> Optional[Dict[str, Any]]:
        if self.template_builder is None or not query.lstrip().startswith("{"):
            return None
        try:
            parsed = json.loads(query)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None

    async def similarity_search_with_score(
        self,
        query: Any,
        k: Any = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[ScoredDocument]:
        """
        Search with whatever the query shape calls for.

        A mapping (or a JSON object string when a template is configured) runs the
        multi-key path; a sequence of numbers runs the single-vector path; any other
        text is embedded and then runs the single-vector path.
        """
        if isinstance(query, Mapping):
            return await self.search_multi(query)
        if isinstance(query, str):
            payload = self._as_multi_payload(query)
            if payload is not None:
                return await self.search_multi(payload)
            vector = await self.embeddings.embed_query(query)
            return await self.search_single(vector, k, filter)
        if isinstance(query, bytes) or not hasattr(query, "__iter__"):
            raise TypeError(f"Unsupported query type: {type(query).__name__}")
        return await self.search_single(list(query), k, filter)

    async def similarity_search(
        self,
        query: Any,
        k: Any = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Document]:
        results = await self.similarity_search_with_score(query, k, filter)
        return [result.document for result in results]

    async def similarity_search_by_vector(
        self,
        vector: Sequence[float],
        k: Any = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Document]:
        results = await self.search_single(vector, k, filter)
        return [result.document for result in results]

    def as_retriever(self, k: Any = None) -> Retriever:
        return Retriever(self, self.k if k is None else k)

    def as_vector_store_handle(self, k: Any = None) -> VectorStoreHandle:
        return VectorStoreHandle(self, self.k if k is None else k)

    async def close(self) -> None:
        await self.pool.close()
