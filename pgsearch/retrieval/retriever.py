"""Top-k retriever and vector store handle over a searchable store."""
import logging
from typing import Any, Dict, List, Optional

from pgsearch.retrieval.base import Searchable
from pgsearch.retrieval.models import Document, ScoredDocument
from pgsearch.retrieval.query_builder import DEFAULT_TOP_K, parse_top_k

logger = logging.getLogger(__name__)


class Retriever:
    """
    Retriever for top-k document lookup.

    Scores are dropped and no ranking is applied beyond the store's own order.
    Callers that need distances should use the vector store handle instead.
    """

    def __init__(self, store: Searchable, k: Any = DEFAULT_TOP_K):
        """
        Initialize retriever.

        Args:
            store: Store performing the similarity search
            k: Number of documents to return (defaults to 4 when unparsable)
        """
        self.store = store
        self.k = parse_top_k(k)

    async def retrieve(
        self,
        query: Any,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Document]:
        """
        Retrieve the top-k documents for a query.

        Args:
            query: Text, embedding vector, or multi-key payload
            filter: Optional metadata containment filter

        Returns:
            At most k documents, closest first
        """
        results = await self.store.similarity_search_with_score(query, k=self.k, filter=filter)
        documents = [result.document for result in results[: self.k]]
        logger.debug(f"Retriever returned {len(documents)} documents (k={self.k})")
        return documents

    def as_vector_store_handle(self) -> "VectorStoreHandle":
        return VectorStoreHandle(self.store, self.k)


class VectorStoreHandle:
    """The full store plus its configured k, for callers that need scores."""

    def __init__(self, store: Searchable, k: Any = DEFAULT_TOP_K):
        self.store = store
        self.k = parse_top_k(k)

    async def search(
        self,
        query: Any,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[ScoredDocument]:
        return await self.store.similarity_search_with_score(query, k=self.k, filter=filter)

    def as_retriever(self) -> Retriever:
        return Retriever(self.store, self.k)

    def __repr__(self) -> str:
        return f"VectorStoreHandle(store={type(self.store).__name__}, k={self.k})"
