"""Postgres connection pool for pgvector queries."""
import asyncio
import logging
import ssl
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import asyncpg

from pgsearch.config import ConnectionConfig
from pgsearch.retrieval.exceptions import ConfigurationError, StoreConnectionError
from pgsearch.retrieval.query_builder import format_vector

logger = logging.getLogger(__name__)

_CONNECT_ERRORS = (OSError, asyncpg.PostgresError, asyncpg.InterfaceError)

_VECTOR_SCHEMA_QUERY = """
    SELECT n.nspname
    FROM pg_type t
    JOIN pg_namespace n ON n.oid = t.typnamespace
    WHERE t.typname = 'vector'
    LIMIT 1
"""


def build_ssl_context(ssl_mode: str) -> ssl.SSLContext | bool:
    """
    Build the TLS argument for asyncpg.

    Args:
        ssl_mode: no-verify (encrypt, skip certificate checks), verify, or disable

    Returns:
        SSL context, or False to connect without TLS
    """
    if ssl_mode == "disable":
        return False
    context = ssl.create_default_context()
    if ssl_mode == "no-verify":
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _encode_vector(value: Any) -> str:
    if isinstance(value, str):
        return value
    return format_vector(value)


def _decode_vector(text: str) -> List[float]:
    body = text.strip().strip("[]")
    return [float(item) for item in body.split(",") if item]


async def register_vector_codec(conn: Any) -> None:
    """Bind the pgvector type as text so vectors travel as [v1,v2,...] literals."""
    schema = await conn.fetchval(_VECTOR_SCHEMA_QUERY)
    if schema is None:
        logger.warning("pgvector 'vector' type not found, vector columns will not be decoded")
        return
    await conn.set_type_codec(
        "vector",
        encoder=_encode_vector,
        decoder=_decode_vector,
        schema=schema,
        format="text",
    )


class ConnectionPool:
    """Bounded pool of store connections with acquire/release discipline."""

    def __init__(
        self,
        config: ConnectionConfig,
        create_pool: Callable[..., Any] = asyncpg.create_pool,
    ):
        """
        Initialize the pool wrapper. Connections are opened on first use.

        Args:
            config: Connection parameters
            create_pool: Pool factory (asyncpg.create_pool)
        """
        self.config = config
        self._create_pool = create_pool
        self._pool: Optional[Any] = None
        self._lock = asyncio.Lock()
        self._in_use = 0

    @property
    def in_use(self) -> int:
        """Number of connections currently checked out."""
        return self._in_use

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the pool factory; named settings override driver options."""
        kwargs = dict(self.config.driver_options)
        kwargs.update(
            host=self.config.host,
            port=self.config.port,
            user=self.config.username,
            password=self.config.password,
            database=self.config.database,
            ssl=build_ssl_context(self.config.ssl_mode),
            min_size=self.config.min_size,
            max_size=self.config.max_size,
            init=register_vector_codec,
        )
        return kwargs

    async def open(self) -> None:
        """Create the underlying pool if it does not exist yet."""
        async with self._lock:
            if self._pool is not None:
                return
            try:
                self._pool = await self._create_pool(**self.connect_kwargs())
            except _CONNECT_ERRORS as e:
                raise StoreConnectionError(
                    f"Failed to connect to Postgres at {self.config.host}:{self.config.port}: {e}"
                ) from e
            except TypeError as e:
                raise ConfigurationError(
                    f"Invalid Postgres driver options {sorted(self.config.driver_options)}: {e}"
                ) from e
            logger.info(
                f"Postgres pool opened ({self.config.host}:{self.config.port}/{self.config.database}, "
                f"size {self.config.min_size}-{self.config.max_size})"
            )

    async def acquire(self) -> Any:
        """
        Check a connection out of the pool.

        Returns:
            Store connection; pass it back to release() exactly once

        Raises:
            StoreConnectionError: If the store is unreachable or no connection frees up in time
        """
        await self.open()
        try:
            conn = await self._pool.acquire(timeout=self.config.acquire_timeout)
        except asyncio.TimeoutError as e:
            raise StoreConnectionError(
                f"No pooled connection available within {self.config.acquire_timeout}s"
            ) from e
        except _CONNECT_ERRORS as e:
            raise StoreConnectionError(f"Failed to acquire a Postgres connection: {e}") from e
        self._in_use += 1
        return conn

    async def release(self, conn: Any) -> None:
        """Return a connection to the pool."""
        try:
            await self._pool.release(conn)
        finally:
            self._in_use -= 1

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Hold one connection for the duration of the block, releasing it on every exit path."""
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    async def ping(self) -> bool:
        """Run a trivial query to confirm the store answers."""
        async with self.connection() as conn:
            return await conn.fetchval("SELECT 1") == 1

    async def close(self) -> None:
        """Close every pooled connection."""
        async with self._lock:
            if self._pool is None:
                return
            await self._pool.close()
            self._pool = None
            logger.info("Postgres pool closed")
