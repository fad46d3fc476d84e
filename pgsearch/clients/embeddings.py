"""HTTP client for the embedding service."""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from pgsearch.config import settings
from pgsearch.retrieval.exceptions import EmbeddingError
from pgsearch.services.cache import EmbeddingCache

logger = logging.getLogger(__name__)


class EmbeddingServiceClient:
    """Embedding provider backed by an HTTP embedding service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        user_id: str = "pgsearch",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the embedding client. Unset arguments fall back to settings.

        Args:
            base_url: Embedding service URL
            timeout: Request timeout in seconds
            max_retries: Retries per request after the first attempt
            retry_delay: Base delay for exponential backoff in seconds
            user_id: Sent as X-User-ID for usage tracking
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = (base_url or settings.embedding_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.embedding_service_timeout
        self.max_retries = max_retries if max_retries is not None else settings.embedding_max_retries
        self.retry_delay = retry_delay if retry_delay is not None else settings.embedding_retry_delay
        self.user_id = user_id
        self.transport = transport
        self.embedding_cache = EmbeddingCache(ttl_seconds=settings.embedding_cache_ttl)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            if attempt:
                await asyncio.sleep(self.retry_delay * (2 ** (attempt - 1)))
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.post(
                        f"{self.base_url}{path}",
                        json=payload,
                        headers={"X-User-ID": self.user_id},
                    )
                    response.raise_for_status()
                    return response.json()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.warning(f"Embedding request to {path} failed (attempt {attempt + 1}): {e}")
        raise EmbeddingError(
            f"Failed to generate embeddings after {self.max_retries} retries: {last_error}"
        ) from last_error

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate the embedding for a single text.

        Raises:
            EmbeddingError: If the service fails after retries
        """
        cached = self.embedding_cache.get(text)
        if cached is not None:
            return cached

        data = await self._post("/embeddings", {"text": text})
        embedding = data.get("embedding")
        if not isinstance(embedding, list):
            raise EmbeddingError("Embedding service response has no 'embedding' list")

        self.embedding_cache.set(text, embedding)
        return embedding

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for several texts with one request.

        Cached texts are served locally; every other text goes out in a single
        batch request.

        Args:
            texts: Texts to embed

        Returns:
            Embeddings in the same order as texts

        Raises:
            EmbeddingError: If the service fails or returns the wrong number of vectors
        """
        texts = list(texts)
        if not texts:
            return []

        hits, misses = self.embedding_cache.get_many(texts)
        if misses:
            data = await self._post("/embeddings/batch", {"texts": [texts[i] for i in misses]})
            embeddings = data.get("embeddings")
            if not isinstance(embeddings, list) or len(embeddings) != len(misses):
                raise EmbeddingError(
                    f"Embedding service returned {len(embeddings) if isinstance(embeddings, list) else 0} "
                    f"embeddings for {len(misses)} texts"
                )
            for position, embedding in zip(misses, embeddings):
                self.embedding_cache.set(texts[position], embedding)
                hits[position] = embedding

        return [hits[position] for position in range(len(texts))]

    async def health(self) -> bool:
        """Return True when the embedding service answers its health check."""
        async with httpx.AsyncClient(timeout=2.0, transport=self.transport) as client:
            response = await client.get(f"{self.base_url}/health")
            return response.status_code == 200
