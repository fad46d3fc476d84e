"""Interfaces shared by the retrieval components."""
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pgsearch.retrieval.models import Document, ScoredDocument


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into fixed-length vectors."""

    async def embed_query(self, text: str) -> List[float]:
        ...

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class Searchable(Protocol):
    """Capability exposed by vector stores to retrievers and HTTP handlers."""

    async def similarity_search_with_score(
        self,
        query: Any,
        k: Optional[int] = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[ScoredDocument]:
        ...

    async def similarity_search(
        self,
        query: Any,
        k: Optional[int] = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Document]:
        ...
