"""Pydantic models for search requests and responses."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from pgsearch.retrieval.models import Document, ScoredDocument


class SearchRequest(BaseModel):
    """Single-vector search: a text query to embed, or a ready embedding."""

    query: Optional[str] = Field(None, description="Query text to embed")
    embedding: Optional[List[float]] = Field(None, description="Query embedding")
    top_k: Optional[int] = Field(None, ge=1, le=1000, description="Number of results (store default if unset)")
    filter: Optional[Dict[str, Any]] = Field(None, description="Metadata containment filter")

    @model_validator(mode="after")
    def check_query(self):
        if (self.query is None) == (self.embedding is None):
            raise ValueError("Provide exactly one of 'query' or 'embedding'")
        if self.embedding is not None and not self.embedding:
            raise ValueError("'embedding' cannot be empty")
        return self


class RetrieveRequest(BaseModel):
    """Retriever lookup: documents only, sized to the configured k."""

    query: str = Field(..., min_length=1, description="Query text")
    filter: Optional[Dict[str, Any]] = Field(None, description="Metadata containment filter")


class SearchResult(BaseModel):
    """Single scored document."""

    id: str = Field(..., description="Document ID")
    content: str = Field(..., description="Document content")
    metadata: dict = Field(default_factory=dict, description="Document metadata")
    distance: float = Field(..., description="Distance to the query (lower is closer)")

    @classmethod
    def from_scored(cls, result: ScoredDocument) -> "SearchResult":
        return cls(
            id=result.document.id,
            content=result.document.page_content,
            metadata=result.document.metadata,
            distance=result.distance,
        )


class SearchResponse(BaseModel):
    """Response model for search results."""

    results: List[SearchResult] = Field(..., description="Search results")
    count: int = Field(..., description="Number of results returned")
    search_mode: str = Field(..., description="Search path used (single, multi)")


class DocumentResult(BaseModel):
    """Document returned by the retriever."""

    id: str
    content: str
    metadata: dict = Field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResult":
        return cls(id=document.id, content=document.page_content, metadata=document.metadata)


class RetrieveResponse(BaseModel):
    """Response model for retriever lookups."""

    documents: List[DocumentResult]
    count: int
    k: int
