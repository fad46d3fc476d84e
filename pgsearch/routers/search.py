"""API routes for similarity search and retrieval."""
import logging
import math
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from pgsearch.retrieval.vector_store import PostgresVectorStore
from pgsearch.schemas.errors import ERROR_RESPONSES
from pgsearch.schemas.queries import (
    DocumentResult,
    RetrieveRequest,
    RetrieveResponse,
    SearchRequest,
    SearchResponse,
    SearchResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"], responses=ERROR_RESPONSES)


def get_vector_store(request: Request) -> PostgresVectorStore:
    """Return the store created at startup."""
    return request.app.state.vector_store


def sanitize_float(value: float) -> float:
    """Sanitize float values to ensure JSON compliance.

    pgvector yields NaN distances for zero vectors under cosine distance;
    those map to 2.0, the largest cosine distance.
    """
    if math.isnan(value):
        return 2.0
    if math.isinf(value):
        return 1e308 if value > 0 else -1e308
    return value


@router.post("/search", response_model=SearchResponse)
async def search(
    body: SearchRequest,
    store: PostgresVectorStore = Depends(get_vector_store),
):
    """
    Single-vector similarity search.

    Args:
        body: Query text or embedding, optional top_k and metadata filter

    Returns:
        Results ordered by ascending distance
    """
    if body.embedding is not None:
        results = await store.search_single(body.embedding, k=body.top_k, filter=body.filter)
    else:
        results = await store.similarity_search_with_score(body.query, k=body.top_k, filter=body.filter)

    formatted = []
    for result in results:
        item = SearchResult.from_scored(result)
        item.distance = sanitize_float(item.distance)
        formatted.append(item)
    return SearchResponse(results=formatted, count=len(formatted), search_mode="single")


@router.post("/search/multi", response_model=SearchResponse)
async def search_multi(
    payload: Dict[str, Any] = Body(...),
    store: PostgresVectorStore = Depends(get_vector_store),
):
    """
    Multi-key templated search.

    The body is either {"to_embed": {...}, "direct_filters": {...}} or a flat
    {name: text} mapping. Every result carries the sentinel score.
    """
    results = await store.search_multi(payload)
    formatted = [SearchResult.from_scored(result) for result in results]
    logger.info(f"Multi-key search over {len(payload)} payload keys returned {len(formatted)} results")
    return SearchResponse(results=formatted, count=len(formatted), search_mode="multi")


@router.post("/retrieve", response_model=RetrieveResponse)
async def retrieve(
    body: RetrieveRequest,
    store: PostgresVectorStore = Depends(get_vector_store),
):
    """Top-k document lookup through the retriever; scores are dropped."""
    retriever = store.as_retriever()
    documents = await retriever.retrieve(body.query, filter=body.filter)
    return RetrieveResponse(
        documents=[DocumentResult.from_document(document) for document in documents],
        count=len(documents),
        k=retriever.k,
    )
