"""Error response schemas for consistent error handling."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from pgsearch.retrieval.exceptions import (
    ConfigurationError,
    EmbeddingError,
    ExecutionError,
    RetrievalError,
    StoreConnectionError,
)


class ErrorResponse(BaseModel):
    """Standard error response format."""
    detail: str
    code: Optional[str] = None
    status_code: int
    errors: Optional[List[Dict[str, Any]]] = None  # For validation errors


# OpenAPI documentation for the error bodies every search route can return
ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid query or store configuration"},
    422: {"model": ErrorResponse, "description": "Request validation failed"},
    502: {"model": ErrorResponse, "description": "Query execution or embedding failed"},
    503: {"model": ErrorResponse, "description": "Store unavailable"},
}


# (status code, error code) per engine error, most specific first
RETRIEVAL_ERROR_STATUS = [
    (ConfigurationError, 400, "CONFIGURATION_ERROR"),
    (StoreConnectionError, 503, "STORE_UNAVAILABLE"),
    (ExecutionError, 502, "EXECUTION_ERROR"),
    (EmbeddingError, 502, "EMBEDDING_ERROR"),
]


def status_for(exc: RetrievalError) -> tuple[int, str]:
    """Map an engine error to its HTTP status and error code."""
    for error_type, status_code, code in RETRIEVAL_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, "RETRIEVAL_ERROR"


def create_error_response(
    detail: str,
    status_code: int,
    code: Optional[str] = None,
    errors: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Create a standardized error response."""
    response = {
        "detail": detail,
        "status_code": status_code,
    }
    if code:
        response["code"] = code
    if errors:
        response["errors"] = errors
    return response
