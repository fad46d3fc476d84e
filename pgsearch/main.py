"""FastAPI application for the pgvector retrieval service."""
from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pgsearch.clients.embeddings import EmbeddingServiceClient
from pgsearch.config import settings
from pgsearch.middleware.logging import LoggingMiddleware, RequestIdFilter
from pgsearch.retrieval.exceptions import RetrievalError, StoreConnectionError
from pgsearch.retrieval.vector_store import PostgresVectorStore
from pgsearch.routers import search
from pgsearch.routers.search import get_vector_store
from pgsearch.schemas.errors import create_error_response, status_for

# Configure structured logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the vector store on startup and close its pool on shutdown."""
    logger.info("Retrieval service starting up...")
    embeddings = EmbeddingServiceClient()
    store = PostgresVectorStore.from_settings(embeddings, settings)
    app.state.embeddings = embeddings
    app.state.vector_store = store

    try:
        await store.pool.open()
    except StoreConnectionError as e:
        # The pool opens again on first use; /ready reports the outage meanwhile
        logger.error(f"Failed to open Postgres pool: {e}")

    yield

    await store.close()
    logger.info("Retrieval service shutting down...")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Similarity search over Postgres + pgvector",
    lifespan=lifespan,
)

# Add logging middleware (before CORS to capture all requests)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.include_router(search.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def ready(request: Request, store: PostgresVectorStore = Depends(get_vector_store)):
    """Readiness check endpoint with dependency verification."""
    checks = {}
    all_ready = True

    try:
        await store.pool.ping()
        checks["postgres"] = "ready"
    except Exception as e:
        logger.error(f"Postgres check failed: {e}")
        checks["postgres"] = f"error: {str(e)}"
        all_ready = False

    embeddings = getattr(request.app.state, "embeddings", None)
    if embeddings is not None and hasattr(embeddings, "health"):
        try:
            checks["embedding_service"] = "ready" if await embeddings.health() else "unhealthy"
        except Exception as e:
            logger.error(f"Embedding service check failed: {e}")
            checks["embedding_service"] = f"error: {str(e)}"
        all_ready = all_ready and checks["embedding_service"] == "ready"

    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "status": "ready" if all_ready else "not ready",
            "checks": checks,
        },
    )


# Error handlers
@app.exception_handler(RetrievalError)
async def retrieval_exception_handler(request: Request, exc: RetrievalError):
    """Map engine errors to HTTP responses."""
    status_code, code = status_for(exc)
    logger.warning(f"{code}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(detail=str(exc), status_code=status_code, code=code),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=create_error_response(
            detail="Validation error",
            status_code=422,
            code="VALIDATION_ERROR",
            errors=jsonable_errors(exc),
        ),
    )


def jsonable_errors(exc: RequestValidationError):
    """Drop non-serializable context (e.g. exception objects) from validation errors."""
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            detail=exc.detail,
            status_code=exc.status_code,
            code=f"HTTP_{exc.status_code}",
        ),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            detail="Internal server error",
            status_code=500,
            code="INTERNAL_SERVER_ERROR",
        ),
    )
