"""Request logging middleware with correlation IDs."""
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamps the current request ID onto every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and exposes its ID to engine log lines."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        fields = {"method": request.method, "path": request.url.path, "service": "pgsearch"}
        start = time.perf_counter()

        try:
            logger.info("Request started", extra=fields)
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "Request failed",
                    extra={**fields, "duration_ms": int((time.perf_counter() - start) * 1000), "error": str(e)},
                    exc_info=True,
                )
                raise

            logger.info(
                "Request completed",
                extra={
                    **fields,
                    "status_code": response.status_code,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response
