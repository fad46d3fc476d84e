"""Exceptions raised by the retrieval engine."""


class RetrievalError(Exception):
    """Base class for retrieval engine errors."""


class ConfigurationError(RetrievalError, ValueError):
    """Invalid operator configuration or query payload.

    Raised for malformed JSON in the additional connection configuration or
    in a multi-key payload, for template tokens that resolve to no source
    (or to both), and for multi-key queries when no template is configured.
    Never retried.
    """


class StoreConnectionError(RetrievalError, ConnectionError):
    """The store is unreachable or the pool could not hand out a connection."""


class ExecutionError(RetrievalError):
    """The store rejected or failed to run a statement."""

    def __init__(self, message: str, sql: str | None = None):
        super().__init__(message)
        self.sql = sql


class EmbeddingError(RetrievalError):
    """The embedding provider failed or returned an unusable response."""
