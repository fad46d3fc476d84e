"""Build retrieval outputs from settings."""
import logging
from typing import Optional, Union

from pgsearch.config import Settings, settings
from pgsearch.retrieval.base import EmbeddingProvider
from pgsearch.retrieval.retriever import Retriever, VectorStoreHandle
from pgsearch.retrieval.vector_store import PostgresVectorStore

logger = logging.getLogger(__name__)


def load_existing_index(
    embeddings: EmbeddingProvider,
    output: str = "retriever",
    app_settings: Optional[Settings] = None,
) -> Union[Retriever, VectorStoreHandle]:
    """
    Load an existing pgvector table as a retriever or a vector store handle.

    Args:
        embeddings: Embedding provider used by the store
        output: "retriever" for a top-k retriever, "vectorStore" for the scored handle
        app_settings: Settings to build from (module settings by default)

    Returns:
        Retriever, or VectorStoreHandle for any other output value

    Raises:
        ConfigurationError: If the additional connection configuration is malformed
    """
    app_settings = app_settings or settings
    store = PostgresVectorStore.from_settings(embeddings, app_settings)
    logger.info(
        f"Loaded existing index '{store.single_builder.table_name}' as {output} "
        f"(k={store.k}, template={'yes' if store.template_builder else 'no'})"
    )
    if output == "retriever":
        return store.as_retriever()
    return store.as_vector_store_handle()
