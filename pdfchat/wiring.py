"""Construction of the process-wide components shared by API and worker.

Each process (the FastAPI app, the ingestion worker, the admin CLI) builds
its providers and services exactly once at startup through
:func:`build_components`, injects them where needed, and releases them on
shutdown with :func:`close_components`.
"""

from __future__ import annotations

from typing import Any

import structlog

from pdfchat.config.settings import Settings
from pdfchat.interfaces.embedding_provider import IEmbeddingProvider
from pdfchat.interfaces.job_queue import IJobQueue
from pdfchat.interfaces.llm_provider import ILLMProvider
from pdfchat.interfaces.vector_store_provider import IVectorStoreProvider
from pdfchat.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from pdfchat.providers.llm.openai_provider import OpenAILLMProvider
from pdfchat.providers.queue.redis_queue import RedisJobQueue
from pdfchat.providers.vector_store.chromadb_provider import ChromaDBProvider
from pdfchat.services.ingestion.chunker import TextChunker
from pdfchat.services.ingestion.ingestion_service import IngestionService
from pdfchat.services.query_service import QueryService
from pdfchat.utils.logging import get_logger
from pdfchat.utils.retry import RetryPolicy

_logger: structlog.BoundLogger = get_logger(__name__)


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.capability_max_attempts,
        base_delay=settings.capability_backoff_base,
        max_delay=settings.capability_backoff_max,
        timeout=settings.capability_timeout_seconds,
    )


def build_embedding_provider(settings: Settings) -> IEmbeddingProvider:
    return OpenAIEmbeddingProvider(settings=settings)


def build_llm_provider(settings: Settings) -> ILLMProvider:
    return OpenAILLMProvider(settings=settings)


def build_vector_store(
    settings: Settings, embedding_provider: IEmbeddingProvider
) -> IVectorStoreProvider:
    """Open the shared collection, checking it matches the embedding model."""
    return ChromaDBProvider(
        collection_name=settings.chroma_collection,
        persist_directory=settings.chromadb_persist_dir,
        host=settings.chroma_host or None,
        port=settings.chroma_port,
        expected_dimension=embedding_provider.get_dimension(),
    )


def build_job_queue(settings: Settings) -> IJobQueue:
    return RedisJobQueue(
        queue_name=settings.queue_name,
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        visibility_timeout=settings.visibility_timeout_seconds,
    )


def build_components(settings: Settings) -> dict[str, Any]:
    """Construct every provider and service for one process.

    Returns a flat dict of named components; the API stores them on
    ``app.state``, the worker and CLI read them directly.

    Raises
    ------
    ConfigurationError
        If settings are missing or inconsistent.
    """
    settings.validate_runtime()
    retry_policy = build_retry_policy(settings)

    # The store needs the embedding dimension, so the embedder is built first.

    embedding_provider = build_embedding_provider(settings)
    llm_provider = build_llm_provider(settings)
    vector_store = build_vector_store(settings, embedding_provider)
    job_queue = build_job_queue(settings)

    chunker = TextChunker(
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        boundary_tolerance=settings.chunk_boundary_tolerance,
    )
    ingestion_service = IngestionService(
        chunker=chunker,
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        retry_policy=retry_policy,
        embed_batch_size=settings.embed_batch_size,
    )
    query_service = QueryService(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        llm=llm_provider,
        top_k=settings.retrieval_top_k,
        max_context_chars=settings.max_context_chars,
        retry_policy=retry_policy,
        deadline=settings.query_deadline_seconds,
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens,
    )

    _logger.info(
        "components_built",
        embedding=embedding_provider.get_provider_name(),
        llm=llm_provider.get_provider_name(),
        vector_store=vector_store.get_provider_name(),
        collection=vector_store.collection_name,
        queue=settings.queue_name,
    )

    return {
        "settings": settings,
        "embedding_provider": embedding_provider,
        "llm_provider": llm_provider,
        "vector_store": vector_store,
        "job_queue": job_queue,
        "ingestion_service": ingestion_service,
        "query_service": query_service,
    }


async def close_components(components: dict[str, Any]) -> None:
    """Release connections held by *components*.

    Every client is closed even if an earlier one fails; the first failure
    is re-raised afterwards.
    """
    first_error: Exception | None = None
    # Chroma holds no connection of its own; the vector store is skipped.
    for key in ("job_queue", "embedding_provider", "llm_provider"):
        component = components.get(key)
        if component is None:
            continue
        try:
            await component.close()
        except Exception as exc:
            _logger.error("component_close_failed", component=key, error=str(exc))
            first_error = first_error or exc
    _logger.info("components_closed")
    if first_error is not None:
        raise first_error
