"""FastAPI API routes for pdfchat.

Provides REST endpoints for PDF upload, question answering, health checks,
corpus statistics and dead-letter inspection.  Service dependencies are
resolved from ``app.state`` via FastAPI's ``Depends`` using the
``Annotated`` pattern.

Route map (all prefixed with ``/api/v1``)::

    /upload/pdf          POST  store a PDF and queue it for ingestion
    /chat?message=...    GET   answer a question (query-string form)
    /query               POST  answer a question (JSON body form)
    /health              GET   queue depth and vector store availability
    /corpus/stats        GET   indexed chunk and document counts
    /jobs/dead-letters   GET   jobs that failed permanently
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, UploadFile

from pdfchat.api.schemas import (
    CorpusStatsResponse,
    DeadLetterListResponse,
    DeadLetterResponse,
    ErrorResponse,
    HealthResponse,
    QueryRequest,
    QueryResponse,
    QueueDepthResponse,
    UploadResponse,
)
from pdfchat.config.settings import Settings
from pdfchat.models.jobs import UploadJob
from pdfchat.services.ingestion.uploads import write_upload
from pdfchat.utils.errors import PDFChatError, QueueUnavailableError
from pdfchat.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

# Uploads are read in 64 KB increments so oversized files are rejected
# without buffering the whole payload.
_UPLOAD_CHUNK_SIZE = 64 * 1024

_VERSION = "0.1.0"

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Dependency injection helpers: resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_settings(request: Request) -> Settings:
    """Return the application settings from application state."""
    return request.app.state.settings


def _get_query_service(request: Request) -> Any:
    """Return the query service from application state, or ``None``."""
    return getattr(request.app.state, "query_service", None)


def _get_job_queue(request: Request) -> Any:
    """Return the job queue from application state, or ``None``."""
    return getattr(request.app.state, "job_queue", None)


def _get_vector_store(request: Request) -> Any:
    """Return the vector store from application state, or ``None``."""
    return getattr(request.app.state, "vector_store", None)


SettingsDep = Annotated[Settings, Depends(_get_settings)]
QueryServiceDep = Annotated[Any, Depends(_get_query_service)]
JobQueueDep = Annotated[Any, Depends(_get_job_queue)]
VectorStoreDep = Annotated[Any, Depends(_get_vector_store)]


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


@router.post(
    "/upload/pdf",
    status_code=202,
    response_model=UploadResponse,
    responses={
        413: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Upload a PDF and queue it for ingestion",
)
async def upload_pdf(
    pdf: UploadFile,
    settings: SettingsDep,
    job_queue: JobQueueDep,
) -> UploadResponse:
    """Store the uploaded PDF and enqueue one ingestion job for it.

    The response is returned as soon as the job is queued; extraction,
    chunking and indexing happen in the worker process.  The declared
    content type is not trusted either way: a file that does not parse as
    a PDF is dead-lettered by the worker.
    """
    if job_queue is None:
        raise HTTPException(status_code=503, detail="Job queue not available")

    max_bytes = settings.max_upload_mb * 1024 * 1024
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await pdf.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large: maximum is {settings.max_upload_mb} MB.",
            )
        chunks.append(chunk)

    if total_size == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    file_name = Path(pdf.filename or "upload.pdf").name
    path = await asyncio.to_thread(
        write_upload, settings.upload_dir, file_name, b"".join(chunks)
    )

    job = UploadJob(file_name=file_name, storage_path=str(path))
    try:
        await job_queue.enqueue(job)
    except QueueUnavailableError:
        await asyncio.to_thread(path.unlink, missing_ok=True)
        raise

    _logger.info(
        "pdf_uploaded",
        job_id=job.job_id,
        file_name=file_name,
        storage_path=str(path),
        size_bytes=total_size,
        content_type=pdf.content_type,
    )
    return UploadResponse(job_id=job.job_id, file_name=file_name)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


async def _answer(query_service: Any, question: str) -> QueryResponse:
    if query_service is None:
        raise HTTPException(status_code=503, detail="Query service not available")
    try:
        answer = await query_service.answer(question)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return QueryResponse.from_answer(answer)


@router.get(
    "/chat",
    response_model=QueryResponse,
    responses=_ERROR_RESPONSES,
    summary="Ask a question about the uploaded PDFs",
)
async def chat(
    query_service: QueryServiceDep,
    message: Annotated[str, Query(min_length=1, max_length=2000)],
) -> QueryResponse:
    """Answer ``message`` from the indexed documents."""
    return await _answer(query_service, message)


@router.post(
    "/query",
    response_model=QueryResponse,
    responses=_ERROR_RESPONSES,
    summary="Ask a question about the uploaded PDFs",
)
async def query(body: QueryRequest, query_service: QueryServiceDep) -> QueryResponse:
    """Answer ``body.question`` from the indexed documents."""
    return await _answer(query_service, body.question)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(
    job_queue: JobQueueDep,
    vector_store: VectorStoreDep,
) -> HealthResponse:
    """Report queue depth and vector store availability."""
    store_ok = vector_store is not None and vector_store.is_available()

    depth: QueueDepthResponse | None = None
    if job_queue is not None:
        try:
            counts = await job_queue.depth()
            depth = QueueDepthResponse(**counts.model_dump())
        except PDFChatError as exc:
            _logger.warning("health_queue_unreachable", error=str(exc))

    status = "healthy" if store_ok and depth is not None else "degraded"
    return HealthResponse(
        status=status,
        version=_VERSION,
        vector_store_available=store_ok,
        queue=depth,
    )


@router.get(
    "/corpus/stats",
    response_model=CorpusStatsResponse,
    responses=_ERROR_RESPONSES,
    summary="Get indexed corpus statistics",
)
async def corpus_stats(vector_store: VectorStoreDep) -> CorpusStatsResponse:
    """Return chunk and document counts for the shared collection."""
    if vector_store is None:
        raise HTTPException(status_code=503, detail="Vector store not available")

    stats = await vector_store.get_stats()
    return CorpusStatsResponse(
        collection=vector_store.collection_name,
        total_chunks=stats.total_chunks,
        total_documents=stats.total_documents,
        documents=stats.documents,
    )


@router.get(
    "/jobs/dead-letters",
    response_model=DeadLetterListResponse,
    responses=_ERROR_RESPONSES,
    summary="List jobs that failed permanently",
)
async def dead_letters(
    job_queue: JobQueueDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> DeadLetterListResponse:
    """Return the most recent dead-lettered jobs, newest first."""
    if job_queue is None:
        raise HTTPException(status_code=503, detail="Job queue not available")

    entries = await job_queue.list_dead_letters(limit=limit)
    return DeadLetterListResponse(
        entries=[
            DeadLetterResponse(
                job_id=e.job.job_id if e.job else None,
                file_name=e.file_name,
                error_kind=e.error_kind,
                error_message=e.error_message,
                attempts=e.attempts,
                failed_at=e.failed_at,
            )
            for e in entries
        ]
    )
