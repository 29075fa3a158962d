"""Turns one upload job into indexed, searchable chunks.

Pipeline stages: **extract -> chunk -> embed -> upsert -> prune**.

The :class:`IngestionService` coordinates four collaborators (PDF
processor, chunker, embedding provider, vector store) without any of them
knowing about each other.  All dependencies are injected via the
constructor so tests can substitute in-memory fakes.

Reprocessing a job is safe: chunking is deterministic and records are
upserted by ``(source_document, sequence_index)``, so a second run writes
the same records over the first.  The final prune removes chunks left from
an earlier, longer upload under the same name.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from pdfchat.models.rag import DocumentChunk, IndexedRecord, IngestionResult
from pdfchat.services.ingestion.chunker import TextChunker
from pdfchat.services.ingestion.pdf_processor import PDFProcessor
from pdfchat.utils.retry import RetryPolicy

if TYPE_CHECKING:
    from pdfchat.interfaces.embedding_provider import IEmbeddingProvider
    from pdfchat.interfaces.vector_store_provider import IVectorStoreProvider
    from pdfchat.models.jobs import UploadJob

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Orchestrates ingestion of a single uploaded PDF.

    Parameters
    ----------
    chunker:
        Splits page text into overlapping bounded windows.
    embedding_provider:
        Generates embedding vectors for chunk text.
    vector_store:
        Stores embedded chunks for similarity retrieval.
    retry_policy:
        Backoff and per-call timeout applied to every embed and store call.
    pdf_processor:
        Page text extractor; a default :class:`PDFProcessor` when omitted.
    embed_batch_size:
        Number of chunks embedded and stored per round trip.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        retry_policy: RetryPolicy | None = None,
        pdf_processor: PDFProcessor | None = None,
        embed_batch_size: int = 64,
    ) -> None:
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._retry = retry_policy or RetryPolicy()
        self._pdf_processor = pdf_processor or PDFProcessor()
        self._batch_size = max(1, embed_batch_size)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_job(self, job: UploadJob) -> IngestionResult:
        """Extract, chunk, embed and store the file referenced by *job*.

        Raises
        ------
        FileUnreadableError
            The stored file is missing or not a readable PDF.  Not retryable.
        TransientCapabilityError
            Embedding or storage kept failing after the retry budget.
        DeadlineExceededError
            A capability call kept timing out after the retry budget.
        """
        start = time.monotonic()
        log = logger.bind(job_id=job.job_id, file_name=job.file_name, attempt=job.attempts + 1)
        log.info("ingestion_started", storage_path=job.storage_path)

        pages = await asyncio.to_thread(self._pdf_processor.extract_pages, job.storage_path)
        chunks = self._chunker.split(pages, source_document=job.file_name)

        if not chunks:
            log.warning("ingestion_no_text", pages=len(pages))
            stored = 0
        else:
            stored = await self._embed_and_store(chunks, log)

        removed = await self._retry.run(
            lambda: self._vector_store.delete_stale(job.file_name, len(chunks)),
            description="delete_stale",
            logger=log,
        )

        result = IngestionResult(
            job_id=job.job_id,
            source_document=job.file_name,
            pages=len(pages),
            chunks_created=stored,
            stale_chunks_removed=removed,
            ingestion_time=round(time.monotonic() - start, 3),
        )
        log.info(
            "ingestion_complete",
            pages=result.pages,
            chunks=result.chunks_created,
            stale_removed=result.stale_chunks_removed,
            time_s=result.ingestion_time,
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_and_store(
        self, chunks: list[DocumentChunk], log: structlog.BoundLogger
    ) -> int:
        """Embed and upsert *chunks* slice by slice, retrying each call."""
        collection = self._vector_store.collection_name
        total_stored = 0

        for i in range(0, len(chunks), self._batch_size):
            slice_chunks = chunks[i : i + self._batch_size]
            texts = [c.text for c in slice_chunks]

            vectors = await self._retry.run(
                lambda texts=texts: self._embedding_provider.embed(texts),
                description="embed_batch",
                logger=log,
            )
            records = [
                IndexedRecord(vector=vector, chunk=chunk, collection_id=collection)
                for chunk, vector in zip(slice_chunks, vectors, strict=True)
            ]
            total_stored += await self._retry.run(
                lambda records=records: self._vector_store.upsert(records),
                description="upsert_batch",
                logger=log,
            )

        return total_stored
