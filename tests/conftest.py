"""Shared pytest fixtures for the pdfchat test suite."""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from collections import deque
from pathlib import Path
from typing import Any

import fitz
import pytest

from pdfchat.config.settings import Settings
from pdfchat.interfaces.embedding_provider import IEmbeddingProvider
from pdfchat.interfaces.job_queue import IJobQueue, JobDelivery
from pdfchat.interfaces.llm_provider import ILLMProvider
from pdfchat.interfaces.vector_store_provider import IVectorStoreProvider
from pdfchat.models.jobs import DeadLetterEntry, QueueDepth, UploadJob
from pdfchat.models.rag import CorpusStats, IndexedRecord, RetrievedChunk
from pdfchat.services.ingestion.chunker import TextChunker
from pdfchat.services.ingestion.ingestion_service import IngestionService
from pdfchat.services.query_service import QueryService
from pdfchat.utils.retry import RetryPolicy

_EMBEDDING_DIM = 256
_WORD_RE = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Deterministic embedding provider
# ---------------------------------------------------------------------------


def _bag_of_words_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Hash each lowercase word into a bucket and normalise to unit length.

    Texts that share words get a positive cosine similarity, so retrieval
    in tests ranks passages the way a reader would expect.
    """
    values = [0.0] * dim
    for word in _WORD_RE.findall(text.lower()):
        digest = hashlib.sha256(word.encode("utf-8")).digest()
        values[int.from_bytes(digest[:4], "little") % dim] += 1.0
    magnitude = math.sqrt(sum(v * v for v in values))
    if magnitude == 0:
        values[0] = 1.0
        return values
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self) -> None:
        self.calls = 0
        self.closed = False

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return [_bag_of_words_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls += 1
        return _bag_of_words_vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# In-memory vector store
# ---------------------------------------------------------------------------


class InMemoryVectorStore(IVectorStoreProvider):
    """Dict-backed vector store keyed by chunk id, ranking by cosine similarity."""

    def __init__(self, collection_name: str = "pdf-docs") -> None:
        self._collection = collection_name
        self.records: dict[str, IndexedRecord] = {}

    @property
    def collection_name(self) -> str:
        return self._collection

    async def upsert(self, records: list[IndexedRecord]) -> int:
        for record in records:
            self.records[record.chunk.chunk_id] = record
        return len(records)

    async def query(self, vector: list[float], top_k: int) -> list[RetrievedChunk]:
        scored = []
        for record in self.records.values():
            dot = sum(a * b for a, b in zip(vector, record.vector))
            norm = math.sqrt(sum(a * a for a in vector)) * math.sqrt(
                sum(b * b for b in record.vector)
            )
            score = min(1.0, max(0.0, dot / norm if norm else 0.0))
            scored.append(RetrievedChunk(chunk=record.chunk, similarity_score=score))
        scored.sort(
            key=lambda rc: (
                -round(rc.similarity_score, 9),
                rc.chunk.source_document,
                rc.chunk.sequence_index,
            )
        )
        return scored[:top_k]

    async def delete_stale(self, source_document: str, keep_count: int) -> int:
        stale = [
            chunk_id
            for chunk_id, record in self.records.items()
            if record.chunk.source_document == source_document
            and record.chunk.sequence_index >= keep_count
        ]
        for chunk_id in stale:
            del self.records[chunk_id]
        return len(stale)

    async def get_stats(self) -> CorpusStats:
        documents = sorted({r.chunk.source_document for r in self.records.values()})
        return CorpusStats(
            total_chunks=len(self.records),
            total_documents=len(documents),
            documents=documents,
        )

    def get_provider_name(self) -> str:
        return "in-memory"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# In-memory job queue
# ---------------------------------------------------------------------------


class InMemoryJobQueue(IJobQueue):
    """Single-process stand-in for the Redis queue.

    ``reclaim_expired`` returns every in-flight delivery to pending once
    after ``leases_expired`` is set.
    """

    def __init__(self) -> None:
        self.pending: deque[str] = deque()
        self.processing: list[str] = []
        self.dead: list[DeadLetterEntry] = []
        self.acked: list[str] = []
        self.closed = False
        self.leases_expired = False

    async def enqueue(self, job: UploadJob) -> str:
        self.pending.append(job.to_payload())
        return job.job_id

    def push_raw(self, payload: str) -> None:
        self.pending.append(payload)

    async def dequeue(self, timeout: float) -> JobDelivery | None:
        if not self.pending:
            await asyncio.sleep(min(timeout, 0.01))
            return None
        payload = self.pending.popleft()
        self.processing.append(payload)
        return JobDelivery(receipt=payload)

    async def ack(self, delivery: JobDelivery) -> None:
        self.processing.remove(delivery.receipt)
        self.acked.append(delivery.receipt)

    async def requeue(self, delivery: JobDelivery, job: UploadJob) -> None:
        self.processing.remove(delivery.receipt)
        self.pending.append(job.to_payload())

    async def dead_letter(self, delivery: JobDelivery, entry: DeadLetterEntry) -> None:
        self.processing.remove(delivery.receipt)
        self.dead.insert(0, entry)

    async def reclaim_expired(self) -> int:
        reclaimed = 0
        while self.leases_expired and self.processing:
            payload = self.processing.pop(0)
            job = UploadJob.from_payload(payload).with_attempt()
            self.pending.append(job.to_payload())
            reclaimed += 1
        self.leases_expired = False
        return reclaimed

    async def list_dead_letters(self, limit: int = 50) -> list[DeadLetterEntry]:
        return self.dead[:limit]

    async def replay_dead_letter(self, job_id: str) -> bool:
        for entry in self.dead:
            if entry.job is not None and entry.job.job_id == job_id:
                self.dead.remove(entry)
                self.pending.append(entry.job.model_copy(update={"attempts": 0}).to_payload())
                return True
        return False

    async def depth(self) -> QueueDepth:
        return QueueDepth(
            pending=len(self.pending), processing=len(self.processing), dead=len(self.dead)
        )

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Scripted text generator
# ---------------------------------------------------------------------------


class FakeLLM(ILLMProvider):
    """Returns a fixed reply and records every prompt it was given."""

    def __init__(self, reply: str = "Streams are event emitters.") -> None:
        self.reply = reply
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        return self.reply

    def get_provider_name(self) -> str:
        return "fake-llm"

    def is_available(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# PDF fixtures
# ---------------------------------------------------------------------------


def write_pdf(path: Path, pages: list[str]) -> Path:
    """Write a PDF at *path* with one page per string in *pages*."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_textbox(fitz.Rect(72, 72, 540, 770), text, fontsize=11)
    doc.save(str(path))
    doc.close()
    return path


GUIDE_PAGES = [
    "Welcome to the runtime guide. This chapter covers installation and "
    "the package manager. Install the runtime from the official website.",
    "In the runtime, streams are event emitters. A readable stream emits "
    "data events, and a writable stream accepts chunks through write calls.",
    "The final chapter describes debugging with the inspector and profiling "
    "memory usage of long-running servers.",
]


@pytest.fixture
def make_pdf(tmp_path: Path):
    """Factory writing a PDF with one page per string into ``tmp_path``."""

    def _make(name: str, pages: list[str]) -> Path:
        return write_pdf(tmp_path / name, pages)

    return _make


@pytest.fixture
def guide_pdf(tmp_path: Path) -> Path:
    """Three-page ``guide.pdf`` whose second page explains streams."""
    return write_pdf(tmp_path / "guide.pdf", GUIDE_PAGES)


@pytest.fixture
def corrupt_pdf(tmp_path: Path) -> Path:
    """A file named like a PDF that holds random bytes."""
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is definitely not a pdf\x00\x01\x02" * 20)
    return path


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the developer's environment and ``.env``."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        upload_dir=str(tmp_path / "uploads"),
        chromadb_persist_dir=str(tmp_path / "chroma"),
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy without backoff delays."""
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, timeout=5.0)


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def job_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker(chunk_size=200, overlap=40, boundary_tolerance=40)


@pytest.fixture
def ingestion_service(
    chunker: TextChunker,
    embedding_provider: MockEmbeddingProvider,
    vector_store: InMemoryVectorStore,
    fast_retry: RetryPolicy,
) -> IngestionService:
    return IngestionService(
        chunker=chunker,
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        retry_policy=fast_retry,
    )


@pytest.fixture
def query_service(
    embedding_provider: MockEmbeddingProvider,
    vector_store: InMemoryVectorStore,
    fake_llm: FakeLLM,
    fast_retry: RetryPolicy,
) -> QueryService:
    return QueryService(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        llm=fake_llm,
        top_k=3,
        retry_policy=fast_retry,
        deadline=5.0,
    )
