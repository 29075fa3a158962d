"""pdfchat domain models -- re-exports all public model classes.

    - jobs.py -- upload jobs, dead-letter entries and worker outcomes
    - rag.py  -- pages, chunks, indexed records, retrieval results, answers
"""

from __future__ import annotations

from pdfchat.models.jobs import (
    DeadLetterEntry,
    JobOutcome,
    JobStatus,
    QueueDepth,
    UploadJob,
)
from pdfchat.models.rag import (
    Answer,
    CorpusStats,
    DocumentChunk,
    IndexedRecord,
    IngestionResult,
    PageText,
    RetrievedChunk,
)

__all__ = [
    # jobs
    "DeadLetterEntry",
    "JobOutcome",
    "JobStatus",
    "QueueDepth",
    "UploadJob",
    # rag
    "Answer",
    "CorpusStats",
    "DocumentChunk",
    "IndexedRecord",
    "IngestionResult",
    "PageText",
    "RetrievedChunk",
]
