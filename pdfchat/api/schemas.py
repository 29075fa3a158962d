"""Pydantic request/response schemas for the pdfchat API.

Defines the public contract for the upload, query, health, corpus and
dead-letter endpoints.  FastAPI validates request bodies against these
models and serializes responses through them (``response_model=...``).

Query and upload responses use camelCase field names on the wire
(``answerText``, ``documentName``...) while Python code uses snake_case;
``populate_by_name`` lets handlers build them with either.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from pdfchat.models.rag import Answer, DocumentChunk

_EXCERPT_CHARS = 240


class UploadResponse(BaseModel):
    """Returned once the file is stored and its ingestion job is queued."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "uploaded"
    job_id: str = Field(alias="jobId")
    file_name: str = Field(alias="fileName")


class QueryRequest(BaseModel):
    """A natural-language question about the uploaded documents."""

    question: str = Field(..., min_length=1, max_length=2000)


class SourceReference(BaseModel):
    """Provenance of one chunk used to answer a question."""

    model_config = ConfigDict(populate_by_name=True)

    document_name: str = Field(alias="documentName")
    page_number: int | None = Field(default=None, alias="pageNumber")
    sequence_index: int = Field(alias="sequenceIndex")
    excerpt: str = ""

    @classmethod
    def from_chunk(cls, chunk: DocumentChunk) -> SourceReference:
        excerpt = chunk.text
        if len(excerpt) > _EXCERPT_CHARS:
            excerpt = excerpt[:_EXCERPT_CHARS].rsplit(" ", 1)[0] + "..."
        return cls(
            document_name=chunk.source_document,
            page_number=chunk.page_number,
            sequence_index=chunk.sequence_index,
            excerpt=excerpt,
        )


class QueryResponse(BaseModel):
    """Answer text plus the sources it was grounded on, in relevance order."""

    model_config = ConfigDict(populate_by_name=True)

    answer_text: str = Field(alias="answerText")
    grounded: bool = True
    sources: list[SourceReference] = Field(default_factory=list)

    @classmethod
    def from_answer(cls, answer: Answer) -> QueryResponse:
        return cls(
            answer_text=answer.text,
            grounded=answer.grounded,
            sources=[SourceReference.from_chunk(c) for c in answer.sources],
        )


class QueueDepthResponse(BaseModel):
    pending: int = 0
    processing: int = 0
    dead: int = 0


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    vector_store_available: bool
    queue: QueueDepthResponse | None = None


class CorpusStatsResponse(BaseModel):
    """Size of the indexed collection."""

    collection: str
    total_chunks: int = 0
    total_documents: int = 0
    documents: list[str] = Field(default_factory=list)


class DeadLetterResponse(BaseModel):
    """One dead-lettered job as shown to an operator."""

    job_id: str | None = None
    file_name: str | None = None
    error_kind: str
    error_message: str = ""
    attempts: int = 0
    failed_at: datetime


class DeadLetterListResponse(BaseModel):
    entries: list[DeadLetterResponse] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
