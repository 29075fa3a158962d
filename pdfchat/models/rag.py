"""Retrieval data models for the pdfchat document index.

Defines Pydantic v2 models for extracted pages, document chunks, indexed
records, retrieval results, answers and corpus statistics.  All models use
frozen config so a value can be shared between tasks without copying.

Lifecycle of the data:

    1. EXTRACTION: the worker reads each page of an uploaded PDF
       (:class:`PageText`).
    2. CHUNKING: page text is split into overlapping windows
       (:class:`DocumentChunk`), numbered across the whole document.
    3. INDEXING: each chunk is embedded and stored as an
       :class:`IndexedRecord` keyed by ``(source_document, sequence_index)``.
    4. RETRIEVAL: a question's embedding returns the nearest records as
       :class:`RetrievedChunk` values, most relevant first.
    5. ANSWERING: the chunks that fit the prompt become the
       :class:`Answer` sources.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PageText(BaseModel):
    """Raw text of one PDF page with its 1-based page number."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1, description="1-based page number within the PDF.")
    text: str = Field(default="", description="Extracted page text.")


# ---------------------------------------------------------------------------
# DocumentChunk -- the unit of retrieval.
# ---------------------------------------------------------------------------
class DocumentChunk(BaseModel):
    """A bounded passage of document text, ready for embedding and storage.

    ``chunk_id`` is derived from ``(source_document, sequence_index)`` so
    reprocessing the same upload overwrites the same records instead of
    adding duplicates.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1, description="The chunk's textual content.")
    source_document: str = Field(
        min_length=1, description="Name of the uploaded file the chunk came from."
    )
    page_number: int | None = Field(
        default=None, ge=1, description="1-based page the chunk was taken from."
    )
    sequence_index: int = Field(
        ge=0, description="Position of the chunk within its document, starting at 0."
    )
    token_count: int = Field(default=0, ge=0, description="Approximate token count (chars / 4).")

    @property
    def chunk_id(self) -> str:
        return f"{self.source_document}::{self.sequence_index}"


class IndexedRecord(BaseModel):
    """A chunk paired with its embedding, bound for one collection."""

    model_config = ConfigDict(frozen=True)

    vector: list[float] = Field(min_length=1, description="Embedding of the chunk text.")
    chunk: DocumentChunk
    collection_id: str = Field(min_length=1, description="Target vector-store collection.")


# ---------------------------------------------------------------------------
# RetrievedChunk -- a search result from the vector store.
# ---------------------------------------------------------------------------
class RetrievedChunk(BaseModel):
    """A document chunk returned from a vector-store query with its score."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk = Field(description="The retrieved document chunk.")
    similarity_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Cosine similarity score between the query and this chunk.",
    )

    @property
    def citation(self) -> str:
        """Short human-readable provenance, e.g. ``guide.pdf, page 2``."""
        if self.chunk.page_number is None:
            return self.chunk.source_document
        return f"{self.chunk.source_document}, page {self.chunk.page_number}"


class Answer(BaseModel):
    """A grounded answer and the chunks that were placed in its prompt.

    ``sources`` keeps relevance order.  ``grounded`` is False when nothing
    was retrieved and the fixed no-information answer was returned.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    sources: list[DocumentChunk] = Field(default_factory=list)
    grounded: bool = True


# ---------------------------------------------------------------------------
# IngestionResult -- output of processing one upload job.
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of a single document ingestion run."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(description="Identifier of the upload job that was processed.")
    source_document: str = Field(description="Name of the ingested document.")
    pages: int = Field(default=0, ge=0, description="Number of pages read from the PDF.")
    chunks_created: int = Field(
        default=0, ge=0, description="Number of chunks produced and stored."
    )
    stale_chunks_removed: int = Field(
        default=0,
        ge=0,
        description="Chunks left over from an earlier, longer version of the document.",
    )
    ingestion_time: float = Field(
        default=0.0,
        ge=0.0,
        description="Wall-clock time in seconds for the ingestion run.",
    )


class CorpusStats(BaseModel):
    """Aggregate statistics for the vector-store collection."""

    model_config = ConfigDict(frozen=True)

    total_chunks: int = Field(default=0, ge=0, description="Total number of chunks in the store.")
    total_documents: int = Field(
        default=0, ge=0, description="Total number of distinct source documents."
    )
    documents: list[str] = Field(
        default_factory=list, description="Sorted distinct source document names."
    )
