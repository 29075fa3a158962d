"""ChromaDB vector store provider adapter.

Wraps a ChromaDB client to implement :class:`IVectorStoreProvider`.  Uses
cosine distance for similarity search.  Runs embedded
(``PersistentClient``) for single-host setups, or against a Chroma server
(``HttpClient``) when the API and worker run on different machines.

Record ids are ``"<source_document>::<sequence_index>"`` so upserting a
reprocessed document overwrites the previous records in place.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# Must be set before chromadb is imported.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from pdfchat.interfaces.vector_store_provider import IVectorStoreProvider
from pdfchat.models.rag import CorpusStats, DocumentChunk, IndexedRecord, RetrievedChunk
from pdfchat.utils.errors import ConfigurationError, VectorStoreUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 5000


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by a ChromaDB collection.

    Vectors are always supplied by the caller; the collection is opened
    without an embedding function.  ChromaDB's client is synchronous, so
    every call is pushed to a worker thread to keep the event loop free.
    """

    def __init__(
        self,
        collection_name: str = "pdf-docs",
        persist_directory: str = "./data/chromadb",
        host: str | None = None,
        port: int = 8000,
        expected_dimension: int | None = None,
        batch_size: int = 500,
    ) -> None:
        self._collection_name = collection_name
        self._expected_dimension = expected_dimension
        self._batch_size = batch_size
        client_settings = chromadb.config.Settings(anonymized_telemetry=False)
        try:
            if host:
                self._client = chromadb.HttpClient(host=host, port=port, settings=client_settings)
            else:
                self._client = chromadb.PersistentClient(
                    path=persist_directory, settings=client_settings
                )
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
        except Exception as exc:
            raise VectorStoreUnavailableError(
                message=f"Cannot open ChromaDB collection '{collection_name}': {exc}",
                provider_name="chromadb",
            ) from exc

        self._validate_embedding_dimensions()

    # ------------------------------------------------------------------
    # Startup validation
    # ------------------------------------------------------------------

    def _validate_embedding_dimensions(self) -> None:
        """Verify stored vectors match the embedding provider's dimension.

        A mismatch means every query would compare vectors from different
        models, so startup fails instead.
        """
        if self._expected_dimension is None:
            return
        try:
            if self._collection.count() == 0:
                return
            sample = self._collection.peek(limit=1)
        except Exception as exc:
            logger.warning("embedding_dimension_check_skipped", error=str(exc))
            return

        embeddings = sample.get("embeddings") if sample else None
        if embeddings is None or len(embeddings) == 0:
            return

        stored_dim = len(embeddings[0])
        if stored_dim != self._expected_dimension:
            logger.error(
                "embedding_dimension_mismatch",
                stored_dim=stored_dim,
                expected_dim=self._expected_dimension,
                collection=self._collection_name,
            )
            raise ConfigurationError(
                message=(
                    f"Embedding dimension mismatch: collection '{self._collection_name}' "
                    f"holds {stored_dim}-dim vectors but the embedding model produces "
                    f"{self._expected_dimension}-dim vectors. Set OPENAI_EMBEDDING_MODEL "
                    f"to the model used to build the collection."
                ),
                provider_name="chromadb",
            )
        logger.info("embedding_dimension_validated", dimension=stored_dim)

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    @property
    def collection_name(self) -> str:
        return self._collection_name

    async def upsert(self, records: list[IndexedRecord]) -> int:
        """Insert or replace records in batches of ``batch_size``."""
        if not records:
            return 0
        self._check_records(records)
        try:
            return await asyncio.to_thread(self._upsert_sync, records)
        except Exception as exc:
            raise VectorStoreUnavailableError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def query(self, vector: list[float], top_k: int) -> list[RetrievedChunk]:
        try:
            retrieved = await asyncio.to_thread(self._query_sync, vector, top_k)
        except Exception as exc:
            raise VectorStoreUnavailableError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info(
            "chromadb_query",
            top_k=top_k,
            results_count=len(retrieved),
            top_score=retrieved[0].similarity_score if retrieved else 0.0,
        )
        return retrieved

    async def delete_stale(self, source_document: str, keep_count: int) -> int:
        where = {
            "$and": [
                {"source_document": source_document},
                {"sequence_index": {"$gte": keep_count}},
            ]
        }
        try:
            deleted = await asyncio.to_thread(self._delete_where_sync, where)
        except Exception as exc:
            raise VectorStoreUnavailableError(
                message=f"ChromaDB delete_stale failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        if deleted:
            logger.info(
                "chromadb_delete_stale",
                source_document=source_document,
                keep_count=keep_count,
                deleted_count=deleted,
            )
        return deleted

    async def get_stats(self) -> CorpusStats:
        """Return chunk and document counts, paging through metadata."""
        try:
            return await asyncio.to_thread(self._stats_sync)
        except Exception as exc:
            raise VectorStoreUnavailableError(
                message=f"ChromaDB get_stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Synchronous ChromaDB calls (run in a worker thread)
    # ------------------------------------------------------------------

    def _upsert_sync(self, records: list[IndexedRecord]) -> int:
        total_stored = 0
        for start in range(0, len(records), self._batch_size):
            batch = records[start : start + self._batch_size]
            self._collection.upsert(
                ids=[r.chunk.chunk_id for r in batch],
                embeddings=[r.vector for r in batch],
                documents=[r.chunk.text for r in batch],
                metadatas=[self._chunk_to_metadata(r.chunk) for r in batch],
            )
            total_stored += len(batch)
        logger.info(
            "chromadb_upsert",
            count=total_stored,
            batches=(len(records) + self._batch_size - 1) // self._batch_size,
        )
        return total_stored

    def _query_sync(self, vector: list[float], top_k: int) -> list[RetrievedChunk]:
        count = self._collection.count()
        if count == 0 or top_k <= 0:
            return []

        # Over-fetch so ties at the cut-off are ordered by key, not by index internals.
        fetch_k = min(count, top_k * 2)
        results = self._collection.query(query_embeddings=[vector], n_results=fetch_k)

        if not results["documents"] or not results["documents"][0]:
            return []

        documents = results["documents"][0]
        metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(documents)
        distances = results["distances"][0] if results["distances"] else [1.0] * len(documents)

        retrieved = [
            RetrievedChunk(
                chunk=self._metadata_to_chunk(meta, text),
                similarity_score=max(0.0, min(1.0, 1.0 - distance)),
            )
            for text, meta, distance in zip(documents, metadatas, distances, strict=True)
        ]
        # Scores are rounded first so float noise cannot split a tie; ties then go
        # by document name and position.
        retrieved.sort(
            key=lambda rc: (
                -round(rc.similarity_score, 9),
                rc.chunk.source_document,
                rc.chunk.sequence_index,
            )
        )
        return retrieved[:top_k]

    def _delete_where_sync(self, where: dict[str, Any]) -> int:
        existing = self._collection.get(where=where, include=["metadatas"])
        ids = existing["ids"] or []
        if ids:
            self._collection.delete(ids=ids)
        return len(ids)

    def _stats_sync(self) -> CorpusStats:
        current_count = self._collection.count()
        documents: set[str] = set()
        for offset in range(0, current_count, _PAGE_SIZE):
            page = self._collection.get(include=["metadatas"], limit=_PAGE_SIZE, offset=offset)
            for meta in page["metadatas"] or []:
                name = meta.get("source_document")
                if name:
                    documents.add(name)
        return CorpusStats(
            total_chunks=current_count,
            total_documents=len(documents),
            documents=sorted(documents),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_records(self, records: list[IndexedRecord]) -> None:
        for record in records:
            if record.collection_id != self._collection_name:
                raise ValueError(
                    f"Record {record.chunk.chunk_id} targets collection "
                    f"'{record.collection_id}', not '{self._collection_name}'"
                )
            if (
                self._expected_dimension is not None
                and len(record.vector) != self._expected_dimension
            ):
                raise ValueError(
                    f"Record {record.chunk.chunk_id} has a {len(record.vector)}-dim vector; "
                    f"expected {self._expected_dimension}"
                )

    @staticmethod
    def _chunk_to_metadata(chunk: DocumentChunk) -> dict[str, str | int]:
        """Convert a DocumentChunk to a ChromaDB-compatible metadata dict.

        ChromaDB rejects ``None`` values, so a missing page number is omitted.
        """
        meta: dict[str, str | int] = {
            "source_document": chunk.source_document,
            "sequence_index": chunk.sequence_index,
            "token_count": chunk.token_count,
        }
        if chunk.page_number is not None:
            meta["page_number"] = chunk.page_number
        return meta

    @staticmethod
    def _metadata_to_chunk(meta: dict[str, Any], text: str) -> DocumentChunk:
        page_number = meta.get("page_number")
        return DocumentChunk(
            text=text,
            source_document=meta.get("source_document", "unknown"),
            page_number=int(page_number) if page_number is not None else None,
            sequence_index=int(meta.get("sequence_index", 0)),
            token_count=int(meta.get("token_count", 0)),
        )
