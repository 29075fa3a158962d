"""Abstract base class for vector-store service providers.

Defines the contract for storing embedded chunks and finding the nearest
ones to a query vector.  Records are keyed by ``(source_document,
sequence_index)``; writing the same key twice replaces the earlier record,
which is what makes redelivered upload jobs harmless.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pdfchat.models.rag import CorpusStats, IndexedRecord, RetrievedChunk


# Concrete implementation: ChromaDBProvider (pdfchat/providers/vector_store/)
class IVectorStoreProvider(ABC):
    """Contract for the similarity-search store shared by worker and API.

    All methods are async so network-backed stores never block the event
    loop.  Failures surface as
    :class:`~pdfchat.utils.errors.VectorStoreUnavailableError`.
    """

    @property
    @abstractmethod
    def collection_name(self) -> str:
        """Name of the collection this provider reads and writes."""

    @abstractmethod
    async def upsert(self, records: list[IndexedRecord]) -> int:
        """Insert or replace *records*, keyed by their chunk ids.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        ValueError
            If a record targets a different collection or has a vector of
            the wrong dimension.
        """

    @abstractmethod
    async def query(self, vector: list[float], top_k: int) -> list[RetrievedChunk]:
        """Return up to *top_k* chunks nearest to *vector*.

        Results are ordered by similarity descending; ties are broken by
        ``(source_document, sequence_index)`` so identical state always
        yields the same ranking.  An empty collection returns ``[]``.
        """

    @abstractmethod
    async def delete_stale(self, source_document: str, keep_count: int) -> int:
        """Delete records of *source_document* with ``sequence_index >= keep_count``.

        Returns
        -------
        int
            Number of records deleted.
        """

    @abstractmethod
    async def get_stats(self) -> CorpusStats:
        """Return chunk and document counts for the collection."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is initialised and reachable."""
