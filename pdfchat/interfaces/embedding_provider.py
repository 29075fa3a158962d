"""Abstract base class for text-embedding service providers.

Defines the contract for turning chunk text and questions into vectors.
The ingestion worker and the query service both depend only on this
interface, so a test double or another backend can be swapped in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAIEmbeddingProvider (pdfchat/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    Vectors for a given provider always have :meth:`get_dimension` entries
    and must be comparable with cosine similarity.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations should
            handle batching internally if the underlying API has a per-call
            limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        pdfchat.utils.errors.EmbeddingUnavailableError
            If the embedding API call fails in a retryable way.
        pdfchat.utils.errors.ConfigurationError
            If the service rejects the configured credentials or model.
        pdfchat.utils.errors.RequestRejectedError
            If the service rejects the input itself (HTTP 400/422).
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text (e.g. a question)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must match the dimension of vectors already stored in the collection.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai-text-embedding-3-small"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP client; called once at shutdown."""
