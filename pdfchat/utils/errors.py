"""Custom exception hierarchy for pdfchat.

All application exceptions inherit from :class:`PDFChatError`, which
carries an optional ``provider_name`` so error handlers can identify which
external capability (e.g. "openai", "chromadb", "redis") caused the failure.

The hierarchy is organized by how a caller should react:

    PDFChatError  (base -- catch-all for any pdfchat error)
    +-- TransientCapabilityError    (retry with backoff)
    |   +-- EmbeddingUnavailableError
    |   +-- GenerationUnavailableError
    |   +-- VectorStoreUnavailableError
    |   +-- QueueUnavailableError
    +-- TerminalInputError          (never retried; dead-lettered)
    |   +-- FileUnreadableError
    |   +-- MalformedJobError
    |   +-- RequestRejectedError
    +-- ConfigurationError          (startup / missing config)
    +-- DeadlineExceededError       (an operation ran past its deadline)

The ingestion worker requeues on transient errors and deadlines, and
dead-letters on terminal input and configuration errors.
"""


class PDFChatError(Exception):
    """Base exception for all pdfchat errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Transient capability errors
# ---------------------------------------------------------------------------

class TransientCapabilityError(PDFChatError):
    """An external capability failed in a way that may succeed on retry."""

    def __init__(
        self,
        message: str = "External capability is temporarily unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingUnavailableError(TransientCapabilityError):
    """Raised when the embedding service cannot produce vectors."""

    def __init__(
        self,
        message: str = "Embedding service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationUnavailableError(TransientCapabilityError):
    """Raised when the text generator fails or returns no content."""

    def __init__(
        self,
        message: str = "Text generation service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreUnavailableError(TransientCapabilityError):
    """Raised when the vector store rejects or cannot serve a request."""

    def __init__(
        self,
        message: str = "Vector store is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QueueUnavailableError(TransientCapabilityError):
    """Raised when the job broker cannot be reached."""

    def __init__(
        self,
        message: str = "Job queue is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Terminal input errors
# ---------------------------------------------------------------------------

class TerminalInputError(PDFChatError):
    """The input itself is unusable; retrying cannot help."""

    def __init__(
        self,
        message: str = "Input cannot be processed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class FileUnreadableError(TerminalInputError):
    """Raised when an uploaded file is missing, corrupt, encrypted or not a PDF."""

    def __init__(
        self,
        message: str = "File could not be read as a PDF",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MalformedJobError(TerminalInputError):
    """Raised when a queue payload cannot be decoded into an upload job."""

    def __init__(
        self,
        message: str = "Job payload is malformed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RequestRejectedError(TerminalInputError):
    """Raised when an external service rejects a request as invalid (HTTP 400/422)."""

    def __init__(
        self,
        message: str = "Request was rejected by the external service",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration / deadline errors
# ---------------------------------------------------------------------------

class ConfigurationError(PDFChatError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DeadlineExceededError(PDFChatError):
    """Raised when an I/O call or a whole request runs past its deadline."""

    def __init__(
        self,
        message: str = "Operation exceeded its deadline",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
