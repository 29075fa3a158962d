"""Utility modules for pdfchat.

- **errors** -- exception hierarchy rooted at PDFChatError, split by how a
  caller should react (retry, dead-letter, fail fast).
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **retry** -- bounded exponential-backoff retry for capability calls.
"""

from pdfchat.utils.errors import (
    ConfigurationError,
    DeadlineExceededError,
    EmbeddingUnavailableError,
    FileUnreadableError,
    GenerationUnavailableError,
    MalformedJobError,
    PDFChatError,
    QueueUnavailableError,
    RequestRejectedError,
    TerminalInputError,
    TransientCapabilityError,
    VectorStoreUnavailableError,
)
from pdfchat.utils.logging import configure_logging, get_logger
from pdfchat.utils.retry import RetryPolicy

__all__ = [
    "ConfigurationError",
    "DeadlineExceededError",
    "EmbeddingUnavailableError",
    "FileUnreadableError",
    "GenerationUnavailableError",
    "MalformedJobError",
    "PDFChatError",
    "QueueUnavailableError",
    "RequestRejectedError",
    "RetryPolicy",
    "TerminalInputError",
    "TransientCapabilityError",
    "VectorStoreUnavailableError",
    "configure_logging",
    "get_logger",
]
