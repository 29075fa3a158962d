"""pdfchat API layer: routes, schemas, and middleware."""

from pdfchat.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from pdfchat.api.routes import router
from pdfchat.api.schemas import (
    CorpusStatsResponse,
    DeadLetterListResponse,
    ErrorResponse,
    HealthResponse,
    QueryRequest,
    QueryResponse,
    UploadResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "CorpusStatsResponse",
    "DeadLetterListResponse",
    "ErrorResponse",
    "HealthResponse",
    "QueryRequest",
    "QueryResponse",
    "UploadResponse",
]
