"""API middleware: CORS, request logging, and error handling.

Provides helper functions and middleware classes to configure cross-origin
resource sharing, structured request logging (via structlog), and
conversion of application errors into JSON ``ErrorResponse`` bodies.

Starlette middleware is a stack (last added runs first).  ``main.py`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware``, so the
request flows::

    Client -> RequestLogging -> ErrorHandling -> route handler

and the request log records the status code chosen by the error handler.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from pdfchat.api.schemas import ErrorResponse
from pdfchat.utils.errors import (
    DeadlineExceededError,
    PDFChatError,
    TerminalInputError,
    TransientCapabilityError,
)
from pdfchat.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# Client-facing text per error family.  Provider messages can carry
# upstream details (URLs, model names) and stay in the server log.
_TRANSIENT_DETAIL = "A backing service is temporarily unavailable. Please retry shortly."
_DEADLINE_DETAIL = "The request took too long to complete. Please retry."
_INPUT_DETAIL = "The request could not be processed."
_INTERNAL_DETAIL = "An internal error occurred."


def status_for_error(exc: Exception) -> tuple[int, str]:
    """Map an exception to ``(http_status, public_detail)``."""
    if isinstance(exc, DeadlineExceededError):
        return 504, _DEADLINE_DETAIL
    if isinstance(exc, TransientCapabilityError):
        return 503, _TRANSIENT_DETAIL
    if isinstance(exc, TerminalInputError):
        return 422, _INPUT_DETAIL
    return 500, _INTERNAL_DETAIL


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; override with specific origins in production.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn uncaught errors into structured JSON responses.

    ``PDFChatError`` subclasses map to 503 (transient), 504 (deadline),
    422 (bad input) or 500.  Anything else becomes a 500.  The client only
    sees the error class and a generic detail; messages and stack traces
    are logged server-side.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except PDFChatError as exc:
            status_code, detail = status_for_error(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                status=status_code,
                path=str(request.url.path),
            )
            body = ErrorResponse(error=type(exc).__name__, detail=detail)
            return JSONResponse(status_code=status_code, content=body.model_dump())
        except Exception:
            _logger.exception("unhandled_error", path=str(request.url.path))
            body = ErrorResponse(error="InternalError", detail=_INTERNAL_DETAIL)
            return JSONResponse(status_code=500, content=body.model_dump())
