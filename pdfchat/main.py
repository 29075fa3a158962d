"""pdfchat FastAPI application entry point.

Builds the shared providers and services once at startup, stores them on
``app.state`` for the route dependencies, and releases them on shutdown.
Configuration comes from the environment / ``.env`` via :class:`Settings`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from pdfchat.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from pdfchat.api.routes import router as api_router
from pdfchat.config.settings import Settings
from pdfchat.utils.logging import configure_logging, get_logger
from pdfchat.wiring import build_components, close_components

settings = Settings()
configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = build_components(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version="0.1.0",
        environment=settings.app_env,
        collection=settings.chroma_collection,
        queue=settings.queue_name,
    )

    yield

    await close_components(components)
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="pdfchat API",
        version="0.1.0",
        description=(
            "Upload PDF files, have them chunked and indexed in the background, "
            "then ask questions answered only from their content, with the "
            "document and page of every source."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    @application.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"status": "All good"}

    return application


app = create_app()


def run() -> None:
    """Console-script entry point: serve the API with uvicorn."""
    uvicorn.run(
        "pdfchat.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    run()
