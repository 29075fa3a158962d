"""pdfchat ingestion worker entry point.

Runs the :class:`IngestionWorker` pool against the shared job queue until
SIGINT or SIGTERM, then lets in-flight jobs finish and exits.  Start as
many worker processes as needed; the queue's lease model makes each job
run on one worker at a time.
"""

from __future__ import annotations

import asyncio
import signal

import structlog

from pdfchat.config.settings import Settings
from pdfchat.services.ingestion.worker import IngestionWorker
from pdfchat.utils.logging import configure_logging, get_logger
from pdfchat.wiring import build_components, close_components

_logger: structlog.BoundLogger = get_logger(__name__)


def build_worker(settings: Settings, components: dict) -> IngestionWorker:
    return IngestionWorker(
        queue=components["job_queue"],
        ingestion_service=components["ingestion_service"],
        concurrency=settings.worker_concurrency,
        job_timeout=settings.job_timeout_seconds,
        max_job_attempts=settings.max_job_attempts,
        dequeue_timeout=settings.dequeue_timeout_seconds,
        reclaim_interval=settings.reclaim_interval_seconds,
    )


async def serve(settings: Settings) -> dict[str, int]:
    """Run one worker process until a shutdown signal arrives."""
    components = build_components(settings)
    worker = build_worker(settings, components)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    _logger.info(
        "worker_process_started",
        queue=settings.queue_name,
        collection=settings.chroma_collection,
        concurrency=settings.worker_concurrency,
    )
    try:
        return await worker.run(stop_event)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await close_components(components)


def main() -> None:
    settings = Settings()
    configure_logging(
        log_level=settings.log_level,
        json_output=(settings.app_env == "production"),
    )
    counts = asyncio.run(serve(settings))
    _logger.info("worker_process_exited", **counts)


if __name__ == "__main__":
    main()
