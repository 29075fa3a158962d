"""Bounded pool that pulls upload jobs and settles each one.

One fetcher task leases deliveries from the :class:`IJobQueue` and hands
them to ``concurrency`` handler tasks through a bounded in-process
channel, so at most ``concurrency`` jobs call the embedding service and
the vector store at once.  A reclaimer task periodically returns jobs
whose lease expired (a crashed or stalled worker) to the queue.

Every delivery ends in exactly one of three ways, reported as a
:class:`~pdfchat.models.jobs.JobOutcome`:

* **completed** -- processed and acked;
* **requeued** -- a transient failure or deadline; tried again later;
* **dead_lettered** -- unreadable input, bad configuration, malformed
  payload, or the attempt budget is spent.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import Counter
from typing import TYPE_CHECKING

import structlog

from pdfchat.models.jobs import DeadLetterEntry, JobOutcome, JobStatus
from pdfchat.utils.errors import (
    ConfigurationError,
    DeadlineExceededError,
    MalformedJobError,
    PDFChatError,
    TerminalInputError,
)

if TYPE_CHECKING:
    from pdfchat.interfaces.job_queue import IJobQueue, JobDelivery
    from pdfchat.models.jobs import UploadJob
    from pdfchat.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)

_RETRIES_EXHAUSTED = "RetriesExhausted"


class IngestionWorker:
    """Pull loop plus bounded handler pool for upload jobs.

    Parameters
    ----------
    queue:
        Source of job deliveries.
    ingestion_service:
        Performs the actual extract / chunk / embed / store work.
    concurrency:
        Number of jobs processed at the same time.
    job_timeout:
        Seconds one job may run before it is abandoned and requeued.
    max_job_attempts:
        Deliveries allowed per job before it is dead-lettered.
    dequeue_timeout:
        Seconds the fetcher blocks on an empty queue before re-checking
        for shutdown.
    reclaim_interval:
        Seconds between sweeps for expired leases.
    """

    def __init__(
        self,
        queue: IJobQueue,
        ingestion_service: IngestionService,
        concurrency: int = 4,
        job_timeout: float = 300.0,
        max_job_attempts: int = 3,
        dequeue_timeout: float = 5.0,
        reclaim_interval: float = 30.0,
    ) -> None:
        self._queue = queue
        self._service = ingestion_service
        self._concurrency = max(1, concurrency)
        self._job_timeout = job_timeout
        self._max_attempts = max(1, max_job_attempts)
        self._dequeue_timeout = dequeue_timeout
        self._reclaim_interval = reclaim_interval
        self._outcomes: Counter[str] = Counter()

    @property
    def outcome_counts(self) -> dict[str, int]:
        return dict(self._outcomes)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def run(self, stop_event: asyncio.Event) -> dict[str, int]:
        """Process jobs until *stop_event* is set, then drain and return counts.

        In-flight jobs are allowed to finish; jobs still in the channel
        when the fetcher stops are handled before returning.
        """
        # Bounded so the fetcher never leases more jobs than handlers can take.
        channel: asyncio.Queue[JobDelivery | None] = asyncio.Queue(maxsize=self._concurrency)
        handlers = [
            asyncio.create_task(self._consume(channel), name=f"ingest-handler-{i}")
            for i in range(self._concurrency)
        ]
        reclaimer = asyncio.create_task(self._reclaim_loop(stop_event), name="ingest-reclaimer")
        logger.info("worker_started", concurrency=self._concurrency)

        try:
            await self._fetch(channel, stop_event)
        finally:
            # One sentinel per handler, queued behind any deliveries still waiting.
            for _ in handlers:
                await channel.put(None)
            await asyncio.gather(*handlers)
            reclaimer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reclaimer
            logger.info("worker_stopped", **self._outcomes)

        return self.outcome_counts

    async def _fetch(
        self,
        channel: asyncio.Queue[JobDelivery | None],
        stop_event: asyncio.Event,
    ) -> None:
        while not stop_event.is_set():
            try:
                delivery = await self._queue.dequeue(self._dequeue_timeout)
            except PDFChatError as exc:
                # Broker outage: back off and keep polling.
                logger.error("dequeue_failed", error=str(exc))
                await self._sleep_or_stop(stop_event, self._dequeue_timeout)
                continue
            if delivery is not None:
                await channel.put(delivery)

    async def _consume(self, channel: asyncio.Queue[JobDelivery | None]) -> None:
        while True:
            delivery = await channel.get()
            if delivery is None:
                return
            try:
                await self.handle(delivery)
            except PDFChatError as exc:
                # Settling failed (queue down); the lease will expire and be reclaimed.
                logger.error("job_settle_failed", error=str(exc))

    async def _reclaim_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self._queue.reclaim_expired()
            except PDFChatError as exc:
                logger.error("reclaim_failed", error=str(exc))
            await self._sleep_or_stop(stop_event, self._reclaim_interval)

    @staticmethod
    async def _sleep_or_stop(stop_event: asyncio.Event, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)

    # ------------------------------------------------------------------
    # Per-delivery policy
    # ------------------------------------------------------------------

    async def handle(self, delivery: JobDelivery) -> JobOutcome:
        """Process one delivery and settle it with the queue."""
        try:
            job = delivery.decode()
        except MalformedJobError as exc:
            outcome = await self._dead_letter(delivery, None, exc, attempts=0)
            return self._record(outcome)

        # A job redelivered by the reclaimer may already be past its budget.
        if job.attempts >= self._max_attempts:
            outcome = await self._dead_letter(
                delivery, job, None, attempts=job.attempts, error_kind=_RETRIES_EXHAUSTED
            )
            return self._record(outcome)

        structlog.contextvars.bind_contextvars(job_id=job.job_id)
        try:
            result = await asyncio.wait_for(self._service.process_job(job), timeout=self._job_timeout)
        except (TerminalInputError, ConfigurationError) as exc:
            # Retrying cannot help; dead-letter on the first failure.
            outcome = await self._dead_letter(delivery, job, exc, attempts=job.attempts + 1)
        except asyncio.TimeoutError:
            exc = DeadlineExceededError(
                message=f"Job exceeded {self._job_timeout}s processing deadline"
            )
            outcome = await self._retry_or_dead_letter(delivery, job, exc)
        except PDFChatError as exc:
            outcome = await self._retry_or_dead_letter(delivery, job, exc)
        except Exception as exc:
            logger.exception("job_unexpected_error", file_name=job.file_name)
            outcome = await self._retry_or_dead_letter(delivery, job, exc)
        else:
            await self._queue.ack(delivery)
            outcome = JobOutcome(
                status=JobStatus.COMPLETED,
                job_id=job.job_id,
                file_name=job.file_name,
                chunk_count=result.chunks_created,
                attempts=job.attempts + 1,
            )
        finally:
            structlog.contextvars.unbind_contextvars("job_id")

        return self._record(outcome)

    async def _retry_or_dead_letter(
        self, delivery: JobDelivery, job: UploadJob, exc: Exception
    ) -> JobOutcome:
        # attempts counts finished tries, so the new count is compared before requeueing.
        retried = job.with_attempt()
        if retried.attempts >= self._max_attempts:
            return await self._dead_letter(delivery, job, exc, attempts=retried.attempts)

        await self._queue.requeue(delivery, retried)
        logger.warning(
            "job_requeued_after_failure",
            file_name=job.file_name,
            attempts=retried.attempts,
            error_kind=type(exc).__name__,
            error=str(exc),
        )
        return JobOutcome(
            status=JobStatus.REQUEUED,
            job_id=job.job_id,
            file_name=job.file_name,
            attempts=retried.attempts,
            error_kind=type(exc).__name__,
        )

    async def _dead_letter(
        self,
        delivery: JobDelivery,
        job: UploadJob | None,
        exc: Exception | None,
        attempts: int,
        error_kind: str | None = None,
    ) -> JobOutcome:
        kind = error_kind or type(exc).__name__
        entry = DeadLetterEntry(
            job=job,
            raw_payload=delivery.receipt,
            error_kind=kind,
            error_message=str(exc) if exc is not None else f"Gave up after {attempts} attempts",
            attempts=attempts,
        )
        await self._queue.dead_letter(delivery, entry)
        return JobOutcome(
            status=JobStatus.DEAD_LETTERED,
            job_id=job.job_id if job else None,
            file_name=job.file_name if job else None,
            attempts=attempts,
            error_kind=kind,
        )

    def _record(self, outcome: JobOutcome) -> JobOutcome:
        self._outcomes[outcome.status.value] += 1
        logger.info(
            "job_settled",
            status=outcome.status.value,
            job_id=outcome.job_id,
            file_name=outcome.file_name,
            chunks=outcome.chunk_count,
            attempts=outcome.attempts,
            error_kind=outcome.error_kind,
        )
        return outcome
