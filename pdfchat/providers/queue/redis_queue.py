"""Redis-backed reliable job queue.

Implements :class:`IJobQueue` on four Redis keys derived from the queue
name:

    <name>             pending jobs (LPUSH to enqueue, consumed from the right)
    <name>:processing  jobs handed to a worker and not yet settled
    <name>:leases      sorted set: payload -> lease expiry (unix seconds)
    <name>:dead        dead-letter entries, most recent first

``dequeue`` moves a payload from pending to processing with BLMOVE and
then records its lease.  Those are two round trips, so a worker can die
between them and leave a processing entry without a lease.
``reclaim_expired`` adopts such entries by giving them a full lease, and
returns them to pending once that lease runs out.

Every push (enqueue, requeue, reclaim, replay) stamps the job with a fresh
``delivery_id``.  The payload string is both the processing-list entry
and the lease member, so it must be unique per delivery: two copies of
the same job with the same attempt count would otherwise share one lease,
and acking either would orphan the other.
"""

from __future__ import annotations

import time

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError

from pdfchat.interfaces.job_queue import IJobQueue, JobDelivery
from pdfchat.models.jobs import DeadLetterEntry, QueueDepth, UploadJob
from pdfchat.utils.errors import MalformedJobError, QueueUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class RedisJobQueue(IJobQueue):
    """At-least-once upload queue on Redis lists with visibility timeouts."""

    def __init__(
        self,
        queue_name: str = "file-upload-queue",
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        visibility_timeout: float = 600.0,
        client: redis.Redis | None = None,
    ) -> None:
        self._name = queue_name
        self._processing_key = f"{queue_name}:processing"
        self._leases_key = f"{queue_name}:leases"
        self._dead_key = f"{queue_name}:dead"
        self._visibility_timeout = visibility_timeout
        self._redis = client or redis.Redis(host=host, port=port, db=db, decode_responses=True)
        self._endpoint = f"{host}:{port}/{db}"

    @property
    def queue_name(self) -> str:
        return self._name

    # ------------------------------------------------------------------
    # IJobQueue implementation
    # ------------------------------------------------------------------

    async def enqueue(self, job: UploadJob) -> str:
        try:
            await self._redis.lpush(self._name, job.stamped().to_payload())
        except RedisError as exc:
            raise self._unavailable("enqueue", exc) from exc
        logger.info("job_enqueued", queue=self._name, job_id=job.job_id, file_name=job.file_name)
        return job.job_id

    async def dequeue(self, timeout: float) -> JobDelivery | None:
        # BLMOVE is atomic, so a payload is always either pending or in processing.
        try:
            payload = await self._redis.blmove(
                self._name, self._processing_key, timeout, src="RIGHT", dest="LEFT"
            )
            if payload is None:
                return None
            # If this fails the entry sits in processing without a lease
            # until the reclaimer adopts it.
            await self._redis.zadd(self._leases_key, {payload: self._lease_deadline()})
        except RedisError as exc:
            raise self._unavailable("dequeue", exc) from exc
        return JobDelivery(receipt=payload)

    async def ack(self, delivery: JobDelivery) -> None:
        # The receipt is the exact payload; delivery_id makes it unique per push.
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self._processing_key, 1, delivery.receipt)
                pipe.zrem(self._leases_key, delivery.receipt)
                await pipe.execute()
        except RedisError as exc:
            raise self._unavailable("ack", exc) from exc

    async def requeue(self, delivery: JobDelivery, job: UploadJob) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self._processing_key, 1, delivery.receipt)
                pipe.zrem(self._leases_key, delivery.receipt)
                pipe.lpush(self._name, job.stamped().to_payload())
                await pipe.execute()
        except RedisError as exc:
            raise self._unavailable("requeue", exc) from exc
        logger.info("job_requeued", queue=self._name, job_id=job.job_id, attempts=job.attempts)

    async def dead_letter(self, delivery: JobDelivery, entry: DeadLetterEntry) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self._processing_key, 1, delivery.receipt)
                pipe.zrem(self._leases_key, delivery.receipt)
                pipe.lpush(self._dead_key, entry.model_dump_json())
                await pipe.execute()
        except RedisError as exc:
            raise self._unavailable("dead_letter", exc) from exc
        logger.warning(
            "job_dead_lettered",
            queue=self._name,
            file_name=entry.file_name,
            error_kind=entry.error_kind,
            attempts=entry.attempts,
        )

    async def reclaim_expired(self) -> int:
        """Return expired leases to the front of the pending list.

        Processing entries that have no lease at all are given one first,
        so a delivery whose lease was never written is redelivered after
        one visibility timeout instead of staying in processing forever.
        """
        reclaimed = 0
        try:
            adopted = await self._adopt_unleased()
            expired = await self._redis.zrangebyscore(self._leases_key, "-inf", time.time())
            for payload in expired:
                # LREM decides ownership when several reclaimers race.
                removed = await self._redis.lrem(self._processing_key, 1, payload)
                await self._redis.zrem(self._leases_key, payload)
                if not removed:
                    continue
                try:
                    job = UploadJob.from_payload(payload)
                    # An expired lease counts as a failed attempt.
                    payload_out = job.with_attempt().stamped().to_payload()
                except MalformedJobError:
                    # Pushed back as-is; the worker dead-letters it.
                    payload_out = payload
                await self._redis.rpush(self._name, payload_out)
                reclaimed += 1
        except RedisError as exc:
            raise self._unavailable("reclaim_expired", exc) from exc
        if adopted:
            logger.warning("unleased_jobs_adopted", queue=self._name, count=adopted)
        if reclaimed:
            logger.warning("jobs_reclaimed", queue=self._name, count=reclaimed)
        return reclaimed

    async def list_dead_letters(self, limit: int = 50) -> list[DeadLetterEntry]:
        try:
            raw_entries = await self._redis.lrange(self._dead_key, 0, max(limit, 1) - 1)
        except RedisError as exc:
            raise self._unavailable("list_dead_letters", exc) from exc

        entries: list[DeadLetterEntry] = []
        for raw in raw_entries:
            try:
                entries.append(DeadLetterEntry.model_validate_json(raw))
            except ValidationError:
                logger.warning("dead_letter_undecodable", queue=self._name, raw=raw[:200])
        return entries

    async def replay_dead_letter(self, job_id: str) -> bool:
        try:
            raw_entries = await self._redis.lrange(self._dead_key, 0, -1)
            for raw in raw_entries:
                try:
                    entry = DeadLetterEntry.model_validate_json(raw)
                except ValidationError:
                    continue
                if entry.job is None or entry.job.job_id != job_id:
                    continue
                fresh = entry.job.model_copy(update={"attempts": 0}).stamped()
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.lrem(self._dead_key, 1, raw)
                    pipe.lpush(self._name, fresh.to_payload())
                    await pipe.execute()
                logger.info("dead_letter_replayed", queue=self._name, job_id=job_id)
                return True
        except RedisError as exc:
            raise self._unavailable("replay_dead_letter", exc) from exc
        return False

    async def depth(self) -> QueueDepth:
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.llen(self._name)
                pipe.llen(self._processing_key)
                pipe.llen(self._dead_key)
                pending, processing, dead = await pipe.execute()
        except RedisError as exc:
            raise self._unavailable("depth", exc) from exc
        return QueueDepth(pending=pending, processing=processing, dead=dead)

    async def close(self) -> None:
        await self._redis.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _unavailable(self, operation: str, exc: Exception) -> QueueUnavailableError:
        logger.error("queue_unavailable", queue=self._name, operation=operation, error=str(exc))
        return QueueUnavailableError(
            message=f"Redis {operation} failed at {self._endpoint}: {exc}",
            provider_name="redis",
        )

    def _lease_deadline(self) -> float:
        return time.time() + self._visibility_timeout

    async def _adopt_unleased(self) -> int:
        """Lease every processing entry that has none and return how many."""
        in_flight = await self._redis.lrange(self._processing_key, 0, -1)
        if not in_flight:
            return 0
        scores = await self._redis.zmscore(self._leases_key, in_flight)
        orphans = [payload for payload, score in zip(in_flight, scores) if score is None]
        if not orphans:
            return 0
        # NX: a dequeue that lands its own ZADD first keeps that lease.
        deadline = self._lease_deadline()
        await self._redis.zadd(self._leases_key, {p: deadline for p in orphans}, nx=True)
        return len(orphans)
