"""Abstract base class for the upload job broker.

Delivery is at-least-once: a dequeued job stays leased until the worker
acks it, requeues it or moves it to the dead-letter list.  A lease that
expires (the worker died or stalled) is reclaimed and the job delivered
again.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from pdfchat.models.jobs import DeadLetterEntry, QueueDepth, UploadJob


@dataclass(frozen=True)
class JobDelivery:
    """One leased queue entry.

    ``receipt`` is the raw payload as stored by the broker; it identifies
    the lease when acking.  Decoding is left to the worker so a malformed
    payload can still be dead-lettered.
    """

    receipt: str

    def decode(self) -> UploadJob:
        return UploadJob.from_payload(self.receipt)


# Concrete implementation: RedisJobQueue (pdfchat/providers/queue/)
class IJobQueue(ABC):
    """Contract for the durable queue between the upload API and the worker.

    Every method raises
    :class:`~pdfchat.utils.errors.QueueUnavailableError` when the broker
    cannot be reached.
    """

    @abstractmethod
    async def enqueue(self, job: UploadJob) -> str:
        """Append *job* to the pending list and return its ``job_id``."""

    @abstractmethod
    async def dequeue(self, timeout: float) -> JobDelivery | None:
        """Lease the oldest pending job, waiting up to *timeout* seconds.

        Returns ``None`` when nothing arrived in time.
        """

    @abstractmethod
    async def ack(self, delivery: JobDelivery) -> None:
        """Mark *delivery* as done and release its lease."""

    @abstractmethod
    async def requeue(self, delivery: JobDelivery, job: UploadJob) -> None:
        """Release the lease on *delivery* and put *job* back on the pending list."""

    @abstractmethod
    async def dead_letter(self, delivery: JobDelivery, entry: DeadLetterEntry) -> None:
        """Release the lease on *delivery* and store *entry* for manual inspection."""

    @abstractmethod
    async def reclaim_expired(self) -> int:
        """Return jobs with expired leases to the pending list.

        Each reclaimed job has its ``attempts`` incremented.  Returns the
        number of jobs reclaimed.
        """

    @abstractmethod
    async def list_dead_letters(self, limit: int = 50) -> list[DeadLetterEntry]:
        """Return up to *limit* dead-lettered entries, most recent first."""

    @abstractmethod
    async def replay_dead_letter(self, job_id: str) -> bool:
        """Re-enqueue the dead-lettered job *job_id* with attempts reset.

        Returns ``False`` if no entry with that id exists.
        """

    @abstractmethod
    async def depth(self) -> QueueDepth:
        """Return the number of pending, in-flight and dead-lettered jobs."""

    @abstractmethod
    async def close(self) -> None:
        """Release broker connections."""
