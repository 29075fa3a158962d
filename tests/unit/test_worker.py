"""Unit tests for IngestionWorker: per-delivery policy and the run loop."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from pdfchat.interfaces.job_queue import JobDelivery
from pdfchat.models.jobs import JobStatus, UploadJob
from pdfchat.models.rag import IngestionResult
from pdfchat.services.ingestion.worker import IngestionWorker
from pdfchat.utils.errors import (
    ConfigurationError,
    EmbeddingUnavailableError,
    FileUnreadableError,
    RequestRejectedError,
)


def _job(attempts: int = 0) -> UploadJob:
    return UploadJob(file_name="guide.pdf", storage_path="uploads/guide.pdf", attempts=attempts)


def _result(job: UploadJob, chunks: int = 3) -> IngestionResult:
    return IngestionResult(job_id=job.job_id, source_document=job.file_name, chunks_created=chunks)


async def _deliver(queue, job: UploadJob) -> JobDelivery:
    await queue.enqueue(job)
    delivery = await queue.dequeue(timeout=0.1)
    assert delivery is not None
    return delivery


def _worker(queue, service, **kwargs) -> IngestionWorker:
    defaults = {"concurrency": 2, "job_timeout": 5.0, "max_job_attempts": 3, "dequeue_timeout": 0.01}
    defaults.update(kwargs)
    return IngestionWorker(queue=queue, ingestion_service=service, **defaults)


class TestHandle:
    @pytest.mark.asyncio
    async def test_success_acks(self, job_queue) -> None:
        job = _job()
        service = MagicMock()
        service.process_job = AsyncMock(return_value=_result(job))
        delivery = await _deliver(job_queue, job)

        outcome = await _worker(job_queue, service).handle(delivery)

        assert outcome.status is JobStatus.COMPLETED
        assert outcome.chunk_count == 3
        assert outcome.attempts == 1
        assert job_queue.acked == [delivery.receipt]
        assert job_queue.processing == []

    @pytest.mark.asyncio
    async def test_transient_failure_requeues_with_attempt(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(side_effect=EmbeddingUnavailableError())
        delivery = await _deliver(job_queue, _job())

        outcome = await _worker(job_queue, service).handle(delivery)

        assert outcome.status is JobStatus.REQUEUED
        assert outcome.error_kind == "EmbeddingUnavailableError"
        requeued = UploadJob.from_payload(job_queue.pending[0])
        assert requeued.attempts == 1
        assert job_queue.dead == []

    @pytest.mark.asyncio
    async def test_unreadable_file_is_dead_lettered_without_retry(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(side_effect=FileUnreadableError(message="Not a readable PDF"))
        delivery = await _deliver(job_queue, _job())

        outcome = await _worker(job_queue, service).handle(delivery)

        assert outcome.status is JobStatus.DEAD_LETTERED
        assert outcome.error_kind == "FileUnreadableError"
        assert service.process_job.await_count == 1
        assert len(job_queue.dead) == 1
        assert job_queue.dead[0].file_name == "guide.pdf"
        assert list(job_queue.pending) == []

    @pytest.mark.asyncio
    async def test_rejected_embedding_request_is_dead_lettered_without_retry(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(
            side_effect=RequestRejectedError(message="input too long", provider_name="openai_embedding")
        )
        delivery = await _deliver(job_queue, _job())

        outcome = await _worker(job_queue, service).handle(delivery)

        assert outcome.status is JobStatus.DEAD_LETTERED
        assert outcome.error_kind == "RequestRejectedError"
        assert outcome.attempts == 1
        assert list(job_queue.pending) == []

    @pytest.mark.asyncio
    async def test_configuration_error_is_dead_lettered(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(side_effect=ConfigurationError())
        outcome = await _worker(job_queue, service).handle(await _deliver(job_queue, _job()))
        assert outcome.status is JobStatus.DEAD_LETTERED

    @pytest.mark.asyncio
    async def test_last_attempt_failure_is_dead_lettered(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(side_effect=EmbeddingUnavailableError())
        delivery = await _deliver(job_queue, _job(attempts=2))

        outcome = await _worker(job_queue, service, max_job_attempts=3).handle(delivery)

        assert outcome.status is JobStatus.DEAD_LETTERED
        assert outcome.attempts == 3
        assert job_queue.dead[0].error_kind == "EmbeddingUnavailableError"

    @pytest.mark.asyncio
    async def test_exhausted_job_is_dead_lettered_without_processing(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock()
        delivery = await _deliver(job_queue, _job(attempts=3))

        outcome = await _worker(job_queue, service, max_job_attempts=3).handle(delivery)

        assert outcome.status is JobStatus.DEAD_LETTERED
        assert outcome.error_kind == "RetriesExhausted"
        service.process_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_payload_is_dead_lettered(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock()
        job_queue.push_raw("{not json")
        delivery = await job_queue.dequeue(timeout=0.1)

        outcome = await _worker(job_queue, service).handle(delivery)

        assert outcome.status is JobStatus.DEAD_LETTERED
        assert outcome.error_kind == "MalformedJobError"
        assert job_queue.dead[0].job is None
        assert job_queue.dead[0].raw_payload == "{not json"
        service.process_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_job_timeout_requeues(self, job_queue) -> None:
        async def slow(job):
            await asyncio.sleep(1.0)

        service = MagicMock()
        service.process_job = slow
        delivery = await _deliver(job_queue, _job())

        outcome = await _worker(job_queue, service, job_timeout=0.01).handle(delivery)

        assert outcome.status is JobStatus.REQUEUED
        assert outcome.error_kind == "DeadlineExceededError"

    @pytest.mark.asyncio
    async def test_unexpected_exception_requeues(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(side_effect=RuntimeError("boom"))
        outcome = await _worker(job_queue, service).handle(await _deliver(job_queue, _job()))
        assert outcome.status is JobStatus.REQUEUED
        assert outcome.error_kind == "RuntimeError"


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_processes_queue_then_stops(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(side_effect=lambda job: _result(job))
        for _ in range(5):
            await job_queue.enqueue(_job())

        stop = asyncio.Event()
        worker = _worker(job_queue, service, concurrency=2)
        task = asyncio.create_task(worker.run(stop))

        for _ in range(200):
            if len(job_queue.acked) == 5:
                break
            await asyncio.sleep(0.01)
        stop.set()
        counts = await asyncio.wait_for(task, timeout=2.0)

        assert counts == {"completed": 5}
        assert job_queue.processing == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, job_queue) -> None:
        active = 0
        peak = 0

        async def process(job):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return _result(job)

        service = MagicMock()
        service.process_job = process
        for _ in range(8):
            await job_queue.enqueue(_job())

        stop = asyncio.Event()
        task = asyncio.create_task(_worker(job_queue, service, concurrency=3).run(stop))
        for _ in range(300):
            if len(job_queue.acked) == 8:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert len(job_queue.acked) == 8
        assert 1 < peak <= 3

    @pytest.mark.asyncio
    async def test_reclaims_expired_leases(self, job_queue) -> None:
        service = MagicMock()
        service.process_job = AsyncMock(side_effect=lambda job: _result(job))
        # A job stuck in processing from a crashed worker.
        await job_queue.enqueue(_job())
        await job_queue.dequeue(timeout=0.1)
        job_queue.leases_expired = True

        stop = asyncio.Event()
        task = asyncio.create_task(_worker(job_queue, service, reclaim_interval=0.01).run(stop))
        for _ in range(200):
            if job_queue.acked:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert len(job_queue.acked) == 1
        assert UploadJob.from_payload(job_queue.acked[0]).attempts == 1
