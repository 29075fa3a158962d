"""Unit tests for RedisJobQueue against a mocked ``redis.asyncio`` client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pdfchat.interfaces.job_queue import JobDelivery
from pdfchat.models.jobs import DeadLetterEntry, UploadJob
from pdfchat.providers.queue.redis_queue import RedisJobQueue
from pdfchat.utils.errors import QueueUnavailableError


def _job(**overrides) -> UploadJob:
    fields = {"file_name": "guide.pdf", "storage_path": "uploads/1-2-guide.pdf"}
    fields.update(overrides)
    return UploadJob(**fields)


@pytest.fixture()
def pipe() -> MagicMock:
    pipeline = MagicMock()
    pipeline.__aenter__ = AsyncMock(return_value=pipeline)
    pipeline.__aexit__ = AsyncMock(return_value=False)
    pipeline.execute = AsyncMock(return_value=[1, 1, 1])
    return pipeline


@pytest.fixture()
def client(pipe: MagicMock) -> MagicMock:
    mock = MagicMock()
    for name in ("lpush", "rpush", "blmove", "zadd", "zrem", "lrem", "lrange", "zrangebyscore", "zmscore", "aclose"):
        setattr(mock, name, AsyncMock())
    mock.lrange.return_value = []
    mock.zrangebyscore.return_value = []
    mock.pipeline.return_value = pipe
    return mock


@pytest.fixture()
def queue(client: MagicMock) -> RedisJobQueue:
    return RedisJobQueue(queue_name="uploads", visibility_timeout=60.0, client=client)


class TestEnqueueDequeue:
    @pytest.mark.asyncio
    async def test_enqueue_pushes_payload(self, queue: RedisJobQueue, client: MagicMock) -> None:
        job = _job()
        assert await queue.enqueue(job) == job.job_id

        key, payload = client.lpush.await_args.args
        assert key == "uploads"
        queued = UploadJob.from_payload(payload)
        assert queued.job_id == job.job_id
        assert queued.delivery_id

    @pytest.mark.asyncio
    async def test_same_job_enqueued_twice_gets_distinct_payloads(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        job = _job(attempts=1)
        await queue.enqueue(job)
        await queue.enqueue(job)

        first, second = (call.args[1] for call in client.lpush.await_args_list)
        assert first != second
        assert UploadJob.from_payload(first).job_id == UploadJob.from_payload(second).job_id

    @pytest.mark.asyncio
    async def test_dequeue_moves_to_processing_and_leases(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        payload = _job().to_payload()
        client.blmove.return_value = payload

        delivery = await queue.dequeue(timeout=5.0)

        assert delivery == JobDelivery(receipt=payload)
        client.blmove.assert_awaited_once_with(
            "uploads", "uploads:processing", 5.0, src="RIGHT", dest="LEFT"
        )
        lease_key, mapping = client.zadd.await_args.args
        assert lease_key == "uploads:leases"
        assert payload in mapping

    @pytest.mark.asyncio
    async def test_dequeue_timeout_returns_none(self, queue: RedisJobQueue, client: MagicMock) -> None:
        client.blmove.return_value = None
        assert await queue.dequeue(timeout=1.0) is None
        client.zadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error_is_queue_unavailable(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        client.lpush.side_effect = RedisConnectionError("refused")
        with pytest.raises(QueueUnavailableError) as exc_info:
            await queue.enqueue(_job())
        assert exc_info.value.provider_name == "redis"


class TestSettlement:
    @pytest.mark.asyncio
    async def test_ack_releases_lease(self, queue: RedisJobQueue, pipe: MagicMock) -> None:
        delivery = JobDelivery(receipt=_job().to_payload())
        await queue.ack(delivery)

        pipe.lrem.assert_called_once_with("uploads:processing", 1, delivery.receipt)
        pipe.zrem.assert_called_once_with("uploads:leases", delivery.receipt)
        pipe.lpush.assert_not_called()
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_requeue_pushes_updated_job(self, queue: RedisJobQueue, pipe: MagicMock) -> None:
        job = _job()
        delivery = JobDelivery(receipt=job.to_payload())
        retried = job.with_attempt()

        await queue.requeue(delivery, retried)

        pipe.lrem.assert_called_once_with("uploads:processing", 1, delivery.receipt)
        key, payload = pipe.lpush.call_args.args
        assert key == "uploads"
        queued = UploadJob.from_payload(payload)
        assert queued.attempts == 1
        assert queued.delivery_id != job.delivery_id

    @pytest.mark.asyncio
    async def test_dead_letter_stores_entry(self, queue: RedisJobQueue, pipe: MagicMock) -> None:
        job = _job()
        delivery = JobDelivery(receipt=job.to_payload())
        entry = DeadLetterEntry(
            job=job, raw_payload=delivery.receipt, error_kind="FileUnreadableError", attempts=1
        )

        await queue.dead_letter(delivery, entry)

        key, raw = pipe.lpush.call_args.args
        assert key == "uploads:dead"
        assert DeadLetterEntry.model_validate_json(raw) == entry

    @pytest.mark.asyncio
    async def test_pipeline_failure_is_queue_unavailable(
        self, queue: RedisJobQueue, pipe: MagicMock
    ) -> None:
        pipe.execute.side_effect = RedisConnectionError("gone")
        with pytest.raises(QueueUnavailableError):
            await queue.ack(JobDelivery(receipt="{}"))


class TestReclaim:
    @pytest.mark.asyncio
    async def test_expired_lease_returns_job_with_attempt(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        job = _job()
        client.zrangebyscore.return_value = [job.to_payload()]
        client.lrem.return_value = 1

        assert await queue.reclaim_expired() == 1

        key, payload = client.rpush.await_args.args
        assert key == "uploads"
        assert UploadJob.from_payload(payload).attempts == 1
        client.zrem.assert_awaited_once_with("uploads:leases", job.to_payload())

    @pytest.mark.asyncio
    async def test_lease_already_settled_is_skipped(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        client.zrangebyscore.return_value = [_job().to_payload()]
        client.lrem.return_value = 0

        assert await queue.reclaim_expired() == 0
        client.rpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_payload_is_returned_unchanged(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        client.zrangebyscore.return_value = ["garbage"]
        client.lrem.return_value = 1

        assert await queue.reclaim_expired() == 1
        client.rpush.assert_awaited_once_with("uploads", "garbage")

    @pytest.mark.asyncio
    async def test_processing_entry_without_lease_is_adopted(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        payload = _job().stamped().to_payload()
        client.lrange.return_value = [payload]
        client.zmscore.return_value = [None]

        assert await queue.reclaim_expired() == 0

        client.zmscore.assert_awaited_once_with("uploads:leases", [payload])
        key, mapping = client.zadd.await_args.args
        assert key == "uploads:leases"
        assert list(mapping) == [payload]
        assert client.zadd.await_args.kwargs == {"nx": True}

    @pytest.mark.asyncio
    async def test_leased_entries_are_left_alone(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        client.lrange.return_value = [_job().stamped().to_payload()]
        client.zmscore.return_value = [1234.5]

        assert await queue.reclaim_expired() == 0
        client.zadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_job_survives_lease_write_failure_during_dequeue(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        job = _job()
        payload = job.stamped().to_payload()
        client.blmove.return_value = payload
        client.zadd.side_effect = [RedisConnectionError("dropped"), None]

        with pytest.raises(QueueUnavailableError):
            await queue.dequeue(timeout=1.0)

        # First sweep: the entry sits in processing with no lease.
        client.lrange.return_value = [payload]
        client.zmscore.return_value = [None]
        assert await queue.reclaim_expired() == 0
        client.rpush.assert_not_awaited()

        # Next sweep, after the adopted lease expired.
        client.zmscore.return_value = [0.0]
        client.zrangebyscore.return_value = [payload]
        client.lrem.return_value = 1
        assert await queue.reclaim_expired() == 1

        key, redelivered = client.rpush.await_args.args
        assert key == "uploads"
        assert UploadJob.from_payload(redelivered).job_id == job.job_id
        assert UploadJob.from_payload(redelivered).attempts == 1

    @pytest.mark.asyncio
    async def test_reclaim_and_late_requeue_push_distinct_payloads(
        self, queue: RedisJobQueue, client: MagicMock, pipe: MagicMock
    ) -> None:
        job = _job()
        leased = job.stamped().to_payload()
        client.zrangebyscore.return_value = [leased]
        client.lrem.return_value = 1

        await queue.reclaim_expired()
        await queue.requeue(JobDelivery(receipt=leased), job.with_attempt())

        reclaimed = client.rpush.await_args.args[1]
        requeued = pipe.lpush.call_args.args[1]
        assert reclaimed != requeued
        assert UploadJob.from_payload(reclaimed).attempts == 1
        assert UploadJob.from_payload(requeued).attempts == 1


class TestDeadLetterInspection:
    @pytest.mark.asyncio
    async def test_list_skips_undecodable_entries(
        self, queue: RedisJobQueue, client: MagicMock
    ) -> None:
        entry = DeadLetterEntry(job=_job(), raw_payload="{}", error_kind="FileUnreadableError")
        client.lrange.return_value = [entry.model_dump_json(), "not json"]

        entries = await queue.list_dead_letters(limit=10)

        assert entries == [entry]
        client.lrange.assert_awaited_once_with("uploads:dead", 0, 9)

    @pytest.mark.asyncio
    async def test_replay_moves_job_back_with_attempts_reset(
        self, queue: RedisJobQueue, client: MagicMock, pipe: MagicMock
    ) -> None:
        job = _job(attempts=3)
        raw = DeadLetterEntry(job=job, raw_payload="{}", error_kind="RetriesExhausted").model_dump_json()
        client.lrange.return_value = [raw]

        assert await queue.replay_dead_letter(job.job_id) is True

        pipe.lrem.assert_called_once_with("uploads:dead", 1, raw)
        key, payload = pipe.lpush.call_args.args
        assert key == "uploads"
        replayed = UploadJob.from_payload(payload)
        assert replayed.job_id == job.job_id
        assert replayed.attempts == 0

    @pytest.mark.asyncio
    async def test_replay_unknown_job(self, queue: RedisJobQueue, client: MagicMock) -> None:
        client.lrange.return_value = []
        assert await queue.replay_dead_letter("missing") is False


@pytest.mark.asyncio
async def test_depth(queue: RedisJobQueue, pipe: MagicMock) -> None:
    pipe.execute.return_value = [2, 1, 4]
    depth = await queue.depth()
    assert (depth.pending, depth.processing, depth.dead) == (2, 1, 4)


@pytest.mark.asyncio
async def test_close(queue: RedisJobQueue, client: MagicMock) -> None:
    await queue.close()
    client.aclose.assert_awaited_once()
