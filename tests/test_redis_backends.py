"""Redis- and Kafka-backed pieces against fakeredis and a recording producer."""
import itertools
import json
from types import SimpleNamespace

import pytest
import pytest_asyncio
from fakeredis import aioredis as fakeredis

from favfeed.clients import redis_client
from favfeed.fanout import channels
from favfeed.fanout import (
    BatchNotFound,
    DispatchUnit,
    KafkaOutboxChannel,
    KafkaTaskQueue,
    NotificationPayload,
    RedisBatchStore,
    RedisInboxChannel,
)


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


class RecordingProducer:
    """Stands in for AIOKafkaProducer; keeps every send_and_wait call."""

    def __init__(self):
        self.sent = []

    async def send_and_wait(self, topic, value=None, key=None):
        self.sent.append((topic, value, key))


def _payload(post_id=10, recipient_id=7, **overrides) -> NotificationPayload:
    fields = dict(
        post_id=post_id,
        post_title=f"Post {post_id}",
        post_excerpt="Body",
        post_url=f"/posts/{post_id}",
        author_id=1,
        author_name="Ada",
        recipient_id=recipient_id,
        recipient_name="Bo",
    )
    fields.update(overrides)
    return NotificationPayload(**fields)


class TestRedisBatchStore:
    @pytest.fixture
    def store(self, redis):
        return RedisBatchStore(redis, ttl=3600)

    @pytest.mark.asyncio
    async def test_counts_units_through_completion(self, store):
        batch = await store.create(post_id=42)
        await store.add_units(batch.batch_id, 1)
        await store.add_units(batch.batch_id, 1)
        await store.add_units(batch.batch_id, 1)
        await store.seal(batch.batch_id)

        await store.record_success(batch.batch_id)
        await store.record_failure(batch.batch_id, "unit_b")
        status = await store.get(batch.batch_id)
        assert status.name == "Notify followers of post #42"
        assert status.total_units == 3
        assert status.pending_units == 1
        assert not status.finished

        await store.record_success(batch.batch_id)
        status = await store.get(batch.batch_id)
        assert status.finished
        assert status.failed_units == 1
        assert status.failed_unit_ids == ["unit_b"]

    @pytest.mark.asyncio
    async def test_cancel_flag_round_trips(self, store):
        batch = await store.create(post_id=1)
        assert not await store.is_cancelled(batch.batch_id)

        cancelled = await store.cancel(batch.batch_id)

        assert cancelled.cancelled
        assert cancelled.cancelled_at is not None
        assert await store.is_cancelled(batch.batch_id)

    @pytest.mark.asyncio
    async def test_keys_carry_ttl(self, store, redis):
        batch = await store.create(post_id=1)
        await store.record_failure(batch.batch_id, "unit_a")

        assert 0 < await redis.ttl(f"fanout:batch:{batch.batch_id}") <= 3600
        assert 0 < await redis.ttl(f"fanout:batch:{batch.batch_id}:failed") <= 3600

    @pytest.mark.asyncio
    async def test_unknown_batch(self, store):
        with pytest.raises(BatchNotFound):
            await store.get("missing")
        with pytest.raises(BatchNotFound):
            await store.cancel("missing")
        assert not await store.is_cancelled("missing")

    @pytest.mark.asyncio
    async def test_late_update_after_expiry_reads_as_missing(self, store, redis):
        batch = await store.create(post_id=1)
        await store.add_units(batch.batch_id, 1)
        await redis.delete(f"fanout:batch:{batch.batch_id}")

        # A worker finishing after expiry recreates only the counter field
        await store.record_success(batch.batch_id)

        with pytest.raises(BatchNotFound):
            await store.get(batch.batch_id)


class TestRedisInboxChannel:
    @pytest.mark.asyncio
    async def test_repeat_send_keeps_one_entry(self, redis):
        channel = RedisInboxChannel(redis, max_size=10, ttl=3600)

        await channel.deliver(7, _payload(post_id=10))
        await channel.deliver(7, _payload(post_id=10))

        assert await redis.zcard("notifications:7") == 1
        assert await redis.hlen("notifications:7:data") == 1

    @pytest.mark.asyncio
    async def test_inbox_and_data_trimmed_together(self, redis, monkeypatch):
        ticks = itertools.count(1_700_000_000)
        monkeypatch.setattr(channels, "time", SimpleNamespace(time=lambda: next(ticks)))
        channel = RedisInboxChannel(redis, max_size=5, ttl=3600)

        for post_id in range(1, 13):
            await channel.deliver(7, _payload(post_id=post_id))

        members = await redis.zrange("notifications:7", 0, -1)
        assert members == ["8", "9", "10", "11", "12"]
        assert sorted(await redis.hkeys("notifications:7:data"), key=int) == members

    @pytest.mark.asyncio
    async def test_read_back_newest_first(self, redis, monkeypatch):
        channel = RedisInboxChannel(redis, max_size=10, ttl=3600)
        await channel.deliver(7, _payload(post_id=1, post_title="Old"))
        await channel.deliver(7, _payload(post_id=2, post_title="New"))
        monkeypatch.setattr(redis_client, "_redis", redis)

        notifications = await redis_client.get_notifications(7, limit=10)

        assert [n["post_title"] for n in notifications] == ["New", "Old"]
        assert notifications[0]["subject"] == "Ada has created a new post"
        assert notifications[0]["text"].startswith("Hello Bo!")

    @pytest.mark.asyncio
    async def test_inboxes_are_per_recipient(self, redis):
        channel = RedisInboxChannel(redis, max_size=10, ttl=3600)

        await channel.deliver(7, _payload(recipient_id=7))
        await channel.deliver(8, _payload(recipient_id=8))

        assert await redis.zcard("notifications:7") == 1
        assert await redis.zcard("notifications:8") == 1
        assert await redis.ttl("notifications:8:data") > 0


class TestKafkaBackends:
    @pytest.mark.asyncio
    async def test_task_queue_sends_unit_keyed_by_batch(self):
        producer = RecordingProducer()
        queue = KafkaTaskQueue(producer, "notifications")
        unit = DispatchUnit(post_id=3, recipient_ids=[1, 2], batch_id="b1")

        await queue.submit(unit)

        (topic, value, key), = producer.sent
        assert topic == "notifications"
        assert key == b"b1"
        assert DispatchUnit.model_validate(value) == unit
        json.dumps(value)

    @pytest.mark.asyncio
    async def test_task_queue_keys_unbatched_unit_by_unit_id(self):
        producer = RecordingProducer()
        unit = DispatchUnit(post_id=3, recipient_ids=[1])

        await KafkaTaskQueue(producer, "notifications").submit(unit)

        assert producer.sent[0][2] == unit.unit_id.encode()

    @pytest.mark.asyncio
    async def test_outbox_publishes_record_per_recipient(self):
        producer = RecordingProducer()
        channel = KafkaOutboxChannel(producer, "outbound-notifications")

        await channel.deliver(7, _payload(post_id=10, recipient_id=7))

        (topic, message, key), = producer.sent
        assert topic == "outbound-notifications"
        assert key == b"7"
        assert message["post_id"] == 10
        assert message["recipient_name"] == "Bo"
        assert message["subject"] == "Ada has created a new post"
