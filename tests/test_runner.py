"""Unit runner: per-unit retries and batch accounting."""
import pytest

from favfeed.fanout import (
    DeliveryWorker,
    DispatchUnit,
    InMemoryBatchStore,
    InMemoryChannel,
    InMemoryTaskQueue,
    UnitRunner,
)


class FlakyChannel(InMemoryChannel):
    """Fails the first ``failures`` sends to each listed recipient."""

    def __init__(self, failures: dict[int, int]):
        super().__init__()
        self.failures = dict(failures)

    async def deliver(self, recipient_id, payload):
        if self.failures.get(recipient_id, 0) > 0:
            self.failures[recipient_id] -= 1
            raise ConnectionError("transient")
        await super().deliver(recipient_id, payload)


class ExplodingWorker:
    def __init__(self):
        self.calls = 0

    async def execute(self, unit):
        self.calls += 1
        raise RuntimeError("database is down")


async def _batched_unit(store, queue, post_id, recipient_ids):
    batch = await store.create(post_id)
    await store.add_units(batch.batch_id, 1)
    await store.seal(batch.batch_id)
    unit = DispatchUnit(post_id=post_id, recipient_ids=recipient_ids, batch_id=batch.batch_id)
    await queue.submit(unit)
    return batch.batch_id


class TestUnitRunner:
    @pytest.fixture
    def store(self):
        return InMemoryBatchStore()

    @pytest.fixture
    def queue(self):
        return InMemoryTaskQueue()

    @pytest.mark.asyncio
    async def test_success_completes_batch(self, builder, session_factory, store, queue):
        author = await builder.user()
        follower = await builder.user()
        post = await builder.post(author)
        channel = InMemoryChannel()
        runner = UnitRunner(DeliveryWorker(session_factory, store, channel), queue, store)
        batch_id = await _batched_unit(store, queue, post.id, [follower.id])

        await queue.drain(runner.run)

        status = await store.get(batch_id)
        assert status.finished
        assert status.failed_units == 0
        assert channel.recipients == [follower.id]

    @pytest.mark.asyncio
    async def test_retries_only_failed_recipients(self, builder, session_factory, store, queue):
        author = await builder.user()
        a, b = await builder.users(2)
        post = await builder.post(author)
        channel = FlakyChannel(failures={b.id: 1})
        runner = UnitRunner(DeliveryWorker(session_factory, store, channel), queue, store)
        batch_id = await _batched_unit(store, queue, post.id, [a.id, b.id])

        await queue.drain(runner.run)

        retry = queue.submitted[-1]
        assert retry.attempt == 1
        assert retry.recipient_ids == [b.id]
        assert sorted(channel.recipients) == sorted([a.id, b.id])
        status = await store.get(batch_id)
        assert status.finished
        assert status.failed_units == 0

    @pytest.mark.asyncio
    async def test_exhausted_unit_is_counted_failed(self, builder, session_factory, store, queue):
        author = await builder.user()
        a, b = await builder.users(2)
        post = await builder.post(author)
        channel = FlakyChannel(failures={b.id: 10})
        runner = UnitRunner(
            DeliveryWorker(session_factory, store, channel), queue, store, max_attempts=3
        )
        batch_id = await _batched_unit(store, queue, post.id, [a.id, b.id])
        unit_id = queue.submitted[0].unit_id

        handled = await queue.drain(runner.run)

        assert handled == 3
        status = await store.get(batch_id)
        assert status.finished
        assert status.failed_units == 1
        assert status.failed_unit_ids == [unit_id]
        assert channel.recipients == [a.id]

    @pytest.mark.asyncio
    async def test_failed_unit_does_not_affect_siblings(self, builder, session_factory, store, queue):
        author = await builder.user()
        a, b = await builder.users(2)
        post = await builder.post(author)
        channel = FlakyChannel(failures={a.id: 10})
        runner = UnitRunner(
            DeliveryWorker(session_factory, store, channel), queue, store, max_attempts=2
        )
        batch = await store.create(post.id)
        await store.add_units(batch.batch_id, 2)
        await store.seal(batch.batch_id)
        await queue.submit(DispatchUnit(post_id=post.id, recipient_ids=[a.id], batch_id=batch.batch_id))
        await queue.submit(DispatchUnit(post_id=post.id, recipient_ids=[b.id], batch_id=batch.batch_id))

        await queue.drain(runner.run)

        status = await store.get(batch.batch_id)
        assert not status.cancelled
        assert status.failed_units == 1
        assert status.finished
        assert channel.recipients == [b.id]

    @pytest.mark.asyncio
    async def test_worker_exception_retries_whole_unit(self, store, queue):
        worker = ExplodingWorker()
        runner = UnitRunner(worker, queue, store, max_attempts=2)
        batch_id = await _batched_unit(store, queue, 1, [7, 8])

        await queue.drain(runner.run)

        assert worker.calls == 2
        assert queue.submitted[-1].recipient_ids == [7, 8]
        status = await store.get(batch_id)
        assert status.failed_units == 1

    @pytest.mark.asyncio
    async def test_cancelled_unit_still_settles_batch(self, builder, session_factory, store, queue):
        author = await builder.user()
        follower = await builder.user()
        post = await builder.post(author)
        channel = InMemoryChannel()
        runner = UnitRunner(DeliveryWorker(session_factory, store, channel), queue, store)
        batch_id = await _batched_unit(store, queue, post.id, [follower.id])
        await store.cancel(batch_id)

        await queue.drain(runner.run)

        status = await store.get(batch_id)
        assert status.finished
        assert channel.sent == []
