"""
Batch coordinator — turns the dispatch units for one post into a tracked batch.

dispatch() is the cheap, synchronous half of the fan-out: it pages followers
(through the unit iterator), counts each unit into the batch *before*
submitting it, and returns as soon as everything is enqueued. Delivery is
the notifier worker's job.

Policy:
  • no units       → no batch at all (returns None)
  • unit failures  → counted on the batch, never cancel siblings
  • enqueue errors → propagate; the unit that failed to enqueue is counted
                     as failed and the batch is sealed with what was sent
"""
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterable, Optional

from opentelemetry import trace

from favfeed.fanout.batches import BatchStatus, BatchStore
from favfeed.fanout.partitioner import DispatchUnit
from favfeed.fanout.queue import TaskQueue
from favfeed.telemetry import FANOUT_BATCHES_TOTAL, FANOUT_DISPATCH_SECONDS, FANOUT_UNITS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class BatchHandle:
    batch_id: str
    name: str
    post_id: int
    total_units: int = 0
    total_recipients: int = 0


class BatchCoordinator:
    def __init__(self, queue: TaskQueue, store: BatchStore):
        self.queue = queue
        self.store = store

    async def dispatch(
        self,
        post_id: int,
        units: AsyncIterable[DispatchUnit],
    ) -> Optional[BatchHandle]:
        with tracer.start_as_current_span("fanout.dispatch") as span:
            span.set_attribute("post.id", post_id)
            t0 = time.perf_counter()
            handle: Optional[BatchHandle] = None

            async for unit in units:
                if handle is None:
                    status = await self.store.create(post_id)
                    handle = BatchHandle(
                        batch_id=status.batch_id, name=status.name, post_id=post_id
                    )
                    span.set_attribute("fanout.batch_id", handle.batch_id)

                await self.store.add_units(handle.batch_id, 1)
                try:
                    await self.queue.submit(
                        unit.model_copy(update={"batch_id": handle.batch_id})
                    )
                except Exception:
                    # The counted unit never reached the queue; settle it so
                    # the batch can still finish once the submitted ones do
                    await self.store.record_failure(handle.batch_id, unit.unit_id)
                    await self.store.seal(handle.batch_id)
                    FANOUT_UNITS_TOTAL.labels(outcome="failed").inc()
                    logger.error(
                        "%s: enqueue failed after %d units, batch %s sealed",
                        handle.name, handle.total_units, handle.batch_id,
                    )
                    raise
                handle.total_units += 1
                handle.total_recipients += len(unit.recipient_ids)
                FANOUT_UNITS_TOTAL.labels(outcome="submitted").inc()

            if handle is None:
                logger.info("Post %s — author has no followers, no batch created", post_id)
                return None

            await self.store.seal(handle.batch_id)
            FANOUT_BATCHES_TOTAL.inc()
            elapsed = time.perf_counter() - t0
            FANOUT_DISPATCH_SECONDS.observe(elapsed)
            span.set_attribute("fanout.unit_count", handle.total_units)
            span.set_attribute("fanout.recipient_count", handle.total_recipients)
            logger.info(
                "%s: %d units → %d followers (batch=%s, %.1fms)",
                handle.name, handle.total_units, handle.total_recipients,
                handle.batch_id, elapsed * 1000,
            )
            return handle

    async def cancel(self, batch_id: str) -> BatchStatus:
        return await self.store.cancel(batch_id)

    async def status(self, batch_id: str) -> BatchStatus:
        return await self.store.get(batch_id)
