"""
Unit runner — retry and batch accounting around DeliveryWorker.execute.

Each unit is retried on its own: a retry is resubmitted to the queue as a
copy with ``attempt + 1`` carrying only the recipients that failed (or all of
them if execute raised). Once ``max_attempts`` is reached the unit is counted
as failed on its batch. Sibling units are never touched.
"""
import logging

from favfeed.fanout.batches import BatchStore
from favfeed.fanout.partitioner import DispatchUnit
from favfeed.fanout.queue import TaskQueue
from favfeed.fanout.worker import DeliveryReport, DeliveryWorker
from favfeed.telemetry import FANOUT_UNITS_TOTAL

logger = logging.getLogger(__name__)


class UnitRunner:
    def __init__(
        self,
        worker: DeliveryWorker,
        queue: TaskQueue,
        store: BatchStore,
        max_attempts: int = 3,
    ):
        self.worker = worker
        self.queue = queue
        self.store = store
        self.max_attempts = max_attempts

    async def run(self, unit: DispatchUnit) -> DeliveryReport | None:
        try:
            report = await self.worker.execute(unit)
        except Exception as exc:
            logger.error(
                "Unit %s (post %s, attempt %d) failed: %s",
                unit.unit_id, unit.post_id, unit.attempt, exc,
            )
            await self._retry_or_fail(unit, unit.recipient_ids)
            return None

        if report.failed_ids:
            await self._retry_or_fail(unit, report.failed_ids)
            return report

        if unit.batch_id:
            await self.store.record_success(unit.batch_id)
        FANOUT_UNITS_TOTAL.labels(
            outcome="cancelled" if report.cancelled else "completed"
        ).inc()
        return report

    async def _retry_or_fail(self, unit: DispatchUnit, recipient_ids: list[int]) -> None:
        next_attempt = unit.attempt + 1
        if next_attempt < self.max_attempts:
            retry = unit.model_copy(
                update={"attempt": next_attempt, "recipient_ids": list(recipient_ids)}
            )
            await self.queue.submit(retry)
            FANOUT_UNITS_TOTAL.labels(outcome="retried").inc()
            logger.info(
                "Unit %s requeued (attempt %d/%d, %d recipients)",
                unit.unit_id, next_attempt + 1, self.max_attempts, len(recipient_ids),
            )
            return

        FANOUT_UNITS_TOTAL.labels(outcome="failed").inc()
        logger.warning(
            "Unit %s exhausted %d attempts — %d recipients not notified",
            unit.unit_id, self.max_attempts, len(recipient_ids),
        )
        if unit.batch_id:
            await self.store.record_failure(unit.batch_id, unit.unit_id)
