"""
Delivery worker — executes one dispatch unit.

Runs inside the notifier worker process, possibly long after the post was
published and on a different host, so it trusts nothing but ids:
  1. batch cancelled?   → return before touching anything
  2. re-load the post   → gone means the unit is a successful no-op
  3. load recipients, then build + deliver per recipient concurrently;
     one recipient failing never stops the others

Failed recipient ids are reported back so the runner can retry just them.
"""
import asyncio
import logging
from dataclasses import dataclass, field

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from favfeed.fanout.batches import BatchStore
from favfeed.fanout.channels import DeliveryChannel
from favfeed.fanout.partitioner import DispatchUnit
from favfeed.fanout.payload import DEFAULT_EXCERPT_LENGTH, build_payload
from favfeed.models import Post, User
from favfeed.telemetry import NOTIFICATIONS_SENT_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class DeliveryReport:
    unit_id: str
    cancelled: bool = False
    post_missing: bool = False
    delivered: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)
    skipped_ids: list[int] = field(default_factory=list)   # no such user


class DeliveryWorker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: BatchStore,
        channel: DeliveryChannel,
        excerpt_length: int = DEFAULT_EXCERPT_LENGTH,
    ):
        self.session_factory = session_factory
        self.store = store
        self.channel = channel
        self.excerpt_length = excerpt_length

    async def execute(self, unit: DispatchUnit) -> DeliveryReport:
        report = DeliveryReport(unit_id=unit.unit_id)

        if unit.batch_id and await self.store.is_cancelled(unit.batch_id):
            logger.info("Unit %s skipped — batch %s cancelled", unit.unit_id, unit.batch_id)
            report.cancelled = True
            return report

        with tracer.start_as_current_span("fanout.execute_unit") as span:
            span.set_attribute("post.id", unit.post_id)
            span.set_attribute("fanout.unit_id", unit.unit_id)
            span.set_attribute("fanout.attempt", unit.attempt)

            # Duplicate favorite edges can repeat an id; notify once per unit
            recipient_ids = list(dict.fromkeys(unit.recipient_ids))

            async with self.session_factory() as session:
                post = await session.get(Post, unit.post_id)
                if post is None:
                    logger.info(
                        "Post %s no longer exists — unit %s is a no-op",
                        unit.post_id, unit.unit_id,
                    )
                    report.post_missing = True
                    return report

                author = post.author
                result = await session.execute(
                    select(User).where(User.id.in_(recipient_ids)).order_by(User.id)
                )
                recipients = list(result.scalars().all())

            found = {user.id for user in recipients}
            report.skipped_ids = [uid for uid in recipient_ids if uid not in found]

            results = await asyncio.gather(
                *[self._deliver(post, author, user) for user in recipients],
                return_exceptions=True,
            )
            for user, outcome in zip(recipients, results):
                if isinstance(outcome, Exception):
                    logger.error(
                        "Notify user %s of post %s failed: %s",
                        user.id, post.id, outcome,
                    )
                    NOTIFICATIONS_SENT_TOTAL.labels(status="failed").inc()
                    report.failed_ids.append(user.id)
                else:
                    NOTIFICATIONS_SENT_TOTAL.labels(status="sent").inc()
                    report.delivered.append(user.id)

            span.set_attribute("fanout.delivered", len(report.delivered))
            span.set_attribute("fanout.failed", len(report.failed_ids))
            return report

    async def _deliver(self, post: Post, author: User, recipient: User) -> None:
        payload = build_payload(post, author, recipient, self.excerpt_length)
        await self.channel.deliver(recipient.id, payload)
