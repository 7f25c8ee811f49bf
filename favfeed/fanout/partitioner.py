"""
Batch partitioner — regroups follower-id pages into dispatch units.

Pages come from the follower resolver (up to ``follower_page_size`` ids each);
units carry at most ``dispatch_unit_size`` ids and are what a single
notification job processes. Ids carry across page boundaries, so every unit
except the last is full. At most one page plus one partial unit is in memory.
"""
import uuid
from typing import AsyncIterable, AsyncIterator, Optional

from pydantic import BaseModel, Field


def _unit_id() -> str:
    return f"unit_{uuid.uuid4().hex[:12]}"


class DispatchUnit(BaseModel):
    """A bounded slice of followers to notify about one post.

    Serialised as JSON onto the notifications topic. ``batch_id`` is filled
    in by the coordinator when the unit is submitted; ``attempt`` is bumped
    by the runner when the unit (or its failed remainder) is retried.
    """

    post_id: int
    recipient_ids: list[int] = Field(min_length=1)
    unit_id: str = Field(default_factory=_unit_id)
    batch_id: Optional[str] = None
    attempt: int = 0


async def partition(
    post_id: int,
    pages: AsyncIterable[list[int]],
    unit_size: int,
) -> AsyncIterator[DispatchUnit]:
    if unit_size < 1:
        raise ValueError("unit_size must be positive")

    pending: list[int] = []
    async for page in pages:
        pending.extend(page)
        while len(pending) >= unit_size:
            yield DispatchUnit(post_id=post_id, recipient_ids=pending[:unit_size])
            pending = pending[unit_size:]

    if pending:
        yield DispatchUnit(post_id=post_id, recipient_ids=pending)
