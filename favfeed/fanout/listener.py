"""
Post-published listener — entry point of the fan-out.

    PostPublishedEvent ─▶ FollowerResolver.resolve(author)   (pages of ids)
                       ─▶ partition(post, pages, unit_size)  (dispatch units)
                       ─▶ BatchCoordinator.dispatch           (one batch / post)

Only paging and enqueueing happen here; delivery runs in the notifier worker.
"""
import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from favfeed.fanout.coordinator import BatchCoordinator, BatchHandle
from favfeed.fanout.partitioner import partition
from favfeed.fanout.resolver import FollowerResolver
from favfeed.models import Post

logger = logging.getLogger(__name__)


class PostPublishedEvent(BaseModel):
    post_id: int
    # The author is looked up when a producer leaves it out
    author_id: Optional[int] = None


class PostPublishedListener:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: FollowerResolver,
        coordinator: BatchCoordinator,
        unit_size: int = 100,
    ):
        if unit_size >= resolver.page_size:
            raise ValueError("unit_size must be smaller than the resolver page size")
        self.session_factory = session_factory
        self.resolver = resolver
        self.coordinator = coordinator
        self.unit_size = unit_size

    async def _author_of(self, post_id: int) -> Optional[int]:
        async with self.session_factory() as session:
            result = await session.execute(select(Post.user_id).where(Post.id == post_id))
            return result.scalar_one_or_none()

    async def handle(self, event: PostPublishedEvent) -> Optional[BatchHandle]:
        author_id = event.author_id
        if author_id is None:
            author_id = await self._author_of(event.post_id)
            if author_id is None:
                logger.info("Post %s not found — nothing to fan out", event.post_id)
                return None

        pages = self.resolver.resolve(author_id)
        units = partition(event.post_id, pages, self.unit_size)
        return await self.coordinator.dispatch(event.post_id, units)
