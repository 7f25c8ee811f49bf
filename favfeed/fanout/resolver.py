"""
Follower resolver — "who favorited this author?"

Keyset-paginates the favorites table over the idx_favorites_target index:
  SELECT DISTINCT user_id FROM favorites
   WHERE favoritable_type = 'user' AND favoritable_id = :author
     AND user_id > :cursor
   ORDER BY user_id LIMIT :page_size

Each page runs in its own short-lived session so a long fan-out never pins
a connection. DISTINCT makes a duplicate favorite edge harmless.
"""
import logging
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from favfeed.favoritable import FavoritableType
from favfeed.models import Favorite

logger = logging.getLogger(__name__)


class FollowerResolver:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        page_size: int = 10_000,
    ):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.session_factory = session_factory
        self.page_size = page_size

    def _page_query(self, author_id: int, after: Optional[int]):
        stmt = (
            select(Favorite.user_id)
            .where(
                Favorite.favoritable_type == FavoritableType.USER,
                Favorite.favoritable_id == author_id,
            )
            .distinct()
            .order_by(Favorite.user_id)
            .limit(self.page_size)
        )
        if after is not None:
            stmt = stmt.where(Favorite.user_id > after)
        return stmt

    async def resolve(
        self,
        author_id: int,
        after: Optional[int] = None,
    ) -> AsyncIterator[list[int]]:
        """Yield pages of follower ids in ascending order.

        ``after`` resumes paging from the last follower id already handled.
        An unknown author simply yields nothing.
        """
        cursor = after
        while True:
            async with self.session_factory() as session:
                result = await session.execute(self._page_query(author_id, cursor))
                page = list(result.scalars().all())

            if not page:
                return

            logger.debug(
                "Resolved %d followers of author %s (after=%s)",
                len(page), author_id, cursor,
            )
            yield page

            if len(page) < self.page_size:
                return
            cursor = page[-1]
