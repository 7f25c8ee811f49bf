"""
Business rules for creating a favorite edge.

    evaluator = FavoriteEvaluator.for_user(user_id)
    if not await evaluator.can_mark_as_favorite(db, target):
        raise HTTPException(422, ...evaluator.reason...)

``reason`` is reset on every check so one evaluator can be reused.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from favfeed.favoritable import FavoriteTarget, UserTarget
from favfeed.models import Favorite

SELF_FAVORITE = "You cannot favorite yourself."
ALREADY_FAVORITED = "This item is already in your favorites."


async def has_marked_favorite(db: AsyncSession, user_id: int, target: FavoriteTarget) -> bool:
    result = await db.execute(
        select(Favorite.id)
        .where(
            Favorite.user_id == user_id,
            Favorite.favoritable_type == target.kind,
            Favorite.favoritable_id == target.target_id,
        )
        .limit(1)
    )
    return result.first() is not None


class FavoriteEvaluator:
    def __init__(self, user_id: int):
        self.user_id = user_id
        self.reason: Optional[str] = None

    @classmethod
    def for_user(cls, user_id: int) -> "FavoriteEvaluator":
        return cls(user_id)

    async def can_mark_as_favorite(self, db: AsyncSession, target: FavoriteTarget) -> bool:
        self.reason = None

        # Self check wins over the duplicate check
        if isinstance(target, UserTarget) and target.user_id == self.user_id:
            self.reason = SELF_FAVORITE
            return False

        if await has_marked_favorite(db, self.user_id, target):
            self.reason = ALREADY_FAVORITED
            return False

        return True
