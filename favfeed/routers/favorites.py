"""
Favorite endpoints:
  GET    /favorites/?user_id=            — a user's favorites grouped by type
  POST   /favorites/posts/{post_id}      — favorite a post
  DELETE /favorites/posts/{post_id}      — un-favorite a post
  POST   /favorites/users/{target_id}    — favorite an author (follow)
  DELETE /favorites/users/{target_id}    — un-favorite an author

Only author favorites feed the notification fan-out; post favorites are
bookmarks.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from favfeed.database import get_db
from favfeed.evaluator import FavoriteEvaluator
from favfeed.favoritable import FavoritableType, FavoriteTarget, PostTarget, UserTarget
from favfeed.models import Favorite, Post, User
from favfeed.schemas import FavoriteRequest, FavoritesResponse, PostResponse, UserSummary

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _require_user(db: AsyncSession, user_id: int, detail: str = "User not found") -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail=detail)
    return user


async def _mark(db: AsyncSession, user_id: int, target: FavoriteTarget, field: str) -> Response:
    evaluator = FavoriteEvaluator.for_user(user_id)
    if not await evaluator.can_mark_as_favorite(db, target):
        raise HTTPException(
            status_code=422,
            detail={field: [evaluator.reason]},
        )

    db.add(Favorite.for_target(user_id, target))
    logger.info("User %s favorited %s #%s", user_id, target.kind.value, target.target_id)
    return Response(status_code=status.HTTP_201_CREATED)


async def _unmark(db: AsyncSession, user_id: int, target: FavoriteTarget) -> Response:
    # Removing something that was never favorited is a no-op
    await db.execute(
        delete(Favorite).where(
            Favorite.user_id == user_id,
            Favorite.favoritable_type == target.kind,
            Favorite.favoritable_id == target.target_id,
        )
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/", response_model=FavoritesResponse)
async def list_favorites(
    user_id: int = Query(..., description="ID of the requesting user"),
    db: AsyncSession = Depends(get_db),
):
    await _require_user(db, user_id)
    rows = await db.execute(
        select(Favorite.favoritable_type, Favorite.favoritable_id)
        .where(Favorite.user_id == user_id)
        .order_by(Favorite.id)
    )
    targets = rows.all()
    post_ids = [tid for kind, tid in targets if kind == FavoritableType.POST]
    user_ids = [tid for kind, tid in targets if kind == FavoritableType.USER]

    posts_by_id: dict[int, Post] = {}
    if post_ids:
        result = await db.execute(select(Post).where(Post.id.in_(post_ids)))
        posts_by_id = {p.id: p for p in result.unique().scalars().all()}
    users_by_id: dict[int, User] = {}
    if user_ids:
        result = await db.execute(select(User).where(User.id.in_(user_ids)))
        users_by_id = {u.id: u for u in result.scalars().all()}

    # Favorite order; targets deleted since are left out
    return FavoritesResponse(
        posts=[PostResponse.model_validate(posts_by_id[pid]) for pid in post_ids if pid in posts_by_id],
        users=[UserSummary.model_validate(users_by_id[uid]) for uid in user_ids if uid in users_by_id],
    )


@router.post("/posts/{post_id}", status_code=status.HTTP_201_CREATED)
async def favorite_post(post_id: int, body: FavoriteRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("favorite_post"):
        await _require_user(db, body.user_id)
        if not await db.get(Post, post_id):
            raise HTTPException(status_code=404, detail="Post not found")
        return await _mark(db, body.user_id, PostTarget(post_id=post_id), "post")


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unfavorite_post(
    post_id: int,
    user_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("unfavorite_post"):
        return await _unmark(db, user_id, PostTarget(post_id=post_id))


@router.post("/users/{target_id}", status_code=status.HTTP_201_CREATED)
async def favorite_user(target_id: int, body: FavoriteRequest, db: AsyncSession = Depends(get_db)):
    """
    Favorite an author. From now on the author's new posts notify this user
    (fan-out resolves followers from these edges).
    """
    with tracer.start_as_current_span("favorite_user"):
        await _require_user(db, body.user_id)
        await _require_user(db, target_id, detail="Author not found")
        return await _mark(db, body.user_id, UserTarget(user_id=target_id), "user")


@router.delete("/users/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unfavorite_user(
    target_id: int,
    user_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("unfavorite_user"):
        return await _unmark(db, user_id, UserTarget(user_id=target_id))
