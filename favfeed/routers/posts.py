"""
Post endpoints:
  GET    /posts/       — list posts, newest first
  POST   /posts/       — create a post and publish a PostPublished event
  GET    /posts/{id}   — fetch a single post
  PUT    /posts/{id}   — update title / body
  DELETE /posts/{id}   — delete a post (and favorites pointing at it)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from favfeed.clients.kafka_producer import publish_post_published
from favfeed.database import get_db
from favfeed.favoritable import FavoritableType
from favfeed.models import Favorite, Post, User
from favfeed.schemas import PostCreate, PostResponse, PostUpdate
from favfeed.telemetry import POST_PUBLISHED_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _get_post_or_404(db: AsyncSession, post_id: int) -> Post:
    post = await db.get(Post, post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.get("/", response_model=list[PostResponse])
async def list_posts(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Post).order_by(Post.created_at.desc(), Post.id.desc()))
    return [PostResponse.model_validate(post) for post in result.unique().scalars().all()]


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(body: PostCreate, db: AsyncSession = Depends(get_db)):
    """
    Post publishing path:

    1. Validate the author exists.
    2. Persist the post.
    3. Commit, so workers re-reading the post by id can see it.
    4. Emit a 'PostPublished' Kafka event → fanout worker notifies followers.

    Step 4 is best-effort: a broker outage is logged, the post still exists.
    """
    with tracer.start_as_current_span("create_post") as span:
        user = await db.get(User, body.user_id)
        if not user:
            raise HTTPException(status_code=404, detail="Author not found")

        post = Post(user_id=user.id, title=body.title, body=body.body)
        db.add(post)
        await db.flush()     # materialise post.id
        await db.refresh(post, attribute_names=["author", "created_at", "updated_at"])
        await db.commit()    # the event must not outrun the row

        span.set_attribute("post.id", post.id)
        span.set_attribute("post.user_id", post.user_id)

        try:
            await publish_post_published(post_id=post.id, author_id=post.user_id)
            POST_PUBLISHED_TOTAL.labels(status="ok").inc()
        except Exception as exc:
            POST_PUBLISHED_TOTAL.labels(status="error").inc()
            logger.error("PostPublished event for post %s not sent: %s", post.id, exc)

        logger.info("Post created: %s by user %s", post.id, post.user_id)
        return PostResponse.model_validate(post)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(post_id: int, db: AsyncSession = Depends(get_db)):
    return PostResponse.model_validate(await _get_post_or_404(db, post_id))


@router.put("/{post_id}", response_model=PostResponse)
async def update_post(post_id: int, body: PostUpdate, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("update_post"):
        post = await _get_post_or_404(db, post_id)
        post.title = body.title
        post.body = body.body
        await db.flush()
        await db.refresh(post, attribute_names=["author", "updated_at"])
        return PostResponse.model_validate(post)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(post_id: int, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("delete_post"):
        post = await _get_post_or_404(db, post_id)
        await db.execute(
            delete(Favorite).where(
                Favorite.favoritable_type == FavoritableType.POST,
                Favorite.favoritable_id == post.id,
            )
        )
        await db.delete(post)
        # In-flight notification units find the post gone and skip it
        logger.info("Post deleted: %s", post_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
