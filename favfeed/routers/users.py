"""
User endpoints:
  POST /users/                       — create a user
  GET  /users/{id}                   — fetch a user
  GET  /users/{id}/notifications     — newest notifications from the inbox
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from favfeed.clients.redis_client import get_notifications
from favfeed.database import get_db
from favfeed.models import User
from favfeed.schemas import NotificationsResponse, UserCreate, UserResponse

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("create_user"):
        existing = await db.execute(select(User.id).where(User.email == body.email))
        if existing.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Email '{body.email}' already registered",
            )

        user = User(name=body.name, email=body.email)
        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info("Created user %s (id=%s)", user.name, user.id)
        return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(user)


@router.get("/{user_id}/notifications", response_model=NotificationsResponse)
async def list_notifications(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    if not await db.get(User, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    notifications = await get_notifications(user_id, limit)
    return {"user_id": user_id, "notifications": notifications}
