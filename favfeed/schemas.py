"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ──────────────────────────── Users ───────────────────────────────────────

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    created_at: datetime


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


# ──────────────────────────── Posts ───────────────────────────────────────

class PostCreate(BaseModel):
    user_id: int
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)


class PostUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)


class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    body: str
    user: Optional[UserSummary] = Field(None, validation_alias="author")
    created_at: datetime
    updated_at: datetime


# ──────────────────────────── Favorites ───────────────────────────────────

class FavoriteRequest(BaseModel):
    user_id: int


class FavoritesResponse(BaseModel):
    posts: list[PostResponse]
    users: list[UserSummary]


# ──────────────────────────── Notifications / Batches ─────────────────────

class NotificationRecord(BaseModel):
    post_id: int
    post_title: str
    author_id: int
    author_name: str
    recipient_id: int
    subject: str
    text: str


class NotificationsResponse(BaseModel):
    user_id: int
    notifications: list[NotificationRecord]


class BatchResponse(BaseModel):
    batch_id: str
    name: str
    post_id: int
    total_units: int
    pending_units: int
    processed_units: int
    failed_units: int
    failed_unit_ids: list[str]
    cancelled: bool
    finished: bool
