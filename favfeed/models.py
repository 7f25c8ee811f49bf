"""
SQLAlchemy ORM models for TiDB.

Tables:
  users     — user profiles (name + contact e-mail)
  posts     — authored posts (title / body)
  favorites — polymorphic favorite edges: user → post, or user → user (author)
"""
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from favfeed.database import Base
from favfeed.favoritable import FavoritableType, FavoriteTarget, target_from_columns


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    author = relationship("User", lazy="joined")

    __table_args__ = (
        Index("idx_posts_user", "user_id"),
        Index("idx_posts_created", "created_at"),
    )


class Favorite(Base):
    __tablename__ = "favorites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    favoritable_type: Mapped[FavoritableType] = mapped_column(
        Enum(
            FavoritableType,
            native_enum=False,
            length=16,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False,
    )
    # No FK: points at posts.id or users.id depending on favoritable_type
    favoritable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # "Who favorited author X?", keyset-paged by the follower resolver
        Index("idx_favorites_target", "favoritable_type", "favoritable_id", "user_id"),
        Index("idx_favorites_user", "user_id"),
    )

    @property
    def target(self) -> FavoriteTarget:
        return target_from_columns(self.favoritable_type, self.favoritable_id)

    @classmethod
    def for_target(cls, user_id: int, target: FavoriteTarget) -> "Favorite":
        return cls(
            user_id=user_id,
            favoritable_type=target.kind,
            favoritable_id=target.target_id,
        )
