"""Shared test fixtures for favfeed.

Every test gets a fresh in-memory SQLite database (aiosqlite, StaticPool so
all sessions share one connection) plus in-memory queue / batch store /
channel backends standing in for Kafka and Redis.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import itertools

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from favfeed.database import Base
from favfeed.favoritable import PostTarget, UserTarget
from favfeed.fanout import (
    BatchCoordinator,
    DeliveryWorker,
    FollowerResolver,
    InMemoryBatchStore,
    InMemoryChannel,
    InMemoryTaskQueue,
    PostPublishedListener,
    UnitRunner,
)
from favfeed.models import Favorite, Post, User


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


class DataBuilder:
    """Creates users, posts and favorite edges, committing each one."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._seq = itertools.count(1)

    async def _save(self, obj):
        async with self.session_factory() as session:
            session.add(obj)
            await session.commit()
            await session.refresh(obj)
        return obj

    async def user(self, name: str = None) -> User:
        n = next(self._seq)
        name = name or f"User {n}"
        return await self._save(User(name=name, email=f"user{n}@example.com"))

    async def users(self, count: int) -> list[User]:
        return [await self.user() for _ in range(count)]

    async def post(self, author: User, title: str = "A post", body: str = "Post body") -> Post:
        post = await self._save(Post(user_id=author.id, title=title, body=body))
        async with self.session_factory() as session:
            return await session.get(Post, post.id)

    async def favorite(self, user: User, target) -> Favorite:
        if isinstance(target, User):
            target = UserTarget(user_id=target.id)
        elif isinstance(target, Post):
            target = PostTarget(post_id=target.id)
        return await self._save(Favorite.for_target(user.id, target))

    async def follow(self, followers: list[User], author: User) -> None:
        async with self.session_factory() as session:
            session.add_all(
                [Favorite.for_target(f.id, UserTarget(user_id=author.id)) for f in followers]
            )
            await session.commit()

    async def follow_ids(self, follower_ids, author_id: int) -> None:
        """Bulk-insert author favorites without creating user rows."""
        async with self.session_factory() as session:
            session.add_all(
                [Favorite.for_target(fid, UserTarget(user_id=author_id)) for fid in follower_ids]
            )
            await session.commit()


@pytest.fixture
def builder(session_factory) -> DataBuilder:
    return DataBuilder(session_factory)


class Pipeline:
    """The whole fan-out wired to in-memory backends."""

    def __init__(self, session_factory, page_size: int = 10_000, unit_size: int = 100,
                 max_attempts: int = 3, channel=None):
        self.queue = InMemoryTaskQueue()
        self.store = InMemoryBatchStore()
        self.channel = channel or InMemoryChannel()
        self.coordinator = BatchCoordinator(self.queue, self.store)
        self.listener = PostPublishedListener(
            session_factory,
            FollowerResolver(session_factory, page_size=page_size),
            self.coordinator,
            unit_size=unit_size,
        )
        self.worker = DeliveryWorker(session_factory, self.store, self.channel)
        self.runner = UnitRunner(self.worker, self.queue, self.store, max_attempts=max_attempts)

    async def run_all(self) -> int:
        return await self.queue.drain(self.runner.run)


@pytest.fixture
def pipeline(session_factory) -> Pipeline:
    return Pipeline(session_factory)


@pytest.fixture
def make_pipeline(session_factory):
    def _make(**kwargs) -> Pipeline:
        return Pipeline(session_factory, **kwargs)
    return _make
