"""
Batch status store — tracks every dispatch unit spawned for one post.

Both sides of the pipeline go through this store instead of sharing objects:
  • the coordinator creates the batch, counts units in and seals it
  • each notifier-worker invocation checks ``cancelled`` on entry and
    reports its outcome (success / failure) when done
  • operators cancel a batch or inspect its counts via the API

Redis layout (decode_responses=True):
  fanout:batch:{batch_id}         HASH  name, post_id, total_units,
                                        pending_units, failed_units,
                                        cancelled, sealed, created_at,
                                        cancelled_at
  fanout:batch:{batch_id}:failed  SET   unit ids that exhausted retries

Counters only move through HINCRBY so concurrent workers never lose updates.
Both keys expire after ``batch_ttl``; an expired batch reads as not found.
"""
import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis
from pydantic import BaseModel

from favfeed.fanout.errors import BatchNotFound

logger = logging.getLogger(__name__)


def batch_name(post_id: int) -> str:
    return f"Notify followers of post #{post_id}"


class BatchStatus(BaseModel):
    batch_id: str
    name: str
    post_id: int
    total_units: int = 0
    pending_units: int = 0
    failed_units: int = 0
    failed_unit_ids: list[str] = []
    cancelled: bool = False
    sealed: bool = False
    created_at: float
    cancelled_at: Optional[float] = None

    @property
    def finished(self) -> bool:
        return self.sealed and self.pending_units <= 0

    @property
    def processed_units(self) -> int:
        return self.total_units - self.pending_units


class BatchStore(ABC):
    """Atomic batch bookkeeping shared by the coordinator and the workers."""

    @abstractmethod
    async def create(self, post_id: int) -> BatchStatus:
        ...

    @abstractmethod
    async def add_units(self, batch_id: str, count: int = 1) -> None:
        """Count units in before they are submitted."""
        ...

    @abstractmethod
    async def seal(self, batch_id: str) -> None:
        """Mark that no more units will be added."""
        ...

    @abstractmethod
    async def record_success(self, batch_id: str) -> None:
        ...

    @abstractmethod
    async def record_failure(self, batch_id: str, unit_id: str) -> None:
        ...

    @abstractmethod
    async def cancel(self, batch_id: str) -> BatchStatus:
        ...

    @abstractmethod
    async def is_cancelled(self, batch_id: str) -> bool:
        ...

    @abstractmethod
    async def get(self, batch_id: str) -> BatchStatus:
        ...


def _new_batch_id() -> str:
    return uuid.uuid4().hex


# ─────────────────────────── Redis ───────────────────────────────────────

class RedisBatchStore(BatchStore):
    KEY = "fanout:batch:{batch_id}"
    FAILED_KEY = "fanout:batch:{batch_id}:failed"

    def __init__(self, redis: aioredis.Redis, ttl: int = 7 * 86400):
        self.redis = redis
        self.ttl = ttl

    def _key(self, batch_id: str) -> str:
        return self.KEY.format(batch_id=batch_id)

    def _failed_key(self, batch_id: str) -> str:
        return self.FAILED_KEY.format(batch_id=batch_id)

    async def create(self, post_id: int) -> BatchStatus:
        status = BatchStatus(
            batch_id=_new_batch_id(),
            name=batch_name(post_id),
            post_id=post_id,
            created_at=time.time(),
        )
        key = self._key(status.batch_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(
            key,
            mapping={
                "name": status.name,
                "post_id": status.post_id,
                "total_units": 0,
                "pending_units": 0,
                "failed_units": 0,
                "cancelled": 0,
                "sealed": 0,
                "created_at": status.created_at,
            },
        )
        pipe.expire(key, self.ttl)
        await pipe.execute()
        return status

    async def add_units(self, batch_id: str, count: int = 1) -> None:
        key = self._key(batch_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.hincrby(key, "total_units", count)
        pipe.hincrby(key, "pending_units", count)
        await pipe.execute()

    async def seal(self, batch_id: str) -> None:
        await self.redis.hset(self._key(batch_id), "sealed", 1)

    async def record_success(self, batch_id: str) -> None:
        key = self._key(batch_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.hincrby(key, "pending_units", -1)
        pipe.expire(key, self.ttl)
        await pipe.execute()

    async def record_failure(self, batch_id: str, unit_id: str) -> None:
        key = self._key(batch_id)
        failed_key = self._failed_key(batch_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.hincrby(key, "pending_units", -1)
        pipe.hincrby(key, "failed_units", 1)
        pipe.sadd(failed_key, unit_id)
        pipe.expire(failed_key, self.ttl)
        await pipe.execute()

    async def cancel(self, batch_id: str) -> BatchStatus:
        key = self._key(batch_id)
        if not await self.redis.exists(key):
            raise BatchNotFound(batch_id)
        await self.redis.hset(
            key, mapping={"cancelled": 1, "cancelled_at": time.time()}
        )
        logger.info("Batch %s cancelled", batch_id)
        return await self.get(batch_id)

    async def is_cancelled(self, batch_id: str) -> bool:
        return await self.redis.hget(self._key(batch_id), "cancelled") == "1"

    async def get(self, batch_id: str) -> BatchStatus:
        raw = await self.redis.hgetall(self._key(batch_id))
        # A late counter update on an expired batch leaves a partial hash
        if not raw or "name" not in raw:
            raise BatchNotFound(batch_id)
        failed_ids = await self.redis.smembers(self._failed_key(batch_id))
        return status_from_hash(batch_id, raw, failed_ids)


def status_from_hash(batch_id: str, raw: dict, failed_ids=()) -> BatchStatus:
    """Decode the string-valued Redis hash into a BatchStatus."""
    cancelled_at = raw.get("cancelled_at")
    return BatchStatus(
        batch_id=batch_id,
        name=raw["name"],
        post_id=int(raw["post_id"]),
        total_units=int(raw.get("total_units", 0)),
        pending_units=int(raw.get("pending_units", 0)),
        failed_units=int(raw.get("failed_units", 0)),
        failed_unit_ids=sorted(failed_ids),
        cancelled=raw.get("cancelled") == "1",
        sealed=raw.get("sealed") == "1",
        created_at=float(raw["created_at"]),
        cancelled_at=float(cancelled_at) if cancelled_at else None,
    )


# ─────────────────────────── In-memory ───────────────────────────────────

class InMemoryBatchStore(BatchStore):
    """Single-process store for tests and local runs."""

    def __init__(self):
        self._batches: dict[str, BatchStatus] = {}
        self._lock = asyncio.Lock()

    def _require(self, batch_id: str) -> BatchStatus:
        try:
            return self._batches[batch_id]
        except KeyError:
            raise BatchNotFound(batch_id) from None

    async def create(self, post_id: int) -> BatchStatus:
        status = BatchStatus(
            batch_id=_new_batch_id(),
            name=batch_name(post_id),
            post_id=post_id,
            created_at=time.time(),
        )
        async with self._lock:
            self._batches[status.batch_id] = status
        return status.model_copy()

    async def add_units(self, batch_id: str, count: int = 1) -> None:
        async with self._lock:
            status = self._require(batch_id)
            status.total_units += count
            status.pending_units += count

    async def seal(self, batch_id: str) -> None:
        async with self._lock:
            self._require(batch_id).sealed = True

    async def record_success(self, batch_id: str) -> None:
        async with self._lock:
            self._require(batch_id).pending_units -= 1

    async def record_failure(self, batch_id: str, unit_id: str) -> None:
        async with self._lock:
            status = self._require(batch_id)
            status.pending_units -= 1
            status.failed_units += 1
            status.failed_unit_ids = sorted({*status.failed_unit_ids, unit_id})

    async def cancel(self, batch_id: str) -> BatchStatus:
        async with self._lock:
            status = self._require(batch_id)
            status.cancelled = True
            status.cancelled_at = time.time()
        logger.info("Batch %s cancelled", batch_id)
        return status.model_copy()

    async def is_cancelled(self, batch_id: str) -> bool:
        status = self._batches.get(batch_id)
        return bool(status and status.cancelled)

    async def get(self, batch_id: str) -> BatchStatus:
        return self._require(batch_id).model_copy(deep=True)
