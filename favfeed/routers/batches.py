"""
Operator endpoints for notification batches:
  GET  /batches/{batch_id}         — unit counts and state
  POST /batches/{batch_id}/cancel  — stop units that have not started yet
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from favfeed.clients.redis_client import get_redis
from favfeed.config import settings
from favfeed.fanout.batches import BatchStatus, BatchStore, RedisBatchStore
from favfeed.fanout.errors import BatchNotFound
from favfeed.schemas import BatchResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def get_batch_store() -> BatchStore:
    """FastAPI dependency — overridden in tests with an in-memory store."""
    return RedisBatchStore(get_redis(), ttl=settings.batch_ttl)


def _to_response(batch: BatchStatus) -> BatchResponse:
    return BatchResponse(
        batch_id=batch.batch_id,
        name=batch.name,
        post_id=batch.post_id,
        total_units=batch.total_units,
        pending_units=batch.pending_units,
        processed_units=batch.processed_units,
        failed_units=batch.failed_units,
        failed_unit_ids=batch.failed_unit_ids,
        cancelled=batch.cancelled,
        finished=batch.finished,
    )


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(batch_id: str, store: BatchStore = Depends(get_batch_store)):
    try:
        return _to_response(await store.get(batch_id))
    except BatchNotFound:
        raise HTTPException(status_code=404, detail="Batch not found")


@router.post("/{batch_id}/cancel", response_model=BatchResponse)
async def cancel_batch(batch_id: str, store: BatchStore = Depends(get_batch_store)):
    try:
        batch = await store.cancel(batch_id)
    except BatchNotFound:
        raise HTTPException(status_code=404, detail="Batch not found")
    logger.info("Operator cancelled %s (%s)", batch.name, batch_id)
    return _to_response(batch)
