"""
Notifier worker — Kafka consumer for dispatch units.

For every message on 'notifications':
  1. Skip it if its batch was cancelled.
  2. Re-read the post; skip if it was deleted meanwhile.
  3. Deliver to each follower in the unit (Redis inbox or Kafka outbox).
  4. Requeue failed recipients up to unit_max_attempts, then count the unit
     as failed on its batch.

Kafka delivers at least once, so a unit can run twice; channels are built
to tolerate a repeated (recipient, post) send.

Run with:  python -m favfeed.workers.notifier
"""
import asyncio
import json
import logging

import redis.asyncio as aioredis
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from pydantic import ValidationError

from favfeed.clients.kafka_producer import init_kafka, stop_kafka
from favfeed.clients.redis_client import close_redis, init_redis
from favfeed.config import settings
from favfeed.database import AsyncSessionLocal, engine
from favfeed.fanout.batches import RedisBatchStore
from favfeed.fanout.channels import DeliveryChannel, KafkaOutboxChannel, RedisInboxChannel
from favfeed.fanout.partitioner import DispatchUnit
from favfeed.fanout.queue import KafkaTaskQueue
from favfeed.fanout.runner import UnitRunner
from favfeed.fanout.worker import DeliveryWorker
from favfeed.telemetry import setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


def create_channel(redis: aioredis.Redis, producer: AIOKafkaProducer) -> DeliveryChannel:
    if settings.delivery_channel == "outbox":
        return KafkaOutboxChannel(producer, settings.kafka_topic_outbound)
    return RedisInboxChannel(
        redis,
        max_size=settings.notification_inbox_max_size,
        ttl=settings.notification_inbox_ttl,
    )


async def process_message(msg: dict, runner: UnitRunner) -> None:
    try:
        unit = DispatchUnit.model_validate(msg)
    except ValidationError:
        logger.warning("Malformed dispatch unit: %s", msg)
        return
    await runner.run(unit)


async def main() -> None:
    setup_tracing("notifier-worker")

    producer = await init_kafka()
    redis = await init_redis()

    store = RedisBatchStore(redis, ttl=settings.batch_ttl)
    channel = create_channel(redis, producer)
    runner = UnitRunner(
        worker=DeliveryWorker(
            AsyncSessionLocal,
            store,
            channel,
            excerpt_length=settings.payload_excerpt_length,
        ),
        queue=KafkaTaskQueue(producer, settings.kafka_topic_notifications),
        store=store,
        max_attempts=settings.unit_max_attempts,
    )

    consumer = AIOKafkaConsumer(
        settings.kafka_topic_notifications,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group_notifier,
        auto_offset_reset="earliest",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
    )
    await consumer.start()
    logger.info(
        "Notifier worker listening on topic '%s' (channel=%s)",
        settings.kafka_topic_notifications, channel.name,
    )

    try:
        async for msg in consumer:
            try:
                await process_message(msg.value, runner)
            except Exception as exc:
                logger.error("Notifier error for %s: %s", msg.value, exc)
    finally:
        await consumer.stop()
        await stop_kafka()
        await close_redis()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
