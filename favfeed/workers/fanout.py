"""
Fan-out worker — Kafka consumer.

For every 'post-published' event:
  1. Page through the author's followers (favorites of type 'user'),
     10k ids per query, keyset-ordered by follower id.
  2. Slice the pages into dispatch units of 100 follower ids.
  3. Register one batch per post in Redis and enqueue every unit on the
     'notifications' topic for the notifier workers.

Nothing here waits for delivery: a post with a million followers costs
100 queries and 10k small produce calls, then the worker moves on.

Run with:  python -m favfeed.workers.fanout
"""
import asyncio
import json
import logging

from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError

from favfeed.clients.kafka_producer import init_kafka, stop_kafka
from favfeed.clients.redis_client import close_redis, init_redis
from favfeed.config import settings
from favfeed.database import AsyncSessionLocal, engine
from favfeed.fanout.batches import RedisBatchStore
from favfeed.fanout.coordinator import BatchCoordinator
from favfeed.fanout.listener import PostPublishedEvent, PostPublishedListener
from favfeed.fanout.queue import KafkaTaskQueue
from favfeed.fanout.resolver import FollowerResolver
from favfeed.telemetry import setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


async def process_message(msg: dict, listener: PostPublishedListener) -> None:
    try:
        event = PostPublishedEvent.model_validate(msg)
    except ValidationError:
        logger.warning("Malformed PostPublished event: %s", msg)
        return
    await listener.handle(event)


async def main() -> None:
    setup_tracing("fanout-worker")

    producer = await init_kafka()
    redis = await init_redis()

    listener = PostPublishedListener(
        session_factory=AsyncSessionLocal,
        resolver=FollowerResolver(AsyncSessionLocal, page_size=settings.follower_page_size),
        coordinator=BatchCoordinator(
            queue=KafkaTaskQueue(producer, settings.kafka_topic_notifications),
            store=RedisBatchStore(redis, ttl=settings.batch_ttl),
        ),
        unit_size=settings.dispatch_unit_size,
    )

    consumer = AIOKafkaConsumer(
        settings.kafka_topic_post_published,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group_fanout,
        auto_offset_reset="earliest",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
    )
    await consumer.start()
    logger.info(
        "Fan-out worker listening on topic '%s'", settings.kafka_topic_post_published
    )

    try:
        async for msg in consumer:
            try:
                await process_message(msg.value, listener)
            except Exception as exc:
                logger.error("Fan-out error for %s: %s", msg.value, exc)
    finally:
        await consumer.stop()
        await stop_kafka()
        await close_redis()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
