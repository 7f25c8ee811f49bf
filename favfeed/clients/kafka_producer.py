"""
Async Kafka producer.

Carries three message types:
  post-published         — emitted by POST /posts/ after a post is persisted.
                           Consumed by: fanout worker.
  notifications          — one dispatch unit per message, emitted by the
                           fanout worker. Consumed by: notifier worker.
  outbound-notifications — per-recipient records for an external mailer
                           (only with delivery_channel=outbox).
"""
import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from favfeed.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None


def create_producer() -> AIOKafkaProducer:
    return AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",          # wait for all in-sync replicas
        enable_idempotence=True,
    )


async def init_kafka() -> AIOKafkaProducer:
    global _producer
    _producer = create_producer()
    await _producer.start()
    logger.info(
        "Kafka producer started → %s", settings.kafka_bootstrap_servers
    )
    return _producer


async def stop_kafka() -> None:
    global _producer
    if _producer:
        await _producer.stop()
        _producer = None


def get_producer() -> AIOKafkaProducer:
    if _producer is None:
        raise RuntimeError("Kafka producer not initialised")
    return _producer


async def publish_post_published(post_id: int, author_id: int) -> None:
    """
    Emit a PostPublished event to the 'post-published' topic.

    Schema:
      { post_id, author_id }

    Only ids travel: the notifier re-reads the post when it finally runs.
    """
    producer = get_producer()
    payload = {"post_id": post_id, "author_id": author_id}
    await producer.send_and_wait(
        settings.kafka_topic_post_published,
        payload,
        key=str(author_id).encode("utf-8"),
    )
    logger.debug("Published PostPublished event for post_id=%s", post_id)
