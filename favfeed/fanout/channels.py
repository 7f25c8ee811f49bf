"""
Delivery channels — the last hop of a notification.

Contract: ``deliver(recipient_id, payload)`` may be called more than once for
the same (recipient, post) pair (queue redelivery, unit retries). Channels
must make that harmless:

  RedisInboxChannel   — ZSET notifications:{user_id}, member = post id,
                        score = send time; a repeat send just refreshes the
                        score. Payload JSON lives in a HASH next to it;
                        both are trimmed to max_size together.
  KafkaOutboxChannel  — publishes the record to 'outbound-notifications'
                        for an external mailer; at-least-once, the mailer
                        may see duplicates.
  InMemoryChannel     — records every call, for tests.
"""
import json
import logging
import time
from abc import ABC, abstractmethod

import redis.asyncio as aioredis
from aiokafka import AIOKafkaProducer

from favfeed.fanout.payload import NotificationPayload

logger = logging.getLogger(__name__)


class DeliveryChannel(ABC):
    name = "abstract"

    @abstractmethod
    async def deliver(self, recipient_id: int, payload: NotificationPayload) -> None:
        ...


class RedisInboxChannel(DeliveryChannel):
    name = "inbox"

    def __init__(self, redis: aioredis.Redis, max_size: int = 200, ttl: int = 7 * 86400):
        self.redis = redis
        self.max_size = max_size
        self.ttl = ttl

    async def deliver(self, recipient_id: int, payload: NotificationPayload) -> None:
        index_key = f"notifications:{recipient_id}"
        data_key = f"notifications:{recipient_id}:data"
        member = str(payload.post_id)
        record = {**payload.to_record(), "subject": payload.subject, "text": payload.to_text()}

        pipe = self.redis.pipeline()
        pipe.zadd(index_key, {member: time.time()})
        pipe.hset(data_key, member, json.dumps(record))
        # Oldest entries beyond max_size
        pipe.zrange(index_key, 0, -(self.max_size + 1))
        _, _, overflow = await pipe.execute()

        pipe = self.redis.pipeline()
        if overflow:
            # Remove by member, not rank: a concurrent send may have added newer ones
            pipe.zrem(index_key, *overflow)
            pipe.hdel(data_key, *overflow)
        pipe.expire(index_key, self.ttl)
        pipe.expire(data_key, self.ttl)
        await pipe.execute()


class KafkaOutboxChannel(DeliveryChannel):
    name = "outbox"

    def __init__(self, producer: AIOKafkaProducer, topic: str):
        self.producer = producer
        self.topic = topic

    async def deliver(self, recipient_id: int, payload: NotificationPayload) -> None:
        message = {
            **payload.to_record(),
            "recipient_name": payload.recipient_name,
            "subject": payload.subject,
            "text": payload.to_text(),
        }
        await self.producer.send_and_wait(
            self.topic, message, key=str(recipient_id).encode("utf-8")
        )


class InMemoryChannel(DeliveryChannel):
    name = "memory"

    def __init__(self):
        self.sent: list[tuple[int, NotificationPayload]] = []

    async def deliver(self, recipient_id: int, payload: NotificationPayload) -> None:
        self.sent.append((recipient_id, payload))

    @property
    def recipients(self) -> list[int]:
        return [recipient_id for recipient_id, _ in self.sent]
