"""Follower notification fan-out: resolve → partition → dispatch → deliver."""
from favfeed.fanout.batches import BatchStatus, BatchStore, InMemoryBatchStore, RedisBatchStore
from favfeed.fanout.channels import (
    DeliveryChannel,
    InMemoryChannel,
    KafkaOutboxChannel,
    RedisInboxChannel,
)
from favfeed.fanout.coordinator import BatchCoordinator, BatchHandle
from favfeed.fanout.errors import BatchNotFound, FanoutError
from favfeed.fanout.listener import PostPublishedEvent, PostPublishedListener
from favfeed.fanout.partitioner import DispatchUnit, partition
from favfeed.fanout.payload import NotificationPayload, build_payload
from favfeed.fanout.queue import InMemoryTaskQueue, KafkaTaskQueue, TaskQueue
from favfeed.fanout.resolver import FollowerResolver
from favfeed.fanout.runner import UnitRunner
from favfeed.fanout.worker import DeliveryReport, DeliveryWorker

__all__ = [
    "BatchCoordinator",
    "BatchHandle",
    "BatchNotFound",
    "BatchStatus",
    "BatchStore",
    "DeliveryChannel",
    "DeliveryReport",
    "DeliveryWorker",
    "DispatchUnit",
    "FanoutError",
    "FollowerResolver",
    "InMemoryBatchStore",
    "InMemoryChannel",
    "InMemoryTaskQueue",
    "KafkaOutboxChannel",
    "KafkaTaskQueue",
    "NotificationPayload",
    "PostPublishedEvent",
    "PostPublishedListener",
    "RedisBatchStore",
    "RedisInboxChannel",
    "TaskQueue",
    "UnitRunner",
    "build_payload",
    "partition",
]
