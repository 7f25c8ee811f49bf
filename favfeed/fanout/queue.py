"""
Task queue — how dispatch units reach the notifier workers.

The coordinator only ever calls ``submit``; execution happens later in a
separate consumer loop (favfeed.workers.notifier), possibly on another host.

  KafkaTaskQueue     — production: one message per unit on the
                       'notifications' topic, keyed by batch id
  InMemoryTaskQueue  — tests / single-process runs; ``drain`` plays the
                       part of the consumer loop
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from aiokafka import AIOKafkaProducer

from favfeed.fanout.partitioner import DispatchUnit

logger = logging.getLogger(__name__)


class TaskQueue(ABC):
    @abstractmethod
    async def submit(self, unit: DispatchUnit) -> None:
        """Enqueue a unit. Must not wait for it to execute."""
        ...


class KafkaTaskQueue(TaskQueue):
    def __init__(self, producer: AIOKafkaProducer, topic: str):
        self.producer = producer
        self.topic = topic

    async def submit(self, unit: DispatchUnit) -> None:
        # Producer serialises values as JSON (see clients.kafka_producer)
        await self.producer.send_and_wait(
            self.topic,
            unit.model_dump(mode="json"),
            key=(unit.batch_id or unit.unit_id).encode("utf-8"),
        )
        logger.debug(
            "Submitted unit %s (batch=%s, attempt=%d, recipients=%d)",
            unit.unit_id, unit.batch_id, unit.attempt, len(unit.recipient_ids),
        )


class InMemoryTaskQueue(TaskQueue):
    def __init__(self):
        self._queue: asyncio.Queue[DispatchUnit] = asyncio.Queue()
        self.submitted: list[DispatchUnit] = []

    async def submit(self, unit: DispatchUnit) -> None:
        self.submitted.append(unit)
        await self._queue.put(unit)

    def pending(self) -> int:
        return self._queue.qsize()

    async def drain(self, handler: Callable[[DispatchUnit], Awaitable[None]]) -> int:
        """Run ``handler`` over queued units, including any it resubmits."""
        handled = 0
        while not self._queue.empty():
            unit = self._queue.get_nowait()
            await handler(unit)
            handled += 1
        return handled
