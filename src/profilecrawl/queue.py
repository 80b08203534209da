"""
Message queue interface and an in-process implementation.

Delivery is at-least-once: a message whose handler raises is put back on
the queue until it has been delivered ``max_deliveries`` times, after which
it is counted as failed and dropped.
"""

import asyncio
import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from profilecrawl.constants import DEFAULT_MAX_DELIVERIES

logger = logging.getLogger(__name__)


@dataclass
class Message:
    topic: str
    payload: dict[str, Any]
    priority: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    deliveries: int = 0


@dataclass
class QueueInfo:
    name: str
    waiting: int
    active: int
    completed: int
    failed: int


Handler = Callable[[Message], Awaitable[None]]


class MessageQueue(ABC):
    """Abstract base class defining the queue transport the workers need."""

    @abstractmethod
    async def publish(self, topic: str, payload: dict[str, Any], priority: int = 0) -> str:
        """Publish a payload; higher priority is delivered first. Returns the message id."""
        pass

    @abstractmethod
    def subscribe(self, topic: str, handler: Handler, concurrency: int = 1) -> None:
        pass

    @abstractmethod
    async def get_queue_info(self, topic: str) -> QueueInfo:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class _Topic:

    def __init__(self, name: str):
        self.name = name
        self.queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self.handler: Handler | None = None
        self.consumers: list[asyncio.Task] = []
        self.active = 0
        self.completed = 0
        self.failed = 0


class InMemoryMessageQueue(MessageQueue):
    """asyncio-based queue for a single process."""

    def __init__(self, max_deliveries: int = DEFAULT_MAX_DELIVERIES):
        self.max_deliveries = max_deliveries
        self._topics: dict[str, _Topic] = {}
        self._sequence = itertools.count()
        self._closed = False

    def _topic(self, name: str) -> _Topic:
        if name not in self._topics:
            self._topics[name] = _Topic(name)
        return self._topics[name]

    async def publish(self, topic: str, payload: dict[str, Any], priority: int = 0) -> str:
        if self._closed:
            raise RuntimeError("Queue is closed")
        message = Message(topic=topic, payload=dict(payload), priority=priority)
        self._put(self._topic(topic), message)
        logger.debug(f"Published message {message.id} to {topic}")
        return message.id

    def _put(self, topic: _Topic, message: Message) -> None:
        # Sequence number keeps FIFO order within a priority
        topic.queue.put_nowait((-message.priority, next(self._sequence), message))

    def subscribe(self, topic: str, handler: Handler, concurrency: int = 1) -> None:
        """Register a handler and start its consumers on the running loop."""
        state = self._topic(topic)
        if state.handler is not None:
            raise RuntimeError(f"Consumer already exists for topic: {topic}")

        state.handler = handler
        for index in range(concurrency):
            task = asyncio.create_task(self._consume(state), name=f"{topic}-consumer-{index}")
            state.consumers.append(task)
        logger.info(f"Subscribed to {topic} with {concurrency} consumer(s)")

    async def _consume(self, topic: _Topic) -> None:
        while True:
            _, _, message = await topic.queue.get()
            message.deliveries += 1
            topic.active += 1
            try:
                await topic.handler(message)
                topic.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if message.deliveries < self.max_deliveries:
                    logger.warning(
                        f"Handler failed for message {message.id} on {topic.name} "
                        f"(delivery {message.deliveries}/{self.max_deliveries}), redelivering: {e}"
                    )
                    self._put(topic, message)
                else:
                    topic.failed += 1
                    logger.error(
                        f"Dropping message {message.id} on {topic.name} after "
                        f"{message.deliveries} deliveries: {e}"
                    )
            finally:
                topic.active -= 1
                topic.queue.task_done()

    async def join(self, topic: str) -> None:
        """Wait until every published message on the topic has been handled."""
        await self._topic(topic).queue.join()

    async def get_queue_info(self, topic: str) -> QueueInfo:
        state = self._topic(topic)
        return QueueInfo(
            name=topic,
            waiting=state.queue.qsize(),
            active=state.active,
            completed=state.completed,
            failed=state.failed,
        )

    async def close(self) -> None:
        """Stop consumers. In-flight handlers are cancelled."""
        self._closed = True
        tasks = [task for state in self._topics.values() for task in state.consumers]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for state in self._topics.values():
            state.consumers.clear()
            state.handler = None
        logger.debug("Message queue closed")
