"""
Simple Async Pub/Sub Event Bus

A lightweight publish/subscribe utility built on asyncio queues. StreamClient
publishes its lifecycle and snapshot events here, and any number of consumers
subscribe and drain their own queue independently, so the transport never
calls into display logic directly.
"""

import asyncio
from typing import Any, DefaultDict, Set
from collections import defaultdict

from core.logging import get_logger


class EventBus:
    """
    Async event bus with topic-based pub/sub.

    - Each subscriber gets its own asyncio.Queue and will not block publishers.
    - Unsubscribing is important to avoid queue leaks when consumers go away.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._topics: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._max_queue_size = max_queue_size
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    async def subscribe(self, topic: str) -> asyncio.Queue:
        """
        Subscribe to a topic. Returns an asyncio.Queue for receiving events.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        async with self._lock:
            self._topics[topic].add(queue)
        self._logger.debug(f"Subscriber added to topic '{topic}'. total={len(self._topics[topic])}")
        return queue

    async def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        """
        Unsubscribe a queue from a topic and drain what it still holds.
        """
        async with self._lock:
            if queue in self._topics.get(topic, set()):
                self._topics[topic].remove(queue)
                while True:
                    try:
                        queue.get_nowait()
                    except asyncio.QueueEmpty:
                        break
        self._logger.debug(f"Subscriber removed from topic '{topic}'. total={len(self._topics[topic])}")

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, set()))

    def publish_nowait(self, topic: str, event: Any) -> None:
        """
        Publish without awaiting; safe to call from loop callbacks.
        Drops the event for any subscriber whose queue is full.
        """
        for q in list(self._topics.get(topic, set())):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                self._logger.warning(f"Dropping event for topic '{topic}' due to full queue")

    async def publish(self, topic: str, event: Any) -> None:
        """
        Publish an event to a topic. Drops events if subscriber queue is full.
        """
        self.publish_nowait(topic, event)
