"""
Unit Tests for the Event Bus

Run with:
    pytest tests/unit/test_event_bus.py -v
"""

import pytest

from services.event_bus import EventBus


class TestEventBus:
    """Tests for topic-based pub/sub"""

    @pytest.mark.asyncio
    async def test_every_subscriber_receives_event(self):
        bus = EventBus()
        first = await bus.subscribe("stream")
        second = await bus.subscribe("stream")

        await bus.publish("stream", {"kind": "open"})

        assert first.get_nowait() == {"kind": "open"}
        assert second.get_nowait() == {"kind": "open"}
        assert bus.subscriber_count("stream") == 2

    @pytest.mark.asyncio
    async def test_topics_are_isolated(self):
        bus = EventBus()
        queue = await bus.subscribe("stream")

        bus.publish_nowait("other", "ignored")

        assert queue.empty()

    @pytest.mark.asyncio
    async def test_unsubscribe_drains_queue(self):
        bus = EventBus()
        queue = await bus.subscribe("stream")
        bus.publish_nowait("stream", 1)

        await bus.unsubscribe("stream", queue)
        bus.publish_nowait("stream", 2)

        assert queue.empty()
        assert bus.subscriber_count("stream") == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        bus = EventBus(max_queue_size=1)
        queue = await bus.subscribe("stream")

        bus.publish_nowait("stream", 1)
        bus.publish_nowait("stream", 2)

        assert queue.qsize() == 1
        assert queue.get_nowait() == 1
