"""
Unit tests for the in-process event bus and the event publisher.
"""

from unittest.mock import AsyncMock

import pytest

from capacityhub.events import (
    EditAppliedEvent,
    EventPublisher,
    EventType,
    InMemoryEventBus,
    channel_matches,
)


class TestChannelMatching:
    def test_wildcards(self):
        assert channel_matches("capacityhub.allocation.>", "capacityhub.allocation.edit.applied")
        assert channel_matches("capacityhub.allocation.>", "capacityhub.allocation.reconciled")
        assert channel_matches("capacityhub.allocation.edit.*", "capacityhub.allocation.edit.failed")
        assert not channel_matches("capacityhub.allocation.edit.*", "capacityhub.allocation.reconciled")
        assert not channel_matches("capacityhub.allocation.>", "capacityhub.allocation")
        assert channel_matches("capacityhub.allocation.reconciled", "capacityhub.allocation.reconciled")


class TestInMemoryEventBus:
    """Test delivery and isolation of handlers."""

    @pytest.mark.asyncio
    async def test_delivers_in_subscription_order(self):
        bus = InMemoryEventBus()
        await bus.connect()
        received = []

        async def first(event):
            received.append(("first", event.name))

        async def second(event):
            received.append(("second", event.name))

        await bus.subscribe("capacityhub.allocation.>", first)
        await bus.subscribe("capacityhub.allocation.edit.applied", second)
        await bus.publish(EditAppliedEvent(allocation_id=1))

        assert received == [("first", "applied"), ("second", "applied")]

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self):
        bus = InMemoryEventBus()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()

        await bus.subscribe("capacityhub.allocation.>", failing)
        await bus.subscribe("capacityhub.allocation.>", healthy)
        await bus.publish(EditAppliedEvent(allocation_id=1))

        failing.assert_awaited_once()
        healthy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = InMemoryEventBus()
        handler = AsyncMock()

        await bus.subscribe("capacityhub.allocation.>", handler)
        await bus.unsubscribe("capacityhub.allocation.>")
        await bus.publish(EditAppliedEvent(allocation_id=1))

        handler.assert_not_awaited()
        assert await bus.health_check()


class TestEventPublisher:
    """Test the typed publish calls."""

    @pytest.mark.asyncio
    async def test_publish_edit_applied(self):
        bus = AsyncMock()
        publisher = EventPublisher(bus)

        event = await publisher.publish_edit_applied(100, 1, "2025-03-03", 1, 25.5, 20.0)

        bus.publish.assert_awaited_once_with(event)
        assert event.event_type == EventType.EDIT_APPLIED
        assert event.hours == 25.5
        assert event.previous_hours == 20.0

    @pytest.mark.asyncio
    async def test_publish_rolled_back_and_failed(self):
        bus = AsyncMock()
        publisher = EventPublisher(bus)

        rolled_back = await publisher.publish_edit_rolled_back(100, 1, "2025-03-03", 2, 20.0, 25.5)
        failed = await publisher.publish_edit_failed(100, 1, "2025-03-03", 2, 25.5, "timeout", 3, True)

        assert rolled_back.hours == 20.0
        assert rolled_back.previous_hours == 25.5
        assert failed.error == "timeout"
        assert failed.payload == {"attempts": 3, "retryable": True}
        assert bus.publish.await_count == 2

    @pytest.mark.asyncio
    async def test_publish_reconciled(self):
        bus = AsyncMock()
        publisher = EventPublisher(bus)

        event = await publisher.publish_reconciled(1, [100, 200], [])

        assert event.resource_id == 1
        assert event.allocation_ids == [100, 200]
