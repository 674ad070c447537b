"""CapacityHub Event Bus - typed edit lifecycle events for derived-state consumers."""

from .bus import EventBus, EventHandler
from .event import (
    AllocationsReconciledEvent,
    EditAppliedEvent,
    EditConfirmedEvent,
    EditFailedEvent,
    EditRolledBackEvent,
    Event,
    EventType,
)
from .memory_bus import InMemoryEventBus, channel_matches
from .publisher import EventPublisher

__all__ = [
    # Core interfaces
    "EventBus",
    "EventHandler",
    "EventPublisher",
    # Event models
    "Event",
    "EventType",
    "EditAppliedEvent",
    "EditConfirmedEvent",
    "EditRolledBackEvent",
    "EditFailedEvent",
    "AllocationsReconciledEvent",
    # Implementations
    "InMemoryEventBus",
    "channel_matches",
]
