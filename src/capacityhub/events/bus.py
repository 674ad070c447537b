"""
Event Bus - Abstract interface for pub/sub messaging.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from .event import Event


# Type alias for event handlers
EventHandler = Callable[[Event], Awaitable[None]]


class EventBus(ABC):
    """
    Abstract base class for event bus implementations.

    Consumers of edit events (derived-state projections, UI adapters) depend
    on this interface only.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Prepare the bus for publishing."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the bus and drop subscriptions."""
        ...

    @abstractmethod
    async def publish(self, event: Event) -> None:
        """
        Publish an event to the event bus.

        Args:
            event: Event to publish
        """
        ...

    @abstractmethod
    async def subscribe(self, channel_pattern: str, handler: EventHandler) -> None:
        """
        Subscribe to events matching a channel pattern.

        Args:
            channel_pattern: Channel pattern (``*`` matches one token,
                ``>`` the rest: capacityhub.allocation.edit.*)
            handler: Async function to handle received events
        """
        ...

    @abstractmethod
    async def unsubscribe(self, channel_pattern: str) -> None:
        """
        Unsubscribe from a channel pattern.

        Args:
            channel_pattern: Channel pattern to unsubscribe from
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the event bus is usable.

        Returns:
            True if healthy, False otherwise
        """
        ...
