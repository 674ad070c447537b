"""
In-process Event Bus implementation.

Delivers events to subscribers on the publishing task, in subscription
order, so that a publish returns only after every handler has seen the
event. A failing handler is logged and does not affect other handlers.
"""

from typing import Dict, List

import structlog

from .bus import EventBus, EventHandler
from .event import Event

logger = structlog.get_logger()


def channel_matches(pattern: str, channel: str) -> bool:
    """
    Match a dotted channel against a pattern.

    ``*`` matches exactly one token, ``>`` matches one or more trailing tokens.
    """
    pattern_tokens = pattern.split(".")
    channel_tokens = channel.split(".")

    for index, token in enumerate(pattern_tokens):
        if token == ">":
            return len(channel_tokens) > index
        if index >= len(channel_tokens):
            return False
        if token != "*" and token != channel_tokens[index]:
            return False

    return len(pattern_tokens) == len(channel_tokens)


class InMemoryEventBus(EventBus):
    """Event bus for a single process (UI thread style, asyncio)."""

    def __init__(self):
        self._subscriptions: Dict[str, List[EventHandler]] = {}
        self._connected = False

    async def connect(self) -> None:
        self._connected = True
        logger.debug("In-memory event bus ready")

    async def disconnect(self) -> None:
        self._subscriptions.clear()
        self._connected = False

    async def publish(self, event: Event) -> None:
        channel = event.channel
        for pattern, handlers in list(self._subscriptions.items()):
            if not channel_matches(pattern, channel):
                continue
            for handler in list(handlers):
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(
                        "Event handler failed",
                        channel=channel,
                        pattern=pattern,
                        event_id=str(event.event_id),
                        error=str(e),
                        exc_info=True,
                    )

    async def subscribe(self, channel_pattern: str, handler: EventHandler) -> None:
        self._subscriptions.setdefault(channel_pattern, []).append(handler)
        logger.debug("Subscribed to channel", pattern=channel_pattern)

    async def unsubscribe(self, channel_pattern: str) -> None:
        self._subscriptions.pop(channel_pattern, None)

    async def health_check(self) -> bool:
        return True
