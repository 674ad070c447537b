"""
Event Publisher Service - High-level interface for publishing edit events.
"""

import logging
from typing import Any, Dict, List, Optional

from .bus import EventBus
from .event import (
    AllocationsReconciledEvent,
    EditAppliedEvent,
    EditConfirmedEvent,
    EditFailedEvent,
    EditRolledBackEvent,
    Event,
)

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    High-level service for publishing edit lifecycle events.

    Wraps the EventBus and provides typed publish calls for the
    optimistic sync manager.
    """

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus

    async def publish_edit_applied(
        self,
        allocation_id: int,
        resource_id: int,
        week_key: str,
        seq: int,
        hours: float,
        previous_hours: Optional[float],
    ) -> Event:
        """Publish an allocation.edit.applied event."""
        event = EditAppliedEvent(
            allocation_id=allocation_id,
            resource_id=resource_id,
            week_key=week_key,
            seq=seq,
            hours=hours,
            previous_hours=previous_hours,
        )
        await self._publish(event)
        return event

    async def publish_edit_confirmed(
        self,
        allocation_id: int,
        resource_id: int,
        week_key: str,
        seq: int,
        hours: float,
        attempts: int,
    ) -> Event:
        """Publish an allocation.edit.confirmed event."""
        event = EditConfirmedEvent(
            allocation_id=allocation_id,
            resource_id=resource_id,
            week_key=week_key,
            seq=seq,
            hours=hours,
            payload={"attempts": attempts},
        )
        await self._publish(event)
        return event

    async def publish_edit_rolled_back(
        self,
        allocation_id: int,
        resource_id: int,
        week_key: str,
        seq: int,
        restored_hours: Optional[float],
        rejected_hours: float,
    ) -> Event:
        """Publish an allocation.edit.rolledback event."""
        event = EditRolledBackEvent(
            allocation_id=allocation_id,
            resource_id=resource_id,
            week_key=week_key,
            seq=seq,
            hours=restored_hours,
            previous_hours=rejected_hours,
        )
        await self._publish(event)
        return event

    async def publish_edit_failed(
        self,
        allocation_id: int,
        resource_id: int,
        week_key: str,
        seq: int,
        hours: float,
        error: str,
        attempts: int,
        retryable: bool,
    ) -> Event:
        """Publish an allocation.edit.failed event."""
        event = EditFailedEvent(
            allocation_id=allocation_id,
            resource_id=resource_id,
            week_key=week_key,
            seq=seq,
            hours=hours,
            error=error,
            payload={"attempts": attempts, "retryable": retryable},
        )
        await self._publish(event)
        return event

    async def publish_reconciled(
        self,
        resource_id: Optional[int],
        allocation_ids: List[int],
        skipped_cells: List[Dict[str, Any]],
    ) -> Event:
        """Publish an allocation.reconciled event."""
        event = AllocationsReconciledEvent(
            resource_id=resource_id,
            payload={"allocation_ids": allocation_ids, "skipped_cells": skipped_cells},
        )
        await self._publish(event)
        return event

    async def _publish(self, event: Event) -> None:
        logger.info(
            f"Publishing {event.event_type.value} event",
            extra={
                "event_id": str(event.event_id),
                "allocation_id": event.allocation_id,
                "week_key": event.week_key,
                "seq": event.seq,
            },
        )
        await self.event_bus.publish(event)
