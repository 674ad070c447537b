"""
Event models for the optimistic edit lifecycle.

Derived-state consumers subscribe to these instead of invalidating caches
by hand after every mutation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Standard event types."""

    # Cell edit lifecycle
    EDIT_APPLIED = "allocation.edit.applied"
    EDIT_CONFIRMED = "allocation.edit.confirmed"
    EDIT_ROLLED_BACK = "allocation.edit.rolledback"
    EDIT_FAILED = "allocation.edit.failed"

    # Server state merged into local state
    ALLOCATIONS_RECONCILED = "allocation.reconciled"


class Event(BaseModel):
    """
    Base event model for all events in CapacityHub.

    All events published to the event bus must conform to this schema.
    """

    event_id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    allocation_id: Optional[int] = None
    resource_id: Optional[int] = None
    week_key: Optional[str] = None
    seq: Optional[int] = None
    hours: Optional[float] = None
    previous_hours: Optional[float] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def channel(self) -> str:
        """Bus channel name for this event."""
        return f"capacityhub.{self.event_type.value}"

    @property
    def name(self) -> str:
        """Short lifecycle name: applied, confirmed, rolledback, failed, reconciled."""
        return self.event_type.value.rsplit(".", 1)[-1]


class EditAppliedEvent(Event):
    """Published when an edit is applied to local state."""

    event_type: Literal[EventType.EDIT_APPLIED] = EventType.EDIT_APPLIED


class EditConfirmedEvent(Event):
    """Published when the store accepted the latest edit of a cell."""

    event_type: Literal[EventType.EDIT_CONFIRMED] = EventType.EDIT_CONFIRMED


class EditRolledBackEvent(Event):
    """Published when a cell was restored to its last confirmed value."""

    event_type: Literal[EventType.EDIT_ROLLED_BACK] = EventType.EDIT_ROLLED_BACK


class EditFailedEvent(Event):
    """Published once per edit that could not be persisted."""

    event_type: Literal[EventType.EDIT_FAILED] = EventType.EDIT_FAILED

    @property
    def retryable(self) -> bool:
        return bool(self.payload.get("retryable", False))


class AllocationsReconciledEvent(Event):
    """Published after server state was merged into local state."""

    event_type: Literal[EventType.ALLOCATIONS_RECONCILED] = EventType.ALLOCATIONS_RECONCILED

    @property
    def allocation_ids(self) -> list[int]:
        return self.payload.get("allocation_ids", [])
