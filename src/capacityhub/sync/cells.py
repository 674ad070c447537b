"""
Per-cell edit bookkeeping for the optimistic sync manager.

Every grid cell ``(allocation_id, week_key)`` with edit history has a
CellRecord holding its monotonically increasing edit sequence and its
confirmed baseline, the value the store is known to hold and the value a
rollback restores.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional


class CellKey(NamedTuple):
    allocation_id: int
    week_key: str


class EditState(str, Enum):
    """Lifecycle of the latest edit of a cell."""
    IDLE = "idle"
    APPLIED = "applied"
    PERSISTING = "persisting"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


OUTSTANDING_STATES = (EditState.APPLIED, EditState.PERSISTING)


@dataclass
class PersistAction:
    """A queued write of one cell value."""
    key: CellKey
    resource_id: int
    seq: int
    hours: float
    attempts: int = 0
    last_error: Optional[str] = None
    # Event loop time before which the action is not sent again
    not_before: float = 0.0


@dataclass
class CellRecord:
    key: CellKey
    confirmed_value: Optional[float]
    latest_seq: int = 0
    state: EditState = EditState.IDLE
    invalid: bool = False
    error: Optional[str] = None
    # Manager version of the last local change to this cell
    touched_version: int = 0

    @property
    def outstanding(self) -> bool:
        return self.state in OUTSTANDING_STATES


@dataclass(frozen=True)
class CellStatus:
    """Read-only view of a cell for the grid."""
    allocation_id: int
    week_key: str
    state: EditState
    seq: int
    invalid: bool = False
    error: Optional[str] = None
    confirmed_value: Optional[float] = None

    @property
    def outstanding(self) -> bool:
        return self.state in OUTSTANDING_STATES


class CellRegistry:
    """Cell records indexed by (allocation_id, week_key)."""

    def __init__(self):
        self._cells: Dict[CellKey, CellRecord] = {}

    def __contains__(self, key: CellKey) -> bool:
        return key in self._cells

    def __iter__(self) -> Iterator[CellRecord]:
        return iter(list(self._cells.values()))

    def get(self, key: CellKey) -> Optional[CellRecord]:
        return self._cells.get(key)

    def begin_edit(self, key: CellKey, current_value: Optional[float], version: int) -> CellRecord:
        """
        Register a new edit of a cell and assign its sequence number.

        The current value becomes the confirmed baseline only when no edit
        of the cell is outstanding; a superseding edit keeps the baseline
        captured before the first outstanding edit.
        """
        record = self._cells.get(key)
        if record is None:
            record = CellRecord(key=key, confirmed_value=current_value)
            self._cells[key] = record
        elif not record.outstanding:
            record.confirmed_value = current_value

        record.latest_seq += 1
        record.state = EditState.APPLIED
        record.invalid = False
        record.error = None
        record.touched_version = version
        return record

    def is_outstanding(self, key: CellKey) -> bool:
        record = self._cells.get(key)
        return record is not None and record.outstanding

    def records_for(self, allocation_id: int) -> List[CellRecord]:
        return [record for record in self._cells.values() if record.key.allocation_id == allocation_id]

    def outstanding_for(self, allocation_id: int) -> Dict[str, CellRecord]:
        return {
            record.key.week_key: record
            for record in self._cells.values()
            if record.key.allocation_id == allocation_id and record.outstanding
        }

    def status(self, key: CellKey) -> CellStatus:
        record = self._cells.get(key)
        if record is None:
            return CellStatus(allocation_id=key.allocation_id, week_key=key.week_key,
                              state=EditState.IDLE, seq=0)
        return CellStatus(
            allocation_id=key.allocation_id,
            week_key=key.week_key,
            state=record.state,
            seq=record.latest_seq,
            invalid=record.invalid,
            error=record.error,
            confirmed_value=record.confirmed_value,
        )
