"""
Week Grid - week keys, week columns and per-resource weekly totals.

A week key is the Monday of an ISO week formatted as ``YYYY-MM-DD``.
``weekly_total`` is the only place where a resource's hours for a week are
summed; the capacity model, the conflict detector and the edit validator all
read totals through it.

Usage:
    columns = generate_week_columns(offset_weeks=-2, count=8)
    total = weekly_total(allocations, resource_id=7, key=columns[0].week_key)
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple, Union

if TYPE_CHECKING:
    from capacityhub.domain.models import Allocation


WEEK_KEY_FORMAT = "%Y-%m-%d"

_ISO_WEEK_RE = re.compile(r"^(\d{4})-W(\d{1,2})$")
_WEEK_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WeekLike = Union[date, datetime, str]


@dataclass(frozen=True)
class WeekColumn:
    """One column of the allocation grid."""
    week_key: str
    week_number: int
    start_date: date
    end_date: date
    is_current: bool
    is_past: bool
    is_future: bool

    @property
    def label(self) -> str:
        return f"W{self.week_number}"


def week_start(value: WeekLike) -> date:
    """
    Resolve a date, datetime, ``YYYY-MM-DD`` or ISO ``YYYY-Www`` string to
    the Monday of its week.

    Raises:
        ValueError: If a string is in neither format
        TypeError: For unsupported input types
    """
    if isinstance(value, datetime):
        day = value.date()
    elif isinstance(value, date):
        day = value
    elif isinstance(value, str):
        text = value.strip()
        match = _ISO_WEEK_RE.match(text)
        if match:
            return date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
        if not _WEEK_KEY_RE.match(text):
            raise ValueError(f"Invalid week key: {value!r}")
        day = date.fromisoformat(text)
    else:
        raise TypeError(f"Cannot derive a week from {type(value).__name__}")

    return day - timedelta(days=day.weekday())


def week_key(value: WeekLike) -> str:
    """Monday-of-week key (``YYYY-MM-DD``) for any week-like value."""
    return week_start(value).strftime(WEEK_KEY_FORMAT)


def is_week_key(value: str) -> bool:
    """True if ``value`` is already a canonical Monday week key."""
    if not isinstance(value, str) or not _WEEK_KEY_RE.match(value):
        return False
    try:
        return date.fromisoformat(value).weekday() == 0
    except ValueError:
        return False


def shift_week(key: WeekLike, weeks: int) -> str:
    """Week key ``weeks`` weeks before (negative) or after (positive) ``key``."""
    return week_key(week_start(key) + timedelta(weeks=weeks))


def generate_week_columns(
    offset_weeks: int,
    count: int,
    today: Optional[date] = None,
) -> List[WeekColumn]:
    """
    Generate grid columns starting ``offset_weeks`` from the current week.

    Args:
        offset_weeks: First column relative to the current week (may be negative)
        count: Number of columns
        today: Anchor date, defaults to the date at call time

    Returns:
        List of WeekColumn in chronological order
    """
    current = week_start(today or date.today())
    first = current + timedelta(weeks=offset_weeks)

    columns = []
    for index in range(max(0, count)):
        start = first + timedelta(weeks=index)
        columns.append(WeekColumn(
            week_key=start.strftime(WEEK_KEY_FORMAT),
            week_number=start.isocalendar()[1],
            start_date=start,
            end_date=start + timedelta(days=6),
            is_current=start == current,
            is_past=start < current,
            is_future=start > current,
        ))
    return columns


def week_contributions(
    allocations: Iterable["Allocation"],
    resource_id: int,
    key: WeekLike,
    exclude_allocation_id: Optional[int] = None,
) -> List[Tuple["Allocation", float]]:
    """Active allocations of the resource with non-zero hours in the week."""
    key = week_key(key)
    contributions = []
    for allocation in allocations:
        if allocation.resource_id != resource_id or not allocation.is_active:
            continue
        if exclude_allocation_id is not None and allocation.id == exclude_allocation_id:
            continue
        hours = allocation.hours_for(key)
        if hours:
            contributions.append((allocation, hours))
    return contributions


def weekly_total(
    allocations: Iterable["Allocation"],
    resource_id: int,
    key: WeekLike,
    exclude_allocation_id: Optional[int] = None,
) -> float:
    """
    Total hours of a resource in one week across all active allocations.

    Rounded to 2 decimals so that float noise never creates a conflict.
    """
    contributions = week_contributions(allocations, resource_id, key, exclude_allocation_id)
    return round(sum(hours for _, hours in contributions), 2)


def weekly_totals(
    allocations: Iterable["Allocation"],
    resource_id: int,
    keys: Iterable[WeekLike],
) -> Dict[str, float]:
    """``weekly_total`` for several weeks, keyed by canonical week key."""
    allocations = list(allocations)
    return {week_key(k): weekly_total(allocations, resource_id, k) for k in keys}
