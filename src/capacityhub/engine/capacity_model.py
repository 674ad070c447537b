"""
Capacity Model - effective capacity, utilization and hour distribution.

Pure functions over plain numbers and week maps. Totals per resource and
week come from ``week_grid.weekly_total``; nothing here sums allocations
across projects.

Utilization thresholds (percent of effective capacity):
- >= 120  critical
- >= 100  over capacity
- >= 90   near capacity
- <  50   under-utilized
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, Mapping, Optional

from capacityhub.engine.week_grid import WeekLike, week_key

if TYPE_CHECKING:
    from capacityhub.domain.models import Resource


DEFAULT_NON_PROJECT_HOURS = 8.0
MAX_WEEKLY_HOURS = 168.0

CRITICAL_THRESHOLD = 120.0
OVER_CAPACITY_THRESHOLD = 100.0
NEAR_CAPACITY_THRESHOLD = 90.0
UNDER_UTILIZED_THRESHOLD = 50.0
# Lower bound of the "near capacity" band used for single-week hints
WEEK_NEAR_CAPACITY_THRESHOLD = 80.0


class UtilizationStatus(str, Enum):
    UNDER_UTILIZED = "under-utilized"
    OPTIMAL = "optimal"
    NEAR_CAPACITY = "near-capacity"
    OVER_CAPACITY = "over-capacity"
    CRITICAL = "critical"
    UNASSIGNED = "unassigned"
    INACTIVE = "inactive"

    @property
    def label(self) -> str:
        return " ".join(word.capitalize() for word in self.value.split("-"))


@dataclass(frozen=True)
class UtilizationSummary:
    """Utilization of one resource over some period."""
    base_capacity: float
    effective_capacity: float
    allocated_hours: float
    utilization: float
    status: UtilizationStatus
    is_active: bool = True

    @property
    def has_allocations(self) -> bool:
        return self.allocated_hours > 0


@dataclass(frozen=True)
class WeekCapacity:
    """Capacity picture of one resource in one week."""
    base_capacity: float
    non_project_hours: float
    effective_capacity: float
    allocated_hours: float
    remaining_capacity: float
    utilization: float
    is_overallocated: bool
    is_near_capacity: bool


def effective_capacity(
    weekly_capacity: float,
    non_project_hours: float = DEFAULT_NON_PROJECT_HOURS,
) -> float:
    """Hours available for project work; never negative."""
    return max(0.0, float(weekly_capacity) - float(non_project_hours))


def utilization(allocated_hours: float, capacity: float) -> float:
    """Allocated hours as a percentage of capacity, 1 decimal; 0 without capacity."""
    if capacity <= 0:
        return 0.0
    return round(allocated_hours / capacity * 100, 1)


def period_utilization(
    weekly_allocations: Mapping[str, float],
    weekly_capacity: float,
    week_keys: Iterable[WeekLike],
    non_project_hours: float = DEFAULT_NON_PROJECT_HOURS,
) -> float:
    """
    Utilization over several weeks.

    Args:
        weekly_allocations: Week key -> allocated hours
        weekly_capacity: Contracted hours per week
        week_keys: Weeks making up the period

    Returns:
        Allocated hours over the period divided by effective capacity times
        the number of weeks, as a percentage with 1 decimal
    """
    keys = [week_key(key) for key in week_keys]
    by_week = _by_week(weekly_allocations)
    capacity = effective_capacity(weekly_capacity, non_project_hours) * len(keys)
    allocated = sum(by_week.get(key, 0.0) for key in keys)
    return utilization(allocated, capacity)


def optimal_distribution(
    target_total_hours: float,
    week_keys: Iterable[WeekLike],
    weekly_capacity: float,
    existing_allocations_by_week: Mapping[str, float],
    non_project_hours: float = DEFAULT_NON_PROJECT_HOURS,
) -> Dict[str, float]:
    """
    Spread a target number of hours over weeks without exceeding capacity.

    Weeks are processed in the given order. Each week receives
    ``min(base_share, remaining_target, available_capacity)`` rounded to
    1 decimal, where ``base_share`` is the target divided by the number of
    weeks. Processing stops once the target is exhausted, so later weeks
    may be missing from the result.
    """
    keys = [week_key(key) for key in week_keys]
    if not keys or target_total_hours <= 0:
        return {}
    existing = _by_week(existing_allocations_by_week)

    capacity = effective_capacity(weekly_capacity, non_project_hours)
    base_share = target_total_hours / len(keys)
    remaining = float(target_total_hours)

    distribution: Dict[str, float] = {}
    for key in keys:
        if remaining <= 0:
            break
        available = max(0.0, capacity - existing.get(key, 0.0))
        hours = round(min(base_share, remaining, available), 1)
        distribution[key] = hours
        remaining = round(remaining - hours, 6)

    return distribution


def _by_week(weekly_hours: Mapping[str, float]) -> Dict[str, float]:
    """Re-key a week map to Monday keys, summing weeks given twice."""
    by_week: Dict[str, float] = {}
    for key, hours in weekly_hours.items():
        canonical = week_key(key)
        by_week[canonical] = by_week.get(canonical, 0.0) + float(hours or 0.0)
    return by_week


def utilization_status(
    utilization_percentage: float,
    is_active: bool = True,
    has_allocations: bool = True,
) -> UtilizationStatus:
    if not is_active:
        return UtilizationStatus.INACTIVE
    if not has_allocations or utilization_percentage == 0:
        return UtilizationStatus.UNASSIGNED
    if utilization_percentage >= CRITICAL_THRESHOLD:
        return UtilizationStatus.CRITICAL
    if utilization_percentage >= OVER_CAPACITY_THRESHOLD:
        return UtilizationStatus.OVER_CAPACITY
    if utilization_percentage >= NEAR_CAPACITY_THRESHOLD:
        return UtilizationStatus.NEAR_CAPACITY
    if utilization_percentage < UNDER_UTILIZED_THRESHOLD:
        return UtilizationStatus.UNDER_UTILIZED
    return UtilizationStatus.OPTIMAL


def alert_severity(utilization_percentage: float) -> Optional[str]:
    """Alert level for a utilization percentage, None when nothing to report."""
    if utilization_percentage >= CRITICAL_THRESHOLD:
        return "critical"
    if utilization_percentage >= OVER_CAPACITY_THRESHOLD:
        return "error"
    if utilization_percentage >= NEAR_CAPACITY_THRESHOLD:
        return "warning"
    if 0 < utilization_percentage < UNDER_UTILIZED_THRESHOLD:
        return "info"
    return None


def resource_utilization(
    resource: "Resource",
    allocated_hours: float,
    weeks: int = 1,
) -> UtilizationSummary:
    """Utilization summary of a resource for ``weeks`` weeks of allocated hours."""
    capacity = resource.effective_capacity * max(1, weeks)
    percent = utilization(allocated_hours, capacity)
    return UtilizationSummary(
        base_capacity=resource.weekly_capacity,
        effective_capacity=resource.effective_capacity,
        allocated_hours=allocated_hours,
        utilization=percent,
        status=utilization_status(percent, resource.is_active, allocated_hours > 0),
        is_active=resource.is_active,
    )


def week_capacity(resource: "Resource", allocated_hours: float) -> WeekCapacity:
    capacity = resource.effective_capacity
    percent = utilization(allocated_hours, capacity)
    return WeekCapacity(
        base_capacity=resource.weekly_capacity,
        non_project_hours=resource.non_project_hours,
        effective_capacity=capacity,
        allocated_hours=allocated_hours,
        remaining_capacity=max(0.0, capacity - allocated_hours),
        utilization=percent,
        is_overallocated=percent > OVER_CAPACITY_THRESHOLD,
        is_near_capacity=WEEK_NEAR_CAPACITY_THRESHOLD < percent <= OVER_CAPACITY_THRESHOLD,
    )


def format_hours(value: float, show_unit: bool = True, decimal_places: int = 1) -> str:
    """Display form of an hour value: ``0h``, ``12.5h``, ``8h``."""
    if value == 0:
        text = "0"
    else:
        text = f"{value:.{decimal_places}f}"
        if "." in text:
            text = text.rstrip("0").rstrip(".")
    return f"{text}h" if show_unit else text
