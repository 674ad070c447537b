"""
Domain models for resources, projects and weekly hour allocations.

Models are immutable; an edit produces a new Allocation through
``Allocation.with_week`` so that readers always hold a complete value.
Field names accept both snake_case and the store's camelCase JSON.
"""

import math
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from capacityhub.engine.capacity_model import (
    DEFAULT_NON_PROJECT_HOURS,
    MAX_WEEKLY_HOURS,
    effective_capacity,
)
from capacityhub.engine.week_grid import WeekLike, week_key


class AllocationStatus(str, Enum):
    """Lifecycle of an allocation. Only ACTIVE counts toward capacity."""
    ACTIVE = "active"
    PLANNED = "planned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSURE = "closure"
    REJECTED = "rejected"


class ProjectPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DomainModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Resource(DomainModel):
    """A person whose weekly hours are allocated to projects."""
    id: int
    name: str
    weekly_capacity: float = Field(40.0, ge=0)
    non_project_hours: float = Field(DEFAULT_NON_PROJECT_HOURS, ge=0)
    is_active: bool = True
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None

    @property
    def effective_capacity(self) -> float:
        return effective_capacity(self.weekly_capacity, self.non_project_hours)


class Project(DomainModel):
    id: int
    name: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: ProjectPriority = ProjectPriority.MEDIUM

    @property
    def is_low_priority(self) -> bool:
        return self.priority == ProjectPriority.LOW


class Allocation(DomainModel):
    """
    Hours of one resource on one project, per week.

    ``weekly_allocations`` maps a Monday week key to hours. The allocation
    total is always derived from the week cells.
    """
    id: int
    project_id: int
    resource_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: AllocationStatus = AllocationStatus.ACTIVE
    role: Optional[str] = None
    weekly_allocations: Dict[str, float] = Field(default_factory=dict)

    @field_validator("weekly_allocations", mode="before")
    @classmethod
    def _normalise_weeks(cls, value: Any) -> Dict[str, float]:
        if value is None:
            return {}
        normalised: Dict[str, float] = {}
        for raw_key, raw_hours in dict(value).items():
            key = week_key(raw_key)
            if key in normalised:
                raise ValueError(f"Duplicate week {key}")
            # Empty cells come through as null
            if raw_hours is None:
                raw_hours = 0
            try:
                hours = float(raw_hours)
            except TypeError:
                raise ValueError(f"Hours for week {key} must be a number")
            if math.isnan(hours) or not 0 <= hours <= MAX_WEEKLY_HOURS:
                raise ValueError(
                    f"Hours for week {key} must be between 0 and {MAX_WEEKLY_HOURS:g}"
                )
            normalised[key] = hours
        return normalised

    @property
    def is_active(self) -> bool:
        return self.status == AllocationStatus.ACTIVE

    @property
    def total_hours(self) -> float:
        return round(sum(self.weekly_allocations.values()), 2)

    def hours_for(self, key: WeekLike) -> float:
        return self.weekly_allocations.get(week_key(key), 0.0)

    def has_week(self, key: WeekLike) -> bool:
        return week_key(key) in self.weekly_allocations

    def with_week(self, key: WeekLike, hours: Optional[float]) -> "Allocation":
        """
        Copy of this allocation with one week cell replaced.

        Args:
            key: Week of the cell
            hours: New hours, or None to remove the cell

        Returns:
            New validated Allocation; ``self`` is unchanged
        """
        weeks = dict(self.weekly_allocations)
        canonical = week_key(key)
        if hours is None:
            weeks.pop(canonical, None)
        else:
            weeks[canonical] = hours
        data = self.model_dump()
        data["weekly_allocations"] = weeks
        return type(self)(**data)
