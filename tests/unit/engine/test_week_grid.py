"""
Unit tests for week keys, grid columns and weekly totals.
"""

from datetime import date, datetime

import pytest

from capacityhub.domain.models import Allocation, AllocationStatus
from capacityhub.engine.week_grid import (
    generate_week_columns,
    is_week_key,
    shift_week,
    week_key,
    weekly_total,
    weekly_totals,
)


class TestWeekKeys:
    """Test week key normalisation."""

    def test_iso_week_resolves_to_monday(self):
        assert week_key("2025-W10") == "2025-03-03"
        assert week_key("2025-W01") == "2024-12-30"

    def test_dates_resolve_to_monday(self):
        assert week_key(date(2025, 3, 6)) == "2025-03-03"
        assert week_key(datetime(2025, 3, 9, 23, 30)) == "2025-03-03"
        assert week_key("2025-03-03") == "2025-03-03"

    def test_invalid_inputs(self):
        with pytest.raises(ValueError):
            week_key("03/03/2025")
        with pytest.raises(TypeError):
            week_key(42)

    def test_is_week_key(self):
        assert is_week_key("2025-03-03")
        assert not is_week_key("2025-03-04")
        assert not is_week_key("2025-W10")

    def test_shift_week(self):
        assert shift_week("2025-03-03", -1) == "2025-02-24"
        assert shift_week("2025-03-03", 1) == "2025-03-10"
        assert shift_week("2025-01-06", -2) == "2024-12-23"


class TestWeekColumns:
    """Test grid column generation."""

    def test_columns_anchored_to_today(self):
        columns = generate_week_columns(offset_weeks=-1, count=3, today=date(2025, 3, 5))

        assert [c.week_key for c in columns] == ["2025-02-24", "2025-03-03", "2025-03-10"]
        assert [c.week_number for c in columns] == [9, 10, 11]
        assert [c.label for c in columns] == ["W9", "W10", "W11"]

        past, current, future = columns
        assert past.is_past and not past.is_current
        assert current.is_current and not current.is_future
        assert future.is_future
        assert current.end_date == date(2025, 3, 9)

    def test_zero_count(self):
        assert generate_week_columns(0, 0, today=date(2025, 3, 5)) == []


class TestWeeklyTotal:
    """Test weekly totals across allocations."""

    def test_only_active_allocations_of_the_resource_count(self):
        allocations = [
            Allocation(id=1, project_id=1, resource_id=7, weekly_allocations={"2025-03-03": 10}),
            Allocation(id=2, project_id=2, resource_id=7, weekly_allocations={"2025-03-03": 5.5}),
            Allocation(
                id=3,
                project_id=3,
                resource_id=7,
                status=AllocationStatus.PLANNED,
                weekly_allocations={"2025-03-03": 30},
            ),
            Allocation(id=4, project_id=1, resource_id=8, weekly_allocations={"2025-03-03": 40}),
        ]

        assert weekly_total(allocations, 7, "2025-03-03") == 15.5
        assert weekly_total(allocations, 7, "2025-W10", exclude_allocation_id=1) == 5.5
        assert weekly_total(allocations, 7, "2025-03-10") == 0

    def test_total_is_rounded(self):
        allocations = [
            Allocation(id=1, project_id=1, resource_id=7, weekly_allocations={"2025-03-03": 0.1}),
            Allocation(id=2, project_id=2, resource_id=7, weekly_allocations={"2025-03-03": 0.2}),
        ]

        assert weekly_total(allocations, 7, "2025-03-03") == 0.3

    def test_weekly_totals(self, overallocated):
        totals = weekly_totals(overallocated, 1, ["2025-W10", "2025-03-10", "2025-03-17"])

        assert totals == {"2025-03-03": 45.0, "2025-03-10": 15.0, "2025-03-17": 0}
