"""
Unit tests for the Allocation Validator.
"""

import pytest

from capacityhub.domain.models import Allocation
from capacityhub.engine.validator import (
    AllocationValidator,
    ValidationContext,
    ValidationKind,
    ValidationSeverity,
    is_blocking,
    parse_hours,
)
from capacityhub.errors import FormatError, RangeError


@pytest.fixture
def context():
    """Allocation 100 edited; allocation 200 already holds 6h that week."""
    allocations = [
        Allocation(id=100, project_id=10, resource_id=1, weekly_allocations={"2025-03-03": 20}),
        Allocation(id=200, project_id=20, resource_id=1, weekly_allocations={"2025-03-03": 6}),
    ]
    return ValidationContext(
        allocation_id=100,
        resource_id=1,
        week_key="2025-03-03",
        allocations=allocations,
        weekly_capacity=40,
        non_project_hours=8,
        resource_name="Ada Lovelace",
    )


@pytest.fixture
def validator():
    return AllocationValidator()


class TestParseHours:
    def test_parse(self):
        assert parse_hours("12.5") == 12.5
        assert parse_hours(" 8 ") == 8.0
        assert parse_hours("") == 0.0
        assert parse_hours(".5") == 0.5
        assert parse_hours(7) == 7.0

    def test_invalid(self):
        assert parse_hours(".") is None
        assert parse_hours("abc") is None
        assert parse_hours("-5") is None
        assert parse_hours("1e3") is None
        assert parse_hours(float("nan")) is None
        assert parse_hours(float("inf")) is None
        assert parse_hours(True) is None
        assert parse_hours(None) is None

    def test_non_ascii_digits_are_rejected(self):
        assert parse_hours("\u0662\u0665") is None
        assert parse_hours("\uff12\uff15") is None


class TestValidate:
    """Test rule evaluation order and severities."""

    def test_value_within_capacity(self, validator, context):
        assert validator.validate("25.5", context) == []
        assert validator.validate("", context) == []

    def test_format_failure_stops_evaluation(self, validator, context):
        results = validator.validate("12h", context)

        assert len(results) == 1
        assert results[0].kind == ValidationKind.FORMAT
        assert results[0].message == "invalid number"
        assert is_blocking(results)

    def test_negative_number(self, validator, context):
        results = validator.validate(-5, context)

        assert [r.message for r in results] == ["negative"]
        assert results[0].kind == ValidationKind.RANGE

    def test_range_and_capacity_are_both_reported(self, validator, context):
        results = validator.validate("200", context)

        assert [r.kind for r in results] == [ValidationKind.RANGE, ValidationKind.CAPACITY]
        assert results[0].message == "exceeds 168h/week"
        assert is_blocking(results)

    def test_small_excess_is_a_warning(self, validator, context):
        results = validator.validate("30", context)

        assert len(results) == 1
        result = results[0]
        assert result.kind == ValidationKind.CAPACITY
        assert result.severity == ValidationSeverity.WARNING
        assert result.excess == 4
        assert result.message == "Exceeds weekly capacity for Ada Lovelace by 4.0h (36.0h / 32.0h)"
        assert not is_blocking(results)

    def test_large_excess_is_an_error_but_not_blocking(self, validator, context):
        results = validator.validate("40", context)

        assert results[0].severity == ValidationSeverity.ERROR
        assert results[0].excess == 14
        assert not results[0].blocking

    def test_edited_allocation_is_excluded(self, validator, context):
        # 20h currently in the edited cell must not be counted twice
        assert context.other_hours() == 6
        assert validator.validate("26", context) == []


class TestEnsureAccepted:
    def test_returns_hours_and_diagnostics(self, validator, context):
        hours, results = validator.ensure_accepted("30", context)

        assert hours == 30.0
        assert len(results) == 1

    def test_raises_format_error(self, validator, context):
        with pytest.raises(FormatError) as exc_info:
            validator.ensure_accepted(".", context)

        assert exc_info.value.message == "invalid number"
        assert exc_info.value.results[0].kind == ValidationKind.FORMAT

    def test_raises_range_error(self, validator, context):
        with pytest.raises(RangeError):
            validator.ensure_accepted("169", context)

    def test_validate_batch(self, validator, context):
        results = validator.validate_batch([("10", context), ("x", context), ("30", context)])

        assert [len(r) for r in results] == [0, 1, 1]
        assert results[1][0].kind == ValidationKind.FORMAT
        assert results[2][0].kind == ValidationKind.CAPACITY
