"""
Allocation Validator - checks a single grid-cell edit before it is applied.

Rules, in order:
1. Format   - raw text must look like an unsigned decimal number
2. Range    - 0 <= hours <= 168
3. Capacity - projected weekly total against effective capacity

Format and range failures block the edit. Capacity results are hints: the
edit is still applied, since users may exceed capacity on purpose.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from capacityhub.domain.models import Allocation
from capacityhub.engine.capacity_model import (
    DEFAULT_NON_PROJECT_HOURS,
    MAX_WEEKLY_HOURS,
    effective_capacity,
)
from capacityhub.engine.week_grid import weekly_total
from capacityhub.errors import FormatError, RangeError

HOURS_PATTERN = re.compile(r"^\d*\.?\d*$", re.ASCII)

# Excess above this share of effective capacity is reported as an error
CAPACITY_ERROR_TOLERANCE = 0.2

RawInput = Union[str, int, float]


class ValidationKind(str, Enum):
    FORMAT = "format"
    RANGE = "range"
    CAPACITY = "capacity"


class ValidationSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationResult:
    """One diagnostic for a proposed cell value."""
    kind: ValidationKind
    severity: ValidationSeverity
    message: str
    value: Optional[float] = None
    excess: Optional[float] = None

    @property
    def blocking(self) -> bool:
        """Format and range failures reject the edit outright."""
        return self.kind in (ValidationKind.FORMAT, ValidationKind.RANGE)


@dataclass
class ValidationContext:
    """Where the edited cell sits and what else the resource has that week."""
    allocation_id: int
    resource_id: int
    week_key: str
    allocations: Sequence[Allocation] = field(default_factory=list)
    weekly_capacity: float = 40.0
    non_project_hours: float = DEFAULT_NON_PROJECT_HOURS
    resource_name: Optional[str] = None

    @property
    def effective_capacity(self) -> float:
        return effective_capacity(self.weekly_capacity, self.non_project_hours)

    def other_hours(self) -> float:
        """Hours of the resource in this week outside the edited allocation."""
        return weekly_total(
            self.allocations,
            self.resource_id,
            self.week_key,
            exclude_allocation_id=self.allocation_id,
        )


def parse_hours(raw_input: RawInput) -> Optional[float]:
    """
    Parse a cell value; None when it is not a valid number.

    Empty text means the cell was cleared and parses as 0.
    """
    if isinstance(raw_input, bool):
        return None
    if isinstance(raw_input, (int, float)):
        value = float(raw_input)
        return value if math.isfinite(value) else None
    if not isinstance(raw_input, str):
        return None

    text = raw_input.strip()
    if not HOURS_PATTERN.match(text):
        return None
    if text == "":
        return 0.0
    try:
        return float(text)
    except ValueError:
        # a lone "." passes the pattern
        return None


def is_blocking(results: Iterable[ValidationResult]) -> bool:
    return any(r.blocking for r in results)


class AllocationValidator:
    """
    Validates single-cell edits.

    All independent checks are collected so the grid can show several
    diagnostics at once; only a format failure stops evaluation, since
    there is no value to check further.
    """

    def __init__(
        self,
        max_hours: float = MAX_WEEKLY_HOURS,
        error_tolerance: float = CAPACITY_ERROR_TOLERANCE,
    ):
        self.max_hours = max_hours
        self.error_tolerance = error_tolerance

    def validate(self, raw_input: RawInput, context: ValidationContext) -> List[ValidationResult]:
        hours = parse_hours(raw_input)
        if hours is None:
            return [ValidationResult(
                kind=ValidationKind.FORMAT,
                severity=ValidationSeverity.ERROR,
                message="invalid number",
            )]

        results = []
        if hours < 0:
            results.append(ValidationResult(
                kind=ValidationKind.RANGE,
                severity=ValidationSeverity.ERROR,
                message="negative",
                value=hours,
            ))
        elif hours > self.max_hours:
            results.append(ValidationResult(
                kind=ValidationKind.RANGE,
                severity=ValidationSeverity.ERROR,
                message=f"exceeds {self.max_hours:g}h/week",
                value=hours,
            ))

        capacity_result = self.check_capacity(hours, context)
        if capacity_result:
            results.append(capacity_result)

        return results

    def check_capacity(self, hours: float, context: ValidationContext) -> Optional[ValidationResult]:
        """Projected overallocation for the resource/week, if any."""
        capacity = context.effective_capacity
        projected = round(context.other_hours() + hours, 2)
        if projected <= capacity:
            return None

        excess = round(projected - capacity, 2)
        severity = (
            ValidationSeverity.ERROR
            if excess > capacity * self.error_tolerance
            else ValidationSeverity.WARNING
        )
        who = f" for {context.resource_name}" if context.resource_name else ""
        return ValidationResult(
            kind=ValidationKind.CAPACITY,
            severity=severity,
            message=(
                f"Exceeds weekly capacity{who} by {excess:.1f}h "
                f"({projected:.1f}h / {capacity:.1f}h)"
            ),
            value=hours,
            excess=excess,
        )

    def ensure_accepted(
        self,
        raw_input: RawInput,
        context: ValidationContext,
    ) -> Tuple[float, List[ValidationResult]]:
        """
        Validate and return the parsed hours with the non-blocking results.

        Raises:
            FormatError: If the input is not a number
            RangeError: If the hours are out of range
        """
        results = self.validate(raw_input, context)
        for result in results:
            if result.kind == ValidationKind.FORMAT:
                raise FormatError(result.message, results)
            if result.kind == ValidationKind.RANGE:
                raise RangeError(result.message, results)
        return parse_hours(raw_input), results

    def validate_batch(
        self,
        edits: Iterable[Tuple[RawInput, ValidationContext]],
    ) -> List[List[ValidationResult]]:
        return [self.validate(raw, context) for raw, context in edits]
