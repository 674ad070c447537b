"""
Conflict Detector

Detects weeks in which a resource's active allocations exceed its effective
capacity and proposes ways to resolve each of them.

Severity (overallocation as a share of effective capacity):
- critical  > 50%
- high      > 25%
- medium    > 10%
- low       otherwise

Suggestions per conflicting week, in order:
1. Proportional reduction of every contributing allocation (always present)
2. Reduction of low-priority project allocations (when there are any)
3. Redistribution of the excess to the adjacent weeks

Usage:
    detector = ConflictDetector(projects=projects)

    analysis = detector.detect(
        resource_id=7,
        allocations=allocations,
        weekly_capacity=40,
        week_keys=["2025-03-03", "2025-03-10"],
    )
    if analysis.has_conflicts:
        print(analysis.severity, analysis.conflicts[0].suggestions[0].description)
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Union

from capacityhub.domain.models import Allocation, Project
from capacityhub.engine.capacity_model import DEFAULT_NON_PROJECT_HOURS, effective_capacity
from capacityhub.engine.week_grid import shift_week, week_contributions, week_key, weekly_total

logger = logging.getLogger(__name__)


class ConflictSeverity(str, Enum):
    """Severity levels for conflicts."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    ConflictSeverity.LOW: 1,
    ConflictSeverity.MEDIUM: 2,
    ConflictSeverity.HIGH: 3,
    ConflictSeverity.CRITICAL: 4,
}


class SuggestionType(str, Enum):
    """Kinds of resolution suggestions."""
    PROPORTIONAL_REDUCTION = "proportional_reduction"
    PRIORITY_REDUCTION = "priority_reduction"
    WEEK_REDISTRIBUTION = "week_redistribution"


@dataclass
class ContributingAllocation:
    """An allocation's share of a conflicting week."""
    allocation_id: int
    project_id: int
    hours: float
    project_name: Optional[str] = None
    is_low_priority: bool = False


@dataclass
class AllocationAdjustment:
    """Suggested new hours for one allocation in the conflicting week."""
    allocation_id: int
    project_id: int
    current_hours: float
    suggested_hours: float
    project_name: Optional[str] = None

    @property
    def reduction(self) -> float:
        return round(self.current_hours - self.suggested_hours, 1)


@dataclass
class WeekTransfer:
    """Hours to move into an adjacent week."""
    week_key: str
    hours: float
    projected_total: float
    capacity: float

    @property
    def creates_conflict(self) -> bool:
        return self.projected_total > self.capacity


@dataclass
class ResolutionSuggestion:
    """A proposed resolution for one conflicting week."""
    suggestion_type: SuggestionType
    week_key: str
    description: str
    adjustments: List[AllocationAdjustment] = field(default_factory=list)
    transfers: List[WeekTransfer] = field(default_factory=list)
    # False when the transfers were not checked against adjacent-week headroom
    headroom_checked: bool = True

    @property
    def hours_saved(self) -> float:
        if self.transfers:
            return round(sum(t.hours for t in self.transfers), 1)
        return round(sum(a.reduction for a in self.adjustments), 1)


@dataclass
class WeekConflict:
    """Overallocation of a resource in one week."""
    week_key: str
    total_hours: float
    capacity: float
    overallocation: float
    severity: ConflictSeverity
    contributions: List[ContributingAllocation]
    suggestions: List[ResolutionSuggestion] = field(default_factory=list)

    @property
    def overallocation_percentage(self) -> float:
        if self.capacity <= 0:
            return float("inf")
        return round(self.overallocation / self.capacity * 100, 1)


@dataclass
class ConflictAnalysis:
    """Conflicts of one resource over a set of weeks."""
    resource_id: int
    capacity: float
    week_keys: List[str]
    conflicts: List[WeekConflict] = field(default_factory=list)
    resource_name: Optional[str] = None
    detected_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def severity(self) -> Optional[ConflictSeverity]:
        """Worst severity over all weeks, None when there is no conflict."""
        if not self.conflicts:
            return None
        return max((c.severity for c in self.conflicts), key=lambda s: s.rank)

    @property
    def total_overallocation(self) -> float:
        return round(sum(c.overallocation for c in self.conflicts), 2)

    def conflict_for(self, key: str) -> Optional[WeekConflict]:
        key = week_key(key)
        for conflict in self.conflicts:
            if conflict.week_key == key:
                return conflict
        return None


@dataclass
class ConflictSummary:
    """Summary of conflict detection over several resources."""
    total_conflicts: int
    affected_resources: List[int]
    by_severity: Dict[str, int]
    critical_issues: List[ConflictAnalysis]
    detected_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ConflictDetector:
    """
    Detects per-resource, per-week overallocation across all projects.

    Args:
        projects: Projects by id (or any iterable of projects); used for
            priority-based suggestions and project names
        validate_redistribution_headroom: Cap week redistribution by the
            adjacent weeks' free capacity instead of only annotating it
    """

    # Thresholds (overallocation as percent of effective capacity)
    CRITICAL_THRESHOLD = 50.0
    HIGH_THRESHOLD = 25.0
    MEDIUM_THRESHOLD = 10.0

    def __init__(
        self,
        projects: Optional[Union[Mapping[int, Project], Iterable[Project]]] = None,
        validate_redistribution_headroom: bool = False,
    ):
        if projects is None:
            self.projects: Dict[int, Project] = {}
        elif isinstance(projects, Mapping):
            self.projects = dict(projects)
        else:
            self.projects = {p.id: p for p in projects}
        self.validate_redistribution_headroom = validate_redistribution_headroom
        self.logger = logging.getLogger(self.__class__.__name__)

    def detect(
        self,
        resource_id: int,
        allocations: Iterable[Allocation],
        weekly_capacity: float,
        week_keys: Iterable[str],
        non_project_hours: float = DEFAULT_NON_PROJECT_HOURS,
        resource_name: Optional[str] = None,
    ) -> ConflictAnalysis:
        """
        Detect overallocated weeks of a resource.

        Args:
            resource_id: Resource to analyse
            allocations: Allocations of the resource (others are ignored)
            weekly_capacity: Contracted hours per week
            week_keys: Weeks to check

        Returns:
            ConflictAnalysis; its conflict list is empty when every week fits
        """
        allocations = [a for a in allocations if a.resource_id == resource_id]
        capacity = effective_capacity(weekly_capacity, non_project_hours)
        keys = [week_key(k) for k in week_keys]

        analysis = ConflictAnalysis(
            resource_id=resource_id,
            capacity=capacity,
            week_keys=keys,
            resource_name=resource_name,
        )

        for key in keys:
            total = weekly_total(allocations, resource_id, key)
            if total <= capacity:
                continue

            overallocation = round(total - capacity, 2)
            contributions = [
                self._contribution(allocation, hours)
                for allocation, hours in week_contributions(allocations, resource_id, key)
            ]
            conflict = WeekConflict(
                week_key=key,
                total_hours=total,
                capacity=capacity,
                overallocation=overallocation,
                severity=self.classify_severity(overallocation, capacity),
                contributions=contributions,
            )
            conflict.suggestions = self.suggest_resolutions(conflict, allocations, resource_id)
            analysis.conflicts.append(conflict)

        if analysis.conflicts:
            self.logger.info(
                f"Resource {resource_id} overallocated in {len(analysis.conflicts)} "
                f"of {len(keys)} weeks (worst: {analysis.severity.value})"
            )
        return analysis

    def classify_severity(self, overallocation: float, capacity: float) -> ConflictSeverity:
        if capacity <= 0:
            return ConflictSeverity.CRITICAL

        percentage = overallocation / capacity * 100
        if percentage > self.CRITICAL_THRESHOLD:
            return ConflictSeverity.CRITICAL
        if percentage > self.HIGH_THRESHOLD:
            return ConflictSeverity.HIGH
        if percentage > self.MEDIUM_THRESHOLD:
            return ConflictSeverity.MEDIUM
        return ConflictSeverity.LOW

    def suggest_resolutions(
        self,
        conflict: WeekConflict,
        allocations: List[Allocation],
        resource_id: int,
    ) -> List[ResolutionSuggestion]:
        """Ranked suggestions for one conflicting week; proportional first."""
        suggestions = [self._proportional_reduction(conflict)]

        priority = self._priority_reduction(conflict)
        if priority:
            suggestions.append(priority)

        redistribution = self._week_redistribution(conflict, allocations, resource_id)
        if redistribution:
            suggestions.append(redistribution)

        return suggestions

    def summarize(self, analyses: Iterable[ConflictAnalysis]) -> ConflictSummary:
        """Roll up the analyses of several resources."""
        by_severity: Dict[str, int] = defaultdict(int)
        affected = []
        critical = []
        total = 0

        for analysis in analyses:
            if not analysis.has_conflicts:
                continue
            affected.append(analysis.resource_id)
            total += len(analysis.conflicts)
            for conflict in analysis.conflicts:
                by_severity[conflict.severity.value] += 1
            if analysis.severity == ConflictSeverity.CRITICAL:
                critical.append(analysis)

        self.logger.info(
            f"Conflict detection complete: {total} conflicts across "
            f"{len(affected)} resources, {len(critical)} critical"
        )
        return ConflictSummary(
            total_conflicts=total,
            affected_resources=affected,
            by_severity=dict(by_severity),
            critical_issues=critical,
        )

    # -------------------------------------------------------------------------
    # Suggestions
    # -------------------------------------------------------------------------

    def _proportional_reduction(self, conflict: WeekConflict) -> ResolutionSuggestion:
        factor = conflict.capacity / conflict.total_hours if conflict.total_hours else 0.0
        adjustments = [
            AllocationAdjustment(
                allocation_id=c.allocation_id,
                project_id=c.project_id,
                project_name=c.project_name,
                current_hours=c.hours,
                suggested_hours=round(c.hours * factor, 1),
            )
            for c in conflict.contributions
        ]
        return ResolutionSuggestion(
            suggestion_type=SuggestionType.PROPORTIONAL_REDUCTION,
            week_key=conflict.week_key,
            description=(
                f"Scale all {len(adjustments)} allocations to {factor:.0%} "
                f"to fit {conflict.capacity:.1f}h"
            ),
            adjustments=adjustments,
        )

    def _priority_reduction(self, conflict: WeekConflict) -> Optional[ResolutionSuggestion]:
        low_priority = sorted(
            (c for c in conflict.contributions if c.is_low_priority),
            key=lambda c: c.hours,
            reverse=True,
        )
        if not low_priority:
            return None

        # Largest low-priority allocations absorb the overage until it is covered
        remaining = conflict.overallocation
        adjustments: List[AllocationAdjustment] = []
        for c in low_priority:
            cut = min(c.hours, remaining)
            if cut <= 0:
                continue
            adjustments.append(
                AllocationAdjustment(
                    allocation_id=c.allocation_id,
                    project_id=c.project_id,
                    project_name=c.project_name,
                    current_hours=c.hours,
                    suggested_hours=round(c.hours - cut, 1),
                )
            )
            remaining -= cut
            if remaining <= 0:
                break
        if not adjustments:
            return None

        return ResolutionSuggestion(
            suggestion_type=SuggestionType.PRIORITY_REDUCTION,
            week_key=conflict.week_key,
            description=(
                f"Reduce hours on {len(adjustments)} low-priority "
                f"project{'s' if len(adjustments) != 1 else ''} first"
            ),
            adjustments=adjustments,
        )

    def _week_redistribution(
        self,
        conflict: WeekConflict,
        allocations: List[Allocation],
        resource_id: int,
    ) -> Optional[ResolutionSuggestion]:
        share = round(conflict.overallocation / 2, 1)
        if share <= 0:
            return None

        transfers = []
        for target in (shift_week(conflict.week_key, -1), shift_week(conflict.week_key, 1)):
            existing = weekly_total(allocations, resource_id, target)
            hours = share
            if self.validate_redistribution_headroom:
                hours = round(min(share, max(0.0, conflict.capacity - existing)), 1)
                if hours <= 0:
                    continue
            transfers.append(WeekTransfer(
                week_key=target,
                hours=hours,
                projected_total=round(existing + hours, 2),
                capacity=conflict.capacity,
            ))

        if not transfers:
            return None

        moves = " and ".join(f"{t.hours:.1f}h to week of {t.week_key}" for t in transfers)
        return ResolutionSuggestion(
            suggestion_type=SuggestionType.WEEK_REDISTRIBUTION,
            week_key=conflict.week_key,
            description=f"Move {moves}",
            transfers=transfers,
            headroom_checked=self.validate_redistribution_headroom,
        )

    def _contribution(self, allocation: Allocation, hours: float) -> ContributingAllocation:
        project = self.projects.get(allocation.project_id)
        return ContributingAllocation(
            allocation_id=allocation.id,
            project_id=allocation.project_id,
            hours=hours,
            project_name=project.name if project else None,
            is_low_priority=project.is_low_priority if project else False,
        )
