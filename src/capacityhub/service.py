"""
Capacity Service - entry point for the allocation grid.

Ties validation, optimistic sync and the capacity/conflict engines
together: an edit is validated against the local state, applied
immediately and persisted in the background.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from capacityhub.domain.models import Allocation, Project, Resource
from capacityhub.engine.capacity_model import (
    UtilizationStatus,
    resource_utilization,
)
from capacityhub.engine.conflict_detector import (
    ConflictAnalysis,
    ConflictDetector,
    ConflictSummary,
)
from capacityhub.engine.validator import (
    AllocationValidator,
    RawInput,
    ValidationContext,
    ValidationResult,
)
from capacityhub.engine.week_grid import WeekLike, week_key, weekly_totals
from capacityhub.errors import EditValidationError
from capacityhub.events import EventBus, InMemoryEventBus
from capacityhub.platform.config import settings
from capacityhub.platform.logging import configure_logging, get_logger
from capacityhub.storage.base import AllocationStore
from capacityhub.sync.manager import OptimisticSyncManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class UtilizationResult:
    """Allocated hours and utilization of a resource over a set of weeks."""
    hours: float
    percent: float
    status: UtilizationStatus = UtilizationStatus.UNASSIGNED


class CapacityService:
    """
    Facade over the capacity engine and the sync manager.

    Args:
        store: Allocation store
        event_bus: Bus for edit lifecycle events; an in-process bus by default
        validator: Cell edit validator
        detector: Conflict detector
        sync: Sync manager; built from ``store`` and ``event_bus`` by default
    """

    def __init__(
        self,
        store: AllocationStore,
        event_bus: Optional[EventBus] = None,
        validator: Optional[AllocationValidator] = None,
        detector: Optional[ConflictDetector] = None,
        sync: Optional[OptimisticSyncManager] = None,
    ):
        configure_logging()
        self.store = store
        self.event_bus = event_bus or InMemoryEventBus()
        self.validator = validator or AllocationValidator(
            max_hours=settings.MAX_WEEKLY_HOURS,
            error_tolerance=settings.CAPACITY_ERROR_TOLERANCE,
        )
        self.detector = detector or ConflictDetector()
        self.sync = sync or OptimisticSyncManager(store, self.event_bus)
        self.resources: Dict[int, Resource] = {}
        self.projects: Dict[int, Project] = {}

    async def load(self, resource_id: Optional[int] = None) -> None:
        """Seed resources, projects and allocations from the store."""
        await self.store.connect()
        retry = self.sync.retry

        resources = await retry.execute(self.store.list_resources, operation="list_resources")
        projects = await retry.execute(self.store.list_projects, operation="list_projects")
        allocations = await retry.execute(
            self.store.get_allocations, resource_id, operation="get_allocations"
        )

        self.resources = {r.id: r for r in resources}
        self.projects = {p.id: p for p in projects}
        self.detector.projects = dict(self.projects)
        self.sync.load(allocations)

        logger.info(
            "capacity_state_loaded",
            resources=len(self.resources),
            projects=len(self.projects),
            allocations=len(allocations),
        )

    async def close(self) -> None:
        await self.sync.close()
        await self.store.close()

    # ------------------------------------------------------------------
    # Capacity and conflicts
    # ------------------------------------------------------------------

    def compute_utilization(
        self,
        resource: Resource,
        allocations: Iterable[Allocation],
        week_keys: Iterable[WeekLike],
    ) -> UtilizationResult:
        keys = [week_key(k) for k in week_keys]
        totals = weekly_totals(allocations, resource.id, keys)
        hours = round(sum(totals.values()), 2)
        summary = resource_utilization(resource, hours, weeks=len(keys))
        return UtilizationResult(hours=hours, percent=summary.utilization, status=summary.status)

    def detect_conflicts(
        self,
        resource_id: int,
        allocations: Iterable[Allocation],
        weekly_capacity: float,
        week_keys: Iterable[WeekLike],
        non_project_hours: Optional[float] = None,
    ) -> ConflictAnalysis:
        resource = self.resources.get(resource_id)
        if non_project_hours is None:
            non_project_hours = (
                resource.non_project_hours if resource else settings.DEFAULT_NON_PROJECT_HOURS
            )
        return self.detector.detect(
            resource_id=resource_id,
            allocations=allocations,
            weekly_capacity=weekly_capacity,
            week_keys=[week_key(k) for k in week_keys],
            non_project_hours=non_project_hours,
            resource_name=resource.name if resource else None,
        )

    def detect_all_conflicts(self, week_keys: Iterable[WeekLike]) -> ConflictSummary:
        """Conflicts of every active resource against the local allocations."""
        keys = [week_key(k) for k in week_keys]
        allocations = list(self.sync.snapshot().values())
        analyses = [
            self.detect_conflicts(
                resource.id,
                allocations,
                resource.weekly_capacity,
                keys,
                non_project_hours=resource.non_project_hours,
            )
            for resource in self.resources.values()
            if resource.is_active
        ]
        return self.detector.summarize(analyses)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def validation_context(self, allocation_id: int, week: WeekLike) -> ValidationContext:
        """
        Build the validation context of a cell from the local state.

        Raises:
            ValueError: If the allocation is not loaded
        """
        allocation = self.sync.get_allocation(allocation_id)
        if allocation is None:
            raise ValueError(f"Allocation {allocation_id} is not loaded")

        resource = self.resources.get(allocation.resource_id)
        return ValidationContext(
            allocation_id=allocation_id,
            resource_id=allocation.resource_id,
            week_key=week_key(week),
            allocations=self.sync.allocations_for(allocation.resource_id),
            weekly_capacity=resource.weekly_capacity if resource else settings.DEFAULT_WEEKLY_CAPACITY,
            non_project_hours=(
                resource.non_project_hours if resource else settings.DEFAULT_NON_PROJECT_HOURS
            ),
            resource_name=resource.name if resource else None,
        )

    def validate_edit(self, raw_input: RawInput, context: ValidationContext) -> List[ValidationResult]:
        return self.validator.validate(raw_input, context)

    async def submit_edit(
        self,
        allocation_id: int,
        week: WeekLike,
        raw_input: RawInput,
    ) -> List[ValidationResult]:
        """
        Validate an edit and apply it optimistically.

        Returns:
            Non-blocking diagnostics (capacity warnings and errors)

        Raises:
            FormatError: If the input is not a number
            RangeError: If the hours are out of range
            ValueError: If the allocation is not loaded
        """
        context = self.validation_context(allocation_id, week)
        try:
            hours, results = self.validator.ensure_accepted(raw_input, context)
        except EditValidationError as e:
            logger.info(
                "edit_rejected",
                allocation_id=allocation_id,
                week_key=context.week_key,
                reason=e.message,
            )
            raise

        await self.sync.apply_edit(allocation_id, context.week_key, hours)
        if results:
            logger.info(
                "edit_accepted_with_warnings",
                allocation_id=allocation_id,
                week_key=context.week_key,
                warnings=[r.message for r in results],
            )
        return results
