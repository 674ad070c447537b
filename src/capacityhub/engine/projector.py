"""
Derived State Projector - keeps utilization and conflicts current.

Subscribes to the allocation edit lifecycle events and recomputes the
affected resource from a consistent snapshot of the local allocations,
so callers never invalidate derived values by hand.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from capacityhub.domain.models import Allocation, Resource
from capacityhub.engine.capacity_model import (
    UtilizationSummary,
    WeekCapacity,
    resource_utilization,
    week_capacity,
)
from capacityhub.engine.conflict_detector import ConflictAnalysis, ConflictDetector
from capacityhub.engine.week_grid import week_key, weekly_totals
from capacityhub.events import Event, EventBus

logger = logging.getLogger(__name__)

SnapshotSource = Callable[[], Mapping[int, Allocation]]


@dataclass
class ResourceView:
    """Everything the grid derives for one resource over the visible weeks."""
    resource_id: int
    utilization: UtilizationSummary
    weeks: Dict[str, WeekCapacity]
    conflicts: ConflictAnalysis
    last_event: Optional[str] = None

    @property
    def overallocated_weeks(self) -> List[str]:
        return [key for key, week in self.weeks.items() if week.is_overallocated]


@dataclass
class ProjectionStats:
    events_handled: int = 0
    recomputations: int = 0
    failures: int = 0
    by_event: Dict[str, int] = field(default_factory=dict)


class DerivedStateProjector:
    """
    Recomputes per-resource views whenever an allocation event arrives.

    Args:
        event_bus: Bus carrying the edit lifecycle events
        snapshot: Callable returning the current local allocations by id,
            usually ``OptimisticSyncManager.snapshot``
        resources: Resources to project
        week_keys: Weeks currently shown
        detector: Conflict detector to use
    """

    CHANNEL = "capacityhub.allocation.>"

    def __init__(
        self,
        event_bus: EventBus,
        snapshot: SnapshotSource,
        resources: Iterable[Resource],
        week_keys: Iterable[str],
        detector: Optional[ConflictDetector] = None,
    ):
        self.event_bus = event_bus
        self._snapshot = snapshot
        self.resources: Dict[int, Resource] = {r.id: r for r in resources}
        self.week_keys: List[str] = [week_key(k) for k in week_keys]
        self.detector = detector or ConflictDetector()
        self.views: Dict[int, ResourceView] = {}
        self.stats = ProjectionStats()
        self._running = False

    async def start(self) -> None:
        """Subscribe to allocation events and build the initial views."""
        self._running = True
        await self.event_bus.subscribe(self.CHANNEL, self._handle_event)
        self.recompute_all()
        logger.info(f"Derived state projector started for {len(self.resources)} resources")

    async def stop(self) -> None:
        self._running = False
        await self.event_bus.unsubscribe(self.CHANNEL)
        logger.info("Derived state projector stopped")

    def set_weeks(self, week_keys: Iterable[str]) -> None:
        """Change the visible weeks and recompute every view."""
        self.week_keys = [week_key(k) for k in week_keys]
        self.recompute_all()

    def view(self, resource_id: int) -> Optional[ResourceView]:
        return self.views.get(resource_id)

    def recompute_all(self) -> Dict[int, ResourceView]:
        allocations = list(self._snapshot().values())
        for resource_id in self.resources:
            self._project(resource_id, allocations)
        return self.views

    def recompute(self, resource_id: int, reason: Optional[str] = None) -> Optional[ResourceView]:
        """Recompute one resource; None if the resource is not projected."""
        if resource_id not in self.resources:
            return None
        return self._project(resource_id, list(self._snapshot().values()), reason)

    def _project(
        self,
        resource_id: int,
        allocations: List[Allocation],
        reason: Optional[str] = None,
    ) -> ResourceView:
        resource = self.resources[resource_id]
        totals = weekly_totals(allocations, resource_id, self.week_keys)
        allocated = round(sum(totals.values()), 2)

        view = ResourceView(
            resource_id=resource_id,
            utilization=resource_utilization(resource, allocated, weeks=len(self.week_keys)),
            weeks={key: week_capacity(resource, hours) for key, hours in totals.items()},
            conflicts=self.detector.detect(
                resource_id=resource_id,
                allocations=allocations,
                weekly_capacity=resource.weekly_capacity,
                week_keys=self.week_keys,
                non_project_hours=resource.non_project_hours,
                resource_name=resource.name,
            ),
            last_event=reason,
        )
        self.views[resource_id] = view
        self.stats.recomputations += 1
        return view

    async def _handle_event(self, event: Event) -> None:
        if not self._running:
            return

        self.stats.events_handled += 1
        self.stats.by_event[event.name] = self.stats.by_event.get(event.name, 0) + 1
        try:
            if event.resource_id is None:
                self.recompute_all()
            else:
                self.recompute(event.resource_id, reason=event.name)
        except Exception as e:
            self.stats.failures += 1
            logger.error(
                f"Failed to project event {event.event_id}: {e}",
                exc_info=True,
            )
