"""
Unit tests for the Derived State Projector.
"""

import pytest

from capacityhub.domain.models import Allocation
from capacityhub.engine.conflict_detector import ConflictSeverity
from capacityhub.engine.projector import DerivedStateProjector
from capacityhub.events import (
    AllocationsReconciledEvent,
    EditAppliedEvent,
    EditConfirmedEvent,
    InMemoryEventBus,
)


class TestDerivedStateProjector:
    """Test recomputation driven by bus events."""

    @pytest.mark.asyncio
    async def test_initial_views(self, resource, overallocated):
        state = {a.id: a for a in overallocated}
        bus = InMemoryEventBus()
        projector = DerivedStateProjector(bus, lambda: state, [resource], ["2025-03-03", "2025-03-10"])

        await projector.start()

        view = projector.view(1)
        assert view.utilization.allocated_hours == 60
        assert view.utilization.utilization == 93.8
        assert view.overallocated_weeks == ["2025-03-03"]
        assert view.conflicts.severity == ConflictSeverity.HIGH

    @pytest.mark.asyncio
    async def test_event_triggers_recompute(self, resource, overallocated):
        state = {a.id: a for a in overallocated}
        bus = InMemoryEventBus()
        projector = DerivedStateProjector(bus, lambda: state, [resource], ["2025-03-03"])
        await projector.start()

        state[200] = state[200].with_week("2025-03-03", 5)
        await bus.publish(EditAppliedEvent(allocation_id=200, resource_id=1, week_key="2025-03-03", seq=1, hours=5))

        view = projector.view(1)
        assert not view.conflicts.has_conflicts
        assert view.weeks["2025-03-03"].allocated_hours == 30
        assert view.last_event == "applied"
        assert projector.stats.by_event == {"applied": 1}

    @pytest.mark.asyncio
    async def test_reconciled_without_resource_recomputes_all(self, resource, overallocated):
        state = {a.id: a for a in overallocated}
        bus = InMemoryEventBus()
        projector = DerivedStateProjector(bus, lambda: state, [resource], ["2025-03-03"])
        await projector.start()
        before = projector.stats.recomputations

        state[300] = Allocation(id=300, project_id=10, resource_id=1, weekly_allocations={"2025-03-03": 1})
        await bus.publish(AllocationsReconciledEvent())

        assert projector.stats.recomputations == before + 1
        assert projector.view(1).weeks["2025-03-03"].allocated_hours == 46

    @pytest.mark.asyncio
    async def test_unknown_resource_and_stop(self, resource, overallocated):
        state = {a.id: a for a in overallocated}
        bus = InMemoryEventBus()
        projector = DerivedStateProjector(bus, lambda: state, [resource], ["2025-03-03"])
        await projector.start()

        assert projector.recompute(99) is None

        await projector.stop()
        await bus.publish(EditConfirmedEvent(allocation_id=100, resource_id=1, week_key="2025-03-03", seq=1))
        assert projector.stats.events_handled == 0

    def test_set_weeks(self, resource, overallocated):
        state = {a.id: a for a in overallocated}
        projector = DerivedStateProjector(InMemoryEventBus(), lambda: state, [resource], ["2025-03-03"])

        projector.set_weeks(["2025-W11"])

        assert list(projector.view(1).weeks) == ["2025-03-10"]
        assert not projector.view(1).conflicts.has_conflicts
