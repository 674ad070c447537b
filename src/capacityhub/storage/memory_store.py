from typing import Dict, Iterable, List, Optional, Set

import structlog
from pydantic import ValidationError

from capacityhub.domain.models import Allocation, Project, Resource
from capacityhub.errors import StoreConflictError, StoreNotFoundError, StoreValidationError
from capacityhub.storage.base import AllocationStore

logger = structlog.get_logger()


class InMemoryAllocationStore(AllocationStore):
    """Dict-backed AllocationStore for development and tests."""

    def __init__(
        self,
        resources: Iterable[Resource] = (),
        projects: Iterable[Project] = (),
        allocations: Iterable[Allocation] = (),
    ):
        self._resources: Dict[int, Resource] = {r.id: r for r in resources}
        self._projects: Dict[int, Project] = {p.id: p for p in projects}
        self._allocations: Dict[int, Allocation] = {a.id: a for a in allocations}
        # Ids of allocations removed while clients may still hold them
        self._deleted: Set[int] = set()
        self.upsert_calls = 0

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True

    async def get_allocations(
        self,
        resource_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> List[Allocation]:
        return [
            allocation
            for allocation in sorted(self._allocations.values(), key=lambda a: a.id)
            if (resource_id is None or allocation.resource_id == resource_id)
            and (project_id is None or allocation.project_id == project_id)
        ]

    async def upsert_allocation_week(
        self,
        allocation_id: int,
        week_key: str,
        hours: float,
    ) -> Allocation:
        self.upsert_calls += 1

        if allocation_id in self._deleted:
            raise StoreConflictError(f"Allocation {allocation_id} was deleted")
        allocation = self._allocations.get(allocation_id)
        if allocation is None:
            raise StoreNotFoundError("Allocation", allocation_id)

        try:
            updated = allocation.with_week(week_key, hours)
        except (ValidationError, ValueError) as e:
            raise StoreValidationError(str(e))

        self._allocations[allocation_id] = updated
        logger.debug(
            "allocation_week_stored",
            allocation_id=allocation_id,
            week_key=week_key,
            hours=hours,
        )
        return updated

    async def list_resources(self) -> List[Resource]:
        return sorted(self._resources.values(), key=lambda r: r.id)

    async def list_projects(self) -> List[Project]:
        return sorted(self._projects.values(), key=lambda p: p.id)

    def put_allocation(self, allocation: Allocation) -> None:
        self._deleted.discard(allocation.id)
        self._allocations[allocation.id] = allocation

    def delete_allocation(self, allocation_id: int) -> bool:
        if self._allocations.pop(allocation_id, None) is None:
            return False
        self._deleted.add(allocation_id)
        return True

    def get_allocation(self, allocation_id: int) -> Optional[Allocation]:
        return self._allocations.get(allocation_id)
