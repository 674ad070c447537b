from abc import ABC, abstractmethod
from typing import List, Optional

from capacityhub.domain.models import Allocation, Project, Resource


class AllocationStore(ABC):
    """
    Abstract interface for the record store holding resources, projects and
    allocations. The engine only reads through it and writes single week
    cells.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the store."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        pass

    @abstractmethod
    async def get_allocations(
        self,
        resource_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> List[Allocation]:
        """
        List allocations, optionally filtered by resource and/or project.
        """
        pass

    @abstractmethod
    async def upsert_allocation_week(
        self,
        allocation_id: int,
        week_key: str,
        hours: float,
    ) -> Allocation:
        """
        Set the hours of one week cell and return the stored allocation.

        Raises:
            StoreNotFoundError: The allocation id is unknown
            StoreConflictError: The allocation was deleted concurrently
            PersistenceError: Any other store or network failure
        """
        pass

    @abstractmethod
    async def list_resources(self) -> List[Resource]:
        pass

    @abstractmethod
    async def list_projects(self) -> List[Project]:
        pass
