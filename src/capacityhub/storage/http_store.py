from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from capacityhub.domain.models import Allocation, Project, Resource
from capacityhub.errors import (
    PersistenceError,
    StoreConflictError,
    StoreNotFoundError,
    StoreValidationError,
)
from capacityhub.platform.config import settings
from capacityhub.storage.base import AllocationStore

logger = structlog.get_logger()


class HttpAllocationStore(AllocationStore):
    """AllocationStore backed by the dashboard REST API, using httpx for async."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = base_url or settings.STORE_API_URL
        self._api_token = api_token if api_token is not None else settings.STORE_API_TOKEN
        self._timeout = timeout or settings.STORE_TIMEOUT_SECONDS
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None
        # allocation id -> (project id, resource id), filled from every fetch
        self._owners: Dict[int, Tuple[int, int]] = {}

    async def connect(self) -> None:
        if not self.client:
            headers = {"Accept": "application/json"}
            if self._api_token:
                headers["Authorization"] = f"Bearer {self._api_token}"
            self.client = httpx.AsyncClient(
                base_url=self._url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _ensure_connected(self):
        if not self.client:
            await self.connect()

    async def health_check(self) -> bool:
        await self._ensure_connected()
        try:
            resp = await self.client.get("/api/health")
            return resp.status_code == 200
        except httpx.HTTPError as e:
            logger.error("store_health_check_failed", error=str(e))
            return False

    async def get_allocations(
        self,
        resource_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> List[Allocation]:
        params: Dict[str, Any] = {}
        if resource_id is not None:
            params["resourceId"] = resource_id
        if project_id is not None:
            params["projectId"] = project_id

        data = await self._request("GET", "/api/allocations", params=params)
        allocations = [Allocation.model_validate(item) for item in data]
        for allocation in allocations:
            self._remember(allocation)
        return allocations

    async def upsert_allocation_week(
        self,
        allocation_id: int,
        week_key: str,
        hours: float,
    ) -> Allocation:
        # Cells are written through the project route, keyed by (project, resource)
        project_id, resource_id = await self._owner_of(allocation_id)
        data = await self._request(
            "PUT",
            f"/api/projects/{project_id}/weekly-allocations",
            json={"resourceId": resource_id, "weekKey": week_key, "hours": hours},
            allocation_id=allocation_id,
        )
        allocation = Allocation.model_validate(data)
        self._remember(allocation)
        logger.debug(
            "allocation_week_stored",
            allocation_id=allocation_id,
            project_id=project_id,
            resource_id=resource_id,
            week_key=week_key,
        )
        return allocation

    async def list_resources(self) -> List[Resource]:
        data = await self._request("GET", "/api/resources")
        return [Resource.model_validate(item) for item in data]

    async def list_projects(self) -> List[Project]:
        data = await self._request("GET", "/api/projects")
        return [Project.model_validate(item) for item in data]

    def _remember(self, allocation: Allocation) -> None:
        self._owners[allocation.id] = (allocation.project_id, allocation.resource_id)

    async def _owner_of(self, allocation_id: int) -> Tuple[int, int]:
        if allocation_id not in self._owners:
            await self.get_allocations()
        try:
            return self._owners[allocation_id]
        except KeyError:
            raise StoreNotFoundError("Allocation", allocation_id)

    async def _request(
        self,
        method: str,
        path: str,
        allocation_id: Optional[int] = None,
        **kwargs: Any,
    ) -> Any:
        await self._ensure_connected()
        try:
            resp = await self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning("store_request_failed", method=method, path=path, error=str(e))
            raise PersistenceError(f"{method} {path} failed: {e}", retryable=True, cause=e)

        self._raise_for_status(resp, allocation_id)
        return resp.json()

    @staticmethod
    def _raise_for_status(resp: httpx.Response, allocation_id: Optional[int]) -> None:
        if resp.is_success:
            return

        status = resp.status_code
        message = _error_message(resp)
        if status == 404:
            raise StoreNotFoundError("Allocation", allocation_id)
        if status == 409:
            raise StoreConflictError(message)
        if status in (400, 422):
            raise StoreValidationError(message)
        raise PersistenceError(
            message,
            retryable=status >= 500 or status == 429,
            payload={"status_code": status},
        )


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Store responded with HTTP {resp.status_code}"
