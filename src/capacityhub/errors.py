"""
Exception classes for the CapacityHub engine.

Edit validation errors never reach the sync layer; persistence errors are
retried by the sync layer when marked retryable and rolled back otherwise.
"""

from typing import Any, Dict, List, Optional


class CapacityHubError(Exception):
    """Base exception class for CapacityHub"""

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}


class EditValidationError(CapacityHubError):
    """Raised when a cell edit is rejected before it is applied"""

    def __init__(self, message: str, results: Optional[List[Any]] = None):
        super().__init__(message)
        self.results = results or []


class FormatError(EditValidationError):
    """Raised when the raw input is not a number"""


class RangeError(EditValidationError):
    """Raised when the hours are negative or exceed the weekly maximum"""


class PersistenceError(CapacityHubError):
    """Raised when the allocation store fails to persist or fetch data"""

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        cause: Optional[BaseException] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, payload)
        self.retryable = retryable
        self.cause = cause


class PersistTimeoutError(PersistenceError):
    """Raised when a persist call does not complete within its timeout"""

    def __init__(self, timeout: float):
        super().__init__(f"Persist timed out after {timeout:.1f}s", retryable=True)
        self.timeout = timeout


class StoreNotFoundError(PersistenceError):
    """Raised when the store does not know the allocation"""

    def __init__(self, resource_type: str, resource_id: Any = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message += f" with id {resource_id}"
        super().__init__(message, retryable=False)


class StoreConflictError(PersistenceError):
    """Raised when the record was deleted concurrently"""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class StoreValidationError(PersistenceError):
    """Raised when the store rejects the payload itself"""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class StaleWriteError(CapacityHubError):
    """Raised internally when a persist outcome belongs to a superseded edit"""

    def __init__(self, allocation_id: int, week_key: str, seq: int, latest_seq: int):
        super().__init__(
            f"Edit {seq} for allocation {allocation_id} week {week_key} "
            f"superseded by edit {latest_seq}"
        )
        self.allocation_id = allocation_id
        self.week_key = week_key
        self.seq = seq
        self.latest_seq = latest_seq
