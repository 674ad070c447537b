from .base import AllocationStore
from .http_store import HttpAllocationStore
from .memory_store import InMemoryAllocationStore

__all__ = ["AllocationStore", "HttpAllocationStore", "InMemoryAllocationStore"]
