"""CapacityHub sync - optimistic local edits persisted in the background."""

from .cells import CellKey, CellStatus, EditState, PersistAction
from .manager import OptimisticSyncManager
from .retry import RetryExecutor

__all__ = [
    "CellKey",
    "CellStatus",
    "EditState",
    "PersistAction",
    "OptimisticSyncManager",
    "RetryExecutor",
]
