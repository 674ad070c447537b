"""
Optimistic Sync Manager - applies grid edits locally and persists them in the background.

An edit is visible immediately (APPLIED), queued for the store
(PERSISTING) and settles as CONFIRMED or ROLLED_BACK. Per cell, a
sequence number orders edits: outcomes of superseded edits never touch
the newer optimistic value, and at most one write per cell is in flight.
Every state change is published on the event bus so derived views can
recompute.
"""

import asyncio
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from capacityhub.domain.models import Allocation
from capacityhub.engine.week_grid import WeekLike, week_key
from capacityhub.errors import (
    PersistenceError,
    StaleWriteError,
    StoreConflictError,
    StoreNotFoundError,
)
from capacityhub.events.bus import EventBus
from capacityhub.events.memory_bus import InMemoryEventBus
from capacityhub.events.publisher import EventPublisher
from capacityhub.platform.config import settings
from capacityhub.platform.logging import get_logger
from capacityhub.storage.base import AllocationStore
from capacityhub.sync.cells import (
    CellKey,
    CellRecord,
    CellRegistry,
    CellStatus,
    EditState,
    PersistAction,
)
from capacityhub.sync.retry import RetryExecutor

logger = get_logger(__name__)


class OptimisticSyncManager:
    """
    Owns the local allocation state while edits are outstanding.

    Args:
        store: Allocation store the edits are persisted to
        event_bus: Bus receiving edit lifecycle events
        batch_size: Maximum persist actions sent together
        retry: Executor applying timeout, classification and backoff
        reconcile_enabled: Refresh the resource from the store after a confirmation
    """

    def __init__(
        self,
        store: AllocationStore,
        event_bus: Optional[EventBus] = None,
        batch_size: Optional[int] = None,
        retry: Optional[RetryExecutor] = None,
        reconcile_enabled: Optional[bool] = None,
    ):
        self.store = store
        self.event_bus = event_bus or InMemoryEventBus()
        self.publisher = EventPublisher(self.event_bus)
        self.batch_size = max(1, batch_size or settings.SYNC_BATCH_SIZE)
        self.retry = retry or RetryExecutor()
        self.reconcile_enabled = (
            settings.SYNC_RECONCILE_ENABLED if reconcile_enabled is None else reconcile_enabled
        )

        self.cells = CellRegistry()
        self._allocations: Dict[int, Allocation] = {}
        # Bumped on every local cell change; reconciliation compares against it
        self._version = 0
        self._queue: Deque[PersistAction] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._reconcile_tasks: Dict[Optional[int], asyncio.Task] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------

    def load(self, allocations: Iterable[Allocation]) -> None:
        """Replace local state with store data, keeping cells with outstanding edits."""
        self._merge(list(allocations), self._version, None)

    def snapshot(self) -> Dict[int, Allocation]:
        """Consistent view of every local allocation."""
        return dict(self._allocations)

    def get_allocation(self, allocation_id: int) -> Optional[Allocation]:
        return self._allocations.get(allocation_id)

    def allocations_for(self, resource_id: int) -> List[Allocation]:
        return [a for a in self._allocations.values() if a.resource_id == resource_id]

    def cell_status(self, allocation_id: int, week: WeekLike) -> CellStatus:
        return self.cells.status(CellKey(allocation_id, week_key(week)))

    @property
    def pending(self) -> int:
        """Number of persist actions waiting in the queue."""
        return len(self._queue)

    @property
    def is_idle(self) -> bool:
        return not self._queue and (self._drain_task is None or self._drain_task.done())

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def apply_edit(self, allocation_id: int, week: WeekLike, hours: float) -> CellStatus:
        """
        Apply an edit locally and queue it for persistence.

        Args:
            allocation_id: Allocation owning the cell
            week: Week of the cell
            hours: Validated new hours

        Returns:
            Status of the cell after the edit was applied

        Raises:
            ValueError: If the allocation is not loaded
        """
        allocation = self._allocations.get(allocation_id)
        if allocation is None:
            raise ValueError(f"Allocation {allocation_id} is not loaded")

        key = CellKey(allocation_id, week_key(week))
        hours = float(hours)
        current = allocation.weekly_allocations.get(key.week_key)

        if not self.cells.is_outstanding(key) and (current or 0.0) == hours:
            logger.debug("edit_unchanged", allocation_id=allocation_id, week_key=key.week_key)
            return self.cells.status(key)

        updated = allocation.with_week(key.week_key, hours)
        self._version += 1
        record = self.cells.begin_edit(key, current, self._version)
        seq = record.latest_seq
        self._allocations[allocation_id] = updated

        logger.info(
            "edit_applied",
            allocation_id=allocation_id,
            week_key=key.week_key,
            seq=seq,
            hours=hours,
        )
        await self.publisher.publish_edit_applied(
            allocation_id, allocation.resource_id, key.week_key, seq, hours, current
        )

        # A handler may already have submitted a newer edit for the cell
        if record.latest_seq == seq:
            self._enqueue(PersistAction(key=key, resource_id=allocation.resource_id, seq=seq, hours=hours))
            record.state = EditState.PERSISTING
            self._ensure_draining()

        return self.cells.status(key)

    async def flush(self) -> None:
        """Wait until the queue is empty and nothing is in flight."""
        while not self.is_idle:
            if self._drain_task is None or self._drain_task.done():
                self._ensure_draining()
            await self._drain_task

    async def close(self) -> None:
        """Flush pending edits and wait for reconciliation tasks."""
        await self.flush()
        self._closed = True
        pending = [task for task in self._reconcile_tasks.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._reconcile_tasks.clear()

    # ------------------------------------------------------------------
    # Persist queue
    # ------------------------------------------------------------------

    def _enqueue(self, action: PersistAction) -> None:
        for index, queued in enumerate(self._queue):
            if queued.key != action.key:
                continue
            if queued.seq > action.seq:
                return
            self._queue[index] = action
            logger.debug(
                "persist_superseded",
                allocation_id=action.key.allocation_id,
                week_key=action.key.week_key,
                seq=queued.seq,
                latest_seq=action.seq,
            )
            return
        self._queue.append(action)

    def _ensure_draining(self) -> None:
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())
        else:
            self._wakeup.set()

    def _next_batch(self, now: float) -> List[PersistAction]:
        batch: List[PersistAction] = []
        for action in list(self._queue):
            if len(batch) >= self.batch_size:
                break
            if action.not_before <= now:
                batch.append(action)
                self._queue.remove(action)
        return batch

    async def _wait_until_due(self, now: float) -> None:
        # New edits wake the drain early; they may be due before any backed-off retry
        wait = min(action.not_before for action in self._queue) - now
        self._wakeup.clear()
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=wait)
        except asyncio.TimeoutError:
            pass

    async def _drain(self) -> None:
        # The queue holds at most one action per cell and batches run one
        # after another, so a cell never has two writes in flight.
        loop = asyncio.get_running_loop()
        while self._queue:
            now = loop.time()
            batch = self._next_batch(now)
            if not batch:
                await self._wait_until_due(now)
                continue
            for action in batch:
                action.attempts += 1

            outcomes = await asyncio.gather(
                *(
                    self.retry.attempt(
                        self.store.upsert_allocation_week,
                        action.key.allocation_id,
                        action.key.week_key,
                        action.hours,
                    )
                    for action in batch
                ),
                return_exceptions=True,
            )

            retry_later: List[PersistAction] = []
            for action, outcome in zip(batch, outcomes):
                try:
                    if isinstance(outcome, BaseException):
                        if await self._settle_failure(action, self.retry.classify(outcome)):
                            retry_later.append(action)
                    else:
                        await self._settle_success(action, outcome)
                except StaleWriteError as e:
                    logger.debug(
                        "stale_write_discarded",
                        allocation_id=e.allocation_id,
                        week_key=e.week_key,
                        seq=e.seq,
                        latest_seq=e.latest_seq,
                    )
                except Exception as e:
                    logger.error(
                        "persist_settle_failed",
                        allocation_id=action.key.allocation_id,
                        week_key=action.key.week_key,
                        seq=action.seq,
                        error=str(e),
                        exc_info=True,
                    )

            if retry_later:
                self._requeue(retry_later)

    def _requeue(self, actions: List[PersistAction]) -> None:
        now = asyncio.get_running_loop().time()
        for action in reversed(actions):
            record = self.cells.get(action.key)
            if record is None or record.latest_seq != action.seq:
                continue
            if any(queued.key == action.key for queued in self._queue):
                continue
            action.not_before = now + self.retry.delay(action.attempts)
            self._queue.appendleft(action)

    async def _settle_success(self, action: PersistAction, stored: Allocation) -> None:
        record = self._record(action)
        # The store holds this value now, whether or not it is still the latest
        record.confirmed_value = action.hours
        if record.latest_seq != action.seq:
            raise StaleWriteError(action.key.allocation_id, action.key.week_key, action.seq, record.latest_seq)

        self._version += 1
        record.state = EditState.CONFIRMED
        record.touched_version = self._version

        logger.info(
            "edit_confirmed",
            allocation_id=action.key.allocation_id,
            week_key=action.key.week_key,
            seq=action.seq,
            attempts=action.attempts,
        )
        await self.publisher.publish_edit_confirmed(
            action.key.allocation_id,
            action.resource_id,
            action.key.week_key,
            action.seq,
            action.hours,
            action.attempts,
        )
        self._schedule_reconcile(stored.resource_id if stored is not None else action.resource_id)

    async def _settle_failure(self, action: PersistAction, error: PersistenceError) -> bool:
        """Returns True when the action should be sent again."""
        record = self._record(action)
        action.last_error = error.message
        if record.latest_seq != action.seq:
            logger.debug(
                "stale_failure_dropped",
                allocation_id=action.key.allocation_id,
                week_key=action.key.week_key,
                seq=action.seq,
                latest_seq=record.latest_seq,
            )
            return False

        if self.retry.should_retry(error, action.attempts):
            logger.warning(
                "persist_retry_scheduled",
                allocation_id=action.key.allocation_id,
                week_key=action.key.week_key,
                seq=action.seq,
                attempt=action.attempts,
                error=error.message,
            )
            return True

        await self._rollback(action, record, error)
        return False

    async def _rollback(self, action: PersistAction, record: CellRecord, error: PersistenceError) -> None:
        self._version += 1
        record.state = EditState.ROLLED_BACK
        record.invalid = True
        record.error = error.message
        record.touched_version = self._version

        allocation = self._allocations.get(action.key.allocation_id)
        if allocation is not None:
            self._allocations[allocation.id] = allocation.with_week(action.key.week_key, record.confirmed_value)

        logger.warning(
            "edit_rolled_back",
            allocation_id=action.key.allocation_id,
            week_key=action.key.week_key,
            seq=action.seq,
            restored=record.confirmed_value,
            attempts=action.attempts,
            error=error.message,
        )
        await self.publisher.publish_edit_rolled_back(
            action.key.allocation_id,
            action.resource_id,
            action.key.week_key,
            action.seq,
            record.confirmed_value,
            action.hours,
        )
        await self.publisher.publish_edit_failed(
            action.key.allocation_id,
            action.resource_id,
            action.key.week_key,
            action.seq,
            action.hours,
            error.message,
            action.attempts,
            error.retryable,
        )

        if isinstance(error, (StoreNotFoundError, StoreConflictError)):
            self._schedule_reconcile(action.resource_id)

    def _record(self, action: PersistAction) -> CellRecord:
        record = self.cells.get(action.key)
        if record is None:
            raise KeyError(action.key)
        return record

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self, resource_id: Optional[int] = None) -> List[int]:
        """
        Merge the store's allocations into local state.

        Cells with an outstanding edit, or changed locally after the fetch
        started, keep their local value.

        Args:
            resource_id: Limit the refresh to one resource

        Returns:
            Ids of the allocations received from the store
        """
        started = self._version
        allocations = await self.retry.execute(
            self.store.get_allocations, resource_id, operation="get_allocations"
        )
        ids, skipped = self._merge(allocations, started, resource_id)

        logger.info(
            "allocations_reconciled",
            resource_id=resource_id,
            allocations=len(ids),
            skipped_cells=len(skipped),
        )
        await self.publisher.publish_reconciled(resource_id, ids, skipped)
        return ids

    def _schedule_reconcile(self, resource_id: Optional[int]) -> None:
        if not self.reconcile_enabled or self._closed:
            return
        running = self._reconcile_tasks.get(resource_id)
        if running is not None and not running.done():
            return
        self._reconcile_tasks[resource_id] = asyncio.create_task(self._background_reconcile(resource_id))

    async def _background_reconcile(self, resource_id: Optional[int]) -> None:
        try:
            await self.reconcile(resource_id)
        except PersistenceError as e:
            logger.warning("reconcile_failed", resource_id=resource_id, error=e.message)
        except Exception as e:
            logger.error("reconcile_failed", resource_id=resource_id, error=str(e), exc_info=True)

    def _merge(
        self,
        server_allocations: List[Allocation],
        started_version: int,
        resource_id: Optional[int],
    ) -> Tuple[List[int], List[Dict[str, Any]]]:
        merged_state = dict(self._allocations)
        received: List[int] = []
        skipped: List[Dict[str, Any]] = []

        for server in server_allocations:
            received.append(server.id)
            local = merged_state.get(server.id)
            merged = server
            for record in self.cells.records_for(server.id):
                week = record.key.week_key
                if record.outstanding or record.touched_version > started_version:
                    local_value = local.weekly_allocations.get(week) if local is not None else None
                    merged = merged.with_week(week, local_value)
                    skipped.append({"allocation_id": server.id, "week_key": week})
                else:
                    record.confirmed_value = server.weekly_allocations.get(week)
            merged_state[server.id] = merged

        seen = set(received)
        for allocation_id, local in list(merged_state.items()):
            if allocation_id in seen:
                continue
            if resource_id is not None and local.resource_id != resource_id:
                continue
            if self.cells.outstanding_for(allocation_id):
                continue
            del merged_state[allocation_id]

        self._allocations = merged_state
        return received, skipped
