"""
Bounded retry for every call the sync manager makes to the store.

A call that raises or times out is normalised to a PersistenceError whose
``retryable`` flag decides whether it is tried again. Backoff doubles per
attempt: ``base * 2^(attempt-1)``, capped.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from capacityhub.errors import EditValidationError, PersistenceError, PersistTimeoutError
from capacityhub.platform.config import settings
from capacityhub.platform.logging import get_logger

logger = get_logger(__name__)


class RetryExecutor:
    """
    Single place for timeout, error classification and backoff.

    Args:
        max_attempts: Total tries per call, including the first
        timeout: Seconds before a call counts as a retryable failure
        backoff: Base delay in seconds between attempts
        max_backoff: Upper bound for a single delay
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff: Optional[float] = None,
        max_backoff: float = 10.0,
    ):
        self.max_attempts = max_attempts if max_attempts is not None else settings.SYNC_MAX_ATTEMPTS
        self.timeout = timeout if timeout is not None else settings.SYNC_PERSIST_TIMEOUT_SECONDS
        self.backoff = backoff if backoff is not None else settings.SYNC_RETRY_BACKOFF_SECONDS
        self.max_backoff = max_backoff

    @staticmethod
    def classify(error: Exception) -> PersistenceError:
        """Wrap any failure of a store call in a PersistenceError."""
        if isinstance(error, PersistenceError):
            return error
        # Validation problems do not go away by trying again
        if isinstance(error, (EditValidationError, ValueError, TypeError)):
            return PersistenceError(str(error), retryable=False, cause=error)
        return PersistenceError(str(error) or type(error).__name__, retryable=True, cause=error)

    async def attempt(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """
        Run one attempt of ``func`` under the timeout.

        Raises:
            PersistenceError: On any failure, including PersistTimeoutError
        """
        try:
            return await asyncio.wait_for(func(*args), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise PersistTimeoutError(self.timeout)
        except Exception as e:
            raise self.classify(e)

    def should_retry(self, error: PersistenceError, attempts: int) -> bool:
        return error.retryable and attempts < self.max_attempts

    def delay(self, attempts: int) -> float:
        if self.backoff <= 0:
            return 0.0
        return min(self.max_backoff, self.backoff * (2 ** max(0, attempts - 1)))

    async def execute(self, func: Callable[..., Awaitable[Any]], *args: Any, operation: str = "") -> Any:
        """
        Run ``func`` with retries until it succeeds or the budget is spent.

        Raises:
            PersistenceError: The last failure once retrying stops
        """
        attempts = 0
        while True:
            attempts += 1
            try:
                return await self.attempt(func, *args)
            except PersistenceError as e:
                if not self.should_retry(e, attempts):
                    logger.error(
                        "store_call_failed",
                        operation=operation,
                        attempts=attempts,
                        error=e.message,
                    )
                    raise
                wait = self.delay(attempts)
                logger.warning(
                    "store_call_retry_scheduled",
                    operation=operation,
                    attempt=attempts,
                    delay=wait,
                    error=e.message,
                )
                if wait:
                    await asyncio.sleep(wait)
