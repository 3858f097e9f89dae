from __future__ import annotations

import asyncio
import inspect
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from .errors import OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar('T')

RetryPredicate = Callable[[Exception, int], bool]
RetryObserver = Callable[[int, Exception], Any]

TRANSIENT_ERROR_MARKERS = (
    "network", "timeout", "503", "502", "500", "rate limit", "too many requests",
)
NETWORK_ERROR_MARKERS = ("network", "fetch", "timeout", "503", "502")
API_ERROR_MARKERS = ("rate limit", "too many requests", "503", "502", "timeout")


def message_contains(error: BaseException, markers: Iterable[str]) -> bool:
    """Case-insensitive substring match of the error message against markers."""
    message = str(error).lower()
    return any(marker in message for marker in markers)


def is_transient_error(error: Exception, attempt: int) -> bool:
    """Default retry predicate: network, timeout, 5xx and rate-limit failures."""
    return message_contains(error, TRANSIENT_ERROR_MARKERS)


def is_network_error(error: Exception, attempt: int) -> bool:
    return message_contains(error, NETWORK_ERROR_MARKERS)


def is_api_error(error: Exception, attempt: int) -> bool:
    return message_contains(error, API_ERROR_MARKERS)


@dataclass(frozen=True)
class RetryOptions:
    """
    Retry configuration. Delays are in seconds.

    ``should_retry`` receives ``(error, attempt)``; when it is None the
    transient-error predicate is used. ``on_retry`` receives
    ``(attempt, error)`` before each backoff and may be sync or async.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    should_retry: Optional[RetryPredicate] = None
    on_retry: Optional[RetryObserver] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        if self.backoff_multiplier <= 0:
            raise ValueError("backoff_multiplier must be positive")

    def merge(self, **overrides: Any) -> "RetryOptions":
        """Return a copy with caller overrides applied over these values."""
        return replace(self, **overrides) if overrides else self


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation. ``total_duration`` is in seconds."""
    success: bool
    attempts: int
    total_duration: float
    result: Optional[T] = None
    error: Optional[Exception] = None


NETWORK_RETRY = RetryOptions(
    max_attempts=3,
    base_delay=1.0,
    backoff_multiplier=2.0,
    should_retry=is_network_error,
)

API_RETRY = RetryOptions(
    max_attempts=5,
    base_delay=2.0,
    max_delay=10.0,
    backoff_multiplier=1.5,
    should_retry=is_api_error,
)


class RetryManager:
    """
    Executes async operations with bounded attempts and exponential backoff.

    This class handles:
    - Attempt budgeting with a pluggable retry predicate
    - Exponential backoff capped at ``max_delay``
    - Optional jitter (50-100% of the computed delay)
    - Retry notifications that can never abort the loop
    - A timeout-wrapping variant

    ``sleep``, ``clock`` and ``rng`` are injectable so backoff can be
    observed without waiting.
    """

    def __init__(
        self,
        defaults: Optional[RetryOptions] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[Callable[[], float]] = None,
    ):
        self.defaults = defaults or RetryOptions()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic
        self._rng = rng or random.random

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        options: Optional[RetryOptions] = None,
        **overrides: Any
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic.

        Args:
            operation: Async callable to execute
            options: Base options (defaults to the manager's defaults)
            **overrides: Individual RetryOptions fields to override

        Returns:
            RetryResult describing success or the last failure
        """
        config = (options or self.defaults).merge(**overrides)
        should_retry = config.should_retry or is_transient_error
        start = self._clock()
        last_error: Optional[Exception] = None
        attempt = 0

        for attempt in range(1, config.max_attempts + 1):
            try:
                result = await operation()
            except Exception as error:  # noqa: BLE001
                last_error = error

                if attempt == config.max_attempts:
                    break

                if not should_retry(error, attempt):
                    logger.debug(
                        "Error is not retryable, giving up",
                        extra={"attempt": attempt, "error_type": type(error).__name__}
                    )
                    break

                await self._notify(config.on_retry, attempt, error)

                delay = self.calculate_delay(attempt, config)
                logger.warning(
                    f"Retrying after {type(error).__name__}",
                    extra={
                        "attempt": attempt,
                        "max_attempts": config.max_attempts,
                        "error_message": str(error)[:200],
                        "delay": delay,
                    }
                )
                await self._sleep(delay)
            else:
                if attempt > 1:
                    logger.info(
                        f"Operation succeeded after {attempt} attempts",
                        extra={"attempts": attempt}
                    )
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempt,
                    total_duration=self._clock() - start,
                )

        return RetryResult(
            success=False,
            error=last_error,
            attempts=attempt,
            total_duration=self._clock() - start,
        )

    async def execute_with_timeout(
        self,
        operation: Callable[[], Awaitable[T]],
        timeout: float,
        options: Optional[RetryOptions] = None,
        **overrides: Any
    ) -> RetryResult[T]:
        """
        Execute with a per-attempt time limit.

        Each attempt races the operation against ``timeout`` seconds.
        Timeouts are always retried; other errors go to the caller's
        predicate, or are retried when none was given.
        """
        config = (options or self.defaults).merge(**overrides)
        custom_predicate = config.should_retry

        def retry_timeouts(error: Exception, attempt: int) -> bool:
            if isinstance(error, OperationTimeoutError) or "timeout" in str(error).lower():
                return True
            if custom_predicate is not None:
                return custom_predicate(error, attempt)
            return True

        async def timed_operation() -> T:
            try:
                return await asyncio.wait_for(operation(), timeout)
            except asyncio.TimeoutError:
                raise OperationTimeoutError(timeout) from None

        return await self.execute(timed_operation, config.merge(should_retry=retry_timeouts))

    def calculate_delay(self, attempt: int, options: Optional[RetryOptions] = None) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        config = options or self.defaults
        delay = min(
            config.base_delay * (config.backoff_multiplier ** (attempt - 1)),
            config.max_delay,
        )
        if config.jitter:
            delay *= 0.5 + self._rng() * 0.5
        return delay

    async def _notify(self, observer: Optional[RetryObserver], attempt: int, error: Exception):
        """Call the retry observer, handling both sync and async."""
        if observer is None:
            return
        try:
            outcome = observer(attempt, error)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as callback_error:  # noqa: BLE001
            logger.error(f"Error in on_retry callback: {callback_error}")


_default_manager = RetryManager()


async def retry_network_request(
    operation: Callable[[], Awaitable[T]],
    manager: Optional[RetryManager] = None,
    **overrides: Any
) -> RetryResult[T]:
    """Retry preset for plain network requests."""
    return await (manager or _default_manager).execute(operation, NETWORK_RETRY, **overrides)


async def retry_api_call(
    operation: Callable[[], Awaitable[T]],
    manager: Optional[RetryManager] = None,
    **overrides: Any
) -> RetryResult[T]:
    """Retry preset for remote API calls (rate limits, 5xx, timeouts)."""
    return await (manager or _default_manager).execute(operation, API_RETRY, **overrides)
