"""
Circuit breaker guarding a remote dependency.

Opens after ``failure_threshold`` failures, moves to half-open lazily on
the first call after ``reset_timeout`` has elapsed, and closes again on
the first success. A single failure while half-open reopens the circuit.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar
import logging
import time

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"          # Normal operation
    OPEN = "open"              # Failing, reject requests
    HALF_OPEN = "half-open"    # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""
    failure_threshold: int = 5      # Failures before opening
    reset_timeout: float = 30.0     # Seconds before attempting recovery

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must not be negative")


class CircuitBreaker:
    """
    Circuit breaker for a single remote dependency.

    Prevents cascading failures by failing fast while the dependency is
    known to be unhealthy. One instance per dependency.
    """

    def __init__(
        self,
        name: str = "default",
        config: Optional[CircuitBreakerConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or time.monotonic
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_time: Optional[float] = None

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute function through circuit breaker.

        Args:
            func: Async function to execute

        Returns:
            Result from successful function execution

        Raises:
            CircuitOpenError: If the circuit is open and the cooldown has not elapsed
            Original exception: If function fails
        """
        if self._state == CircuitState.OPEN:
            if self._reset_timeout_elapsed():
                self._transition(CircuitState.HALF_OPEN)
            else:
                raise CircuitOpenError(self.name)

        try:
            result = await func()
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def _reset_timeout_elapsed(self) -> bool:
        if self._last_failure_time is None:
            return True
        return self._clock() - self._last_failure_time > self.config.reset_timeout

    def _record_success(self):
        if self._state != CircuitState.CLOSED:
            logger.info(
                f"Circuit breaker {self.name} recorded success",
                extra={"circuit_breaker": self.name, "state": self._state.value}
            )
        self._failures = 0
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)

    def _record_failure(self):
        self._failures += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            # Single failure in half-open goes back to open
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED and self._failures >= self.config.failure_threshold:
            self._transition(CircuitState.OPEN)

        logger.warning(
            f"Circuit breaker {self.name} recorded failure",
            extra={
                "circuit_breaker": self.name,
                "state": self._state.value,
                "failure_count": self._failures,
            }
        )

    def _transition(self, new_state: CircuitState):
        previous_state = self._state
        self._state = new_state
        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker {self.name} {new_state.value}",
            extra={
                "circuit_breaker": self.name,
                "previous_state": previous_state.value,
                "failure_count": self._failures,
            }
        )

    def get_state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    def get_failure_count(self) -> int:
        """Get the current failure counter."""
        return self._failures

    def reset(self):
        """Reset circuit breaker to closed state."""
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_time = None
        logger.info(f"Circuit breaker {self.name} reset")
