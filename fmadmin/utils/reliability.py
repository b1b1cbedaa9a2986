"""
Reliability patterns for fmadmin.

A circuit breaker for backend calls and the exponential backoff policy used
both by backend requests and by change feed reconnects. Everything here runs
on a single event loop, so no locking is needed.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, Union

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from fmadmin.core.exceptions import CircuitBreakerError

logger = structlog.get_logger(__name__)

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling a failing backend for ``recovery_timeout`` seconds once
    ``failure_threshold`` consecutive calls have failed.

    After the timeout a single probe call is let through (half-open); its
    outcome closes or re-opens the circuit. Calls made while the probe is in
    flight are rejected. Only ``expected_exception`` counts as a failure.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception: ExceptionTypes = Exception,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = max(1, failure_threshold)
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self._clock = clock

        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self._probing = False

    @property
    def retry_at(self) -> Optional[float]:
        """Clock time after which the next probe is allowed, while open."""
        if self.opened_at is None:
            return None
        return self.opened_at + self.recovery_timeout

    def _reject(self) -> CircuitBreakerError:
        return CircuitBreakerError(
            f"Circuit breaker '{self.name}' is open",
            details={
                "breaker": self.name,
                "failure_count": self.failure_count,
                "retry_in": max(0.0, (self.retry_at or 0.0) - self._clock()),
            },
        )

    def _admit(self) -> None:
        if self.state == CircuitBreakerState.CLOSED:
            return
        if self.state == CircuitBreakerState.OPEN:
            if self._clock() < (self.retry_at or 0.0):
                raise self._reject()
            self.state = CircuitBreakerState.HALF_OPEN
            logger.info("Circuit breaker half-open", name=self.name)
        if self._probing:
            raise self._reject()
        self._probing = True

    async def call_async(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func(*args, **kwargs)`` through the breaker."""
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except self.expected_exception:
            self._record_failure()
            raise
        finally:
            self._probing = False
        self._record_success()
        return result

    def _record_success(self) -> None:
        if self.state != CircuitBreakerState.CLOSED:
            logger.info("Circuit breaker closed", name=self.name)
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def _record_failure(self) -> None:
        self.failure_count += 1
        if (
            self.state == CircuitBreakerState.HALF_OPEN
            or self.failure_count >= self.failure_threshold
        ):
            self.state = CircuitBreakerState.OPEN
            self.opened_at = self._clock()
            logger.warning(
                "Circuit breaker opened",
                name=self.name,
                failures=self.failure_count,
                retry_after_seconds=self.recovery_timeout,
            )

    def reset(self) -> None:
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.opened_at = None
        self._probing = False
        logger.info("Circuit breaker reset", name=self.name)

    @property
    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "retry_at": self.retry_at,
        }


def log_before_sleep(operation: str) -> Callable[[RetryCallState], None]:
    """tenacity ``before_sleep`` hook that logs the upcoming retry."""

    def _log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying operation",
            operation=operation,
            attempt=retry_state.attempt_number,
            sleep_seconds=round(retry_state.next_action.sleep, 2)
            if retry_state.next_action
            else None,
            error=str(error) if error else None,
            error_type=type(error).__name__ if error else None,
        )

    return _log


def backoff_retrying(
    max_attempts: int,
    backoff_max: float = 60.0,
    retry_on: Callable[[BaseException], bool] = lambda e: isinstance(e, Exception),
    before_sleep: Optional[Callable[[RetryCallState], Any]] = None,
    backoff_min: float = 0.5,
) -> AsyncRetrying:
    """
    Exponential backoff policy for ``async for attempt in ...`` loops.

    The last error is re-raised once ``max_attempts`` is exhausted.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=1, min=min(backoff_min, backoff_max), max=backoff_max),
        retry=retry_if_exception(retry_on),
        before_sleep=before_sleep,
        reraise=True,
    )
