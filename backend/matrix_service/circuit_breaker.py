"""Circuit breaker guarding calls to the upstream router."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, TypeVar

from .metrics import circuit_breaker_rejected_total, circuit_breaker_state
from .settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"  # requests allowed
    OPEN = "open"  # requests rejected
    HALF_OPEN = "half_open"  # probing for recovery


_STATE_GAUGE_VALUE = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
}


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    consecutive_failures: int = 0
    circuit_opened_count: int = 0


class CircuitOpenError(Exception):
    """Raised when a call is attempted while the circuit is open."""


class CircuitBreaker:
    """
    Circuit breaker to protect against a failing upstream.

    States:
    - CLOSED: calls pass through; consecutive failures are counted
    - OPEN: after `failure_threshold` consecutive failures, calls are rejected
      with CircuitOpenError until `cooldown_seconds` elapse
    - HALF_OPEN: calls are let through again; `success_threshold` successes
      close the circuit, a single failure reopens it

    Only exceptions listed in `failure_exceptions` count as failures, so the
    breaker can wrap a call that also raises ordinary, expected errors.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int | None = None,
        cooldown_seconds: float | None = None,
        success_threshold: int = 1,
        enabled: bool | None = None,
        failure_exceptions: tuple[type[BaseException], ...] = (Exception,),
    ):
        self.name = name
        self.failure_threshold = failure_threshold if failure_threshold is not None else 3
        self.cooldown_seconds = cooldown_seconds if cooldown_seconds is not None else 300.0
        self.success_threshold = success_threshold
        self.enabled = enabled if enabled is not None else True
        self.failure_exceptions = failure_exceptions

        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats()
        self._lock = Lock()
        self._last_state_change = time.time()
        self._half_open_successes = 0
        circuit_breaker_state.labels(circuit_name=name).set(0)

    @property
    def state(self) -> CircuitState:
        """Current state, applying the open -> half-open transition when due."""
        with self._lock:
            if self._state == CircuitState.OPEN:
                if time.time() - self._last_state_change >= self.cooldown_seconds:
                    self._transition_to(CircuitState.HALF_OPEN)
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._last_state_change = time.time()
        circuit_breaker_state.labels(circuit_name=self.name).set(_STATE_GAUGE_VALUE[new_state])

        if new_state == CircuitState.OPEN:
            self._stats.circuit_opened_count += 1
            logger.warning(
                "Circuit breaker '%s' opened after %d consecutive failures",
                self.name,
                self._stats.consecutive_failures,
            )
        elif new_state == CircuitState.CLOSED:
            self._stats.consecutive_failures = 0
            self._half_open_successes = 0
            if old_state == CircuitState.HALF_OPEN:
                logger.info("Circuit breaker '%s' closed after successful recovery", self.name)
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_successes = 0
            logger.info("Circuit breaker '%s' entering half-open state for testing", self.name)

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Execute `func` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open
            Original exception: If func fails
        """
        if not self.enabled:
            return func(*args, **kwargs)

        if self.state == CircuitState.OPEN:
            with self._lock:
                self._stats.rejected_calls += 1
            circuit_breaker_rejected_total.labels(circuit_name=self.name).inc()
            raise CircuitOpenError(
                f"Circuit breaker '{self.name}' is open. "
                f"Service will be retried after {self.cooldown_seconds} seconds."
            )

        try:
            result = func(*args, **kwargs)
        except self.failure_exceptions:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        with self._lock:
            self._stats.total_calls += 1
            self._stats.successful_calls += 1
            self._stats.last_success_time = time.time()
            self._stats.consecutive_failures = 0

            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        with self._lock:
            self._stats.total_calls += 1
            self._stats.failed_calls += 1
            self._stats.last_failure_time = time.time()
            self._stats.consecutive_failures += 1

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._stats.consecutive_failures >= self.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._stats.consecutive_failures = 0
            self._half_open_successes = 0
            self._last_state_change = time.time()
            circuit_breaker_state.labels(circuit_name=self.name).set(0)
            logger.info("Circuit breaker '%s' manually reset", self.name)

    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED


_circuit_breakers: dict[str, CircuitBreaker] = {}
_breakers_lock = Lock()


def get_circuit_breaker(
    name: str = "osrm",
    failure_exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> CircuitBreaker:
    """Get or create the named process-wide breaker configured from settings."""
    with _breakers_lock:
        if name not in _circuit_breakers:
            _circuit_breakers[name] = CircuitBreaker(
                name,
                failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                cooldown_seconds=settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
                enabled=settings.CIRCUIT_BREAKER_ENABLED,
                failure_exceptions=failure_exceptions,
            )
        return _circuit_breakers[name]


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerStats",
    "CircuitOpenError",
    "CircuitState",
    "get_circuit_breaker",
]
