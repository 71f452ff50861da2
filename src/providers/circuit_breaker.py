"""Circuit breaker guarding model backends.

A backend that keeps failing after the transport has already exhausted its
retries is taken out of rotation for a while, so a provider chain can fall
through to the next backend immediately instead of paying the full retry
cost on every call.

States:
- CLOSED: normal operation, calls pass through
- OPEN: backend is failing, calls are rejected
- HALF_OPEN: trial calls check whether the backend has recovered
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from src.config.logger import logger
from src.transport import FailureKind, TransportError


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds controlling when the circuit opens and closes."""
    failure_threshold: int = 5  # Total failures that open the circuit
    recovery_timeout: timedelta = timedelta(seconds=60)  # Wait before a trial call
    success_threshold: int = 3  # Half-open successes needed to close again
    max_consecutive_failures: int = 3  # Consecutive failures that open the circuit


@dataclass
class CircuitBreakerState:
    """Mutable counters behind a circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    consecutive_failures: int = 0
    last_failure_time: Optional[datetime] = None
    last_state_change: datetime = field(default_factory=datetime.now)


class CircuitBreakerOpen(Exception):
    """Raised when a call is attempted through an open circuit."""
    pass


def counts_as_failure(error: Exception) -> bool:
    """Whether ``error`` says anything about the backend's health.

    Permanent transport failures (rejected credentials, malformed requests)
    come from a reachable backend and do not trip the breaker.
    """
    return not (isinstance(error, TransportError) and error.kind == FailureKind.PERMANENT)


class CircuitBreaker:
    """Circuit breaker for one provider backend."""

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitBreakerState()
        self._lock = asyncio.Lock()
        self.logger = logger.bind(circuit_breaker=name)

    @property
    def current_state(self) -> CircuitState:
        return self._state.state

    def is_open(self) -> bool:
        return self._state.state == CircuitState.OPEN

    def is_closed(self) -> bool:
        return self._state.state == CircuitState.CLOSED

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        self._state.state = new_state
        self._state.last_state_change = datetime.now()

        if new_state == CircuitState.CLOSED:
            self._state.failure_count = 0
            self._state.consecutive_failures = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._state.success_count = 0

        self.logger.info(
            "circuit_breaker_state_change",
            old_state=old_state.value,
            new_state=new_state.value
        )

    def _should_attempt_reset(self) -> bool:
        last_failure = self._state.last_failure_time
        return (
            last_failure is not None
            and datetime.now() - last_failure >= self.config.recovery_timeout
        )

    async def _record_success(self) -> None:
        async with self._lock:
            self._state.consecutive_failures = 0

            if self._state.state == CircuitState.HALF_OPEN:
                self._state.success_count += 1
                if self._state.success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    async def _record_failure(self) -> None:
        async with self._lock:
            self._state.failure_count += 1
            self._state.consecutive_failures += 1
            self._state.last_failure_time = datetime.now()

            if self._state.state == CircuitState.CLOSED:
                if (self._state.failure_count >= self.config.failure_threshold or
                        self._state.consecutive_failures >= self.config.max_consecutive_failures):
                    self._transition_to(CircuitState.OPEN)
            elif self._state.state == CircuitState.HALF_OPEN:
                # Any failure while half-open reopens the circuit
                self._transition_to(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run ``func`` under circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If the circuit is open and the recovery
                timeout has not elapsed.
            Exception: Whatever ``func`` raises.
        """
        async with self._lock:
            if self._state.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._transition_to(CircuitState.HALF_OPEN)
                else:
                    raise CircuitBreakerOpen(f"Circuit breaker '{self.name}' is open")

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if counts_as_failure(e):
                await self._record_failure()
            raise
        await self._record_success()
        return result

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the breaker for status reporting."""
        last_failure = self._state.last_failure_time
        return {
            "name": self.name,
            "state": self._state.state.value,
            "failure_count": self._state.failure_count,
            "success_count": self._state.success_count,
            "consecutive_failures": self._state.consecutive_failures,
            "last_failure_time": last_failure.isoformat() if last_failure else None,
            "last_state_change": self._state.last_state_change.isoformat()
        }
