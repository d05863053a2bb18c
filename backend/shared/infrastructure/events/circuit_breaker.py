"""
Circuit breaker for Redis event publishing.

Menu notifications are fire-and-forget. While Redis is down, each publish
would otherwise burn its full retry budget on socket timeouts inside a cost
propagation cycle; once the breaker opens, publishes return immediately
until the recovery timeout lets a few trial publishes through.

    CLOSED --(threshold failures)--> OPEN --(recovery timeout)--> HALF_OPEN
    HALF_OPEN --(success)--> CLOSED
    HALF_OPEN --(failure)--> OPEN
"""

from __future__ import annotations

import threading
import time
from enum import Enum

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class EventCircuitBreaker:
    """Counts publish failures and short-circuits publishes while open."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._trial_calls = 0
        self._rejected = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _move_to(self, state: CircuitState, **context) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        log = logger.error if state is CircuitState.OPEN else logger.info
        log(
            "Event circuit breaker state changed",
            previous=previous.value,
            state=state.value,
            **context,
        )

    def can_execute(self) -> bool:
        """True if a publish may be attempted now."""
        with self._lock:
            if self._state is CircuitState.OPEN:
                if time.monotonic() - self._opened_at < self.recovery_timeout:
                    self._rejected += 1
                    return False
                self._trial_calls = 0
                self._move_to(CircuitState.HALF_OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._trial_calls >= self.half_open_max_calls:
                    self._rejected += 1
                    return False
                self._trial_calls += 1

            return True

    def record_failure(self) -> None:
        """A publish failed after exhausting its retries."""
        with self._lock:
            self._failures += 1
            self._opened_at = time.monotonic()
            if self._state is CircuitState.HALF_OPEN:
                self._move_to(CircuitState.OPEN, reason="trial publish failed")
            elif self._failures >= self.failure_threshold:
                self._move_to(CircuitState.OPEN, failures=self._failures)

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._move_to(CircuitState.CLOSED)

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "state": self._state.value,
                "failure_count": self._failures,
                "rejected_count": self._rejected,
            }


_breaker: EventCircuitBreaker | None = None
_breaker_lock = threading.Lock()


def get_event_circuit_breaker() -> EventCircuitBreaker:
    """Process-wide breaker shared by every publish_event call."""
    global _breaker
    with _breaker_lock:
        if _breaker is None:
            _breaker = EventCircuitBreaker(
                # Each recorded failure already covers a full retry cycle
                failure_threshold=settings.redis_publish_max_retries + 2,
                recovery_timeout=30.0,
            )
        return _breaker
