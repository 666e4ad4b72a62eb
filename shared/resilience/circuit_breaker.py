"""Circuit breaker driven by a rolling failure percentage."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from shared.resilience.rolling_window import HealthCounts, RollingWindow
from shared.utils.logging import get_logger
from shared.utils.metrics import CIRCUIT_STATE

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Tripped, calls go straight to the fallback
    HALF_OPEN = "half_open"  # One trial call allowed through


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
}


@dataclass(frozen=True)
class CommandConfig:
    """Settings for one protected operation. Durations are milliseconds."""

    core_size: int = 30
    max_queue_size: int = 10
    timeout_ms: int = 1000
    request_volume_threshold: int = 10
    error_threshold_percentage: int = 75
    sleep_window_ms: int = 7000
    rolling_window_ms: int = 15000
    rolling_window_buckets: int = 10
    thread_pool_key: str | None = None


class CircuitBreaker:
    """Tracks outcomes for one command key and decides whether calls may run.

    State only changes inside ``allow_request``, ``mark_success`` and
    ``mark_failure``, each of which is a single locked mutation.
    """

    def __init__(
        self,
        name: str,
        config: CommandConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            name: Command key (for logging/metrics)
            config: Thresholds and window sizes
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.config = config or CommandConfig()
        self._clock = clock
        self.window = RollingWindow(
            self.config.rolling_window_ms,
            self.config.rolling_window_buckets,
            clock=clock,
        )
        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._lock = threading.Lock()
        CIRCUIT_STATE.labels(command=name).set(0)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._check_sleep_window()
            return self._state

    def allow_request(self) -> bool:
        """Decide whether the next call may reach the protected operation."""
        with self._lock:
            self._check_sleep_window()
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                logger.info("circuit_trial_started", command=self.name)
                return True
            return False

    def mark_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self.window.reset()
                self._transition(CircuitState.CLOSED)
                return
            counts = self.window.record(success=True)
            self._evaluate(counts)

    def mark_failure(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._open(reason="trial_failed")
                return
            counts = self.window.record(success=False)
            self._evaluate(counts)

    def release_trial(self) -> None:
        """Give up a half-open trial without an outcome so another may run."""
        with self._lock:
            self._trial_in_flight = False

    def retry_after(self) -> int:
        """Seconds until an open circuit allows a trial call."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0
            remaining = self.config.sleep_window_ms / 1000 - (self._clock() - self._opened_at)
            return max(0, int(remaining + 0.999))

    def health(self) -> HealthCounts:
        return self.window.snapshot()

    def get_state(self) -> dict:
        """Get current circuit state for monitoring."""
        counts = self.health()
        state = self.state
        return {
            "name": self.name,
            "state": state.value,
            "attempts": counts.attempts,
            "failures": counts.failures,
            "error_percentage": round(counts.error_percentage, 2),
            "retry_after": self.retry_after() if state == CircuitState.OPEN else None,
        }

    def reset(self) -> None:
        """Manually close the circuit and forget the window."""
        with self._lock:
            self.window.reset()
            self._transition(CircuitState.CLOSED)
            logger.info("circuit_reset", command=self.name)

    def _evaluate(self, counts: HealthCounts) -> None:
        if self._state != CircuitState.CLOSED:
            return
        if counts.attempts < self.config.request_volume_threshold:
            return
        if counts.error_percentage >= self.config.error_threshold_percentage:
            self._open(
                reason="error_threshold",
                attempts=counts.attempts,
                failures=counts.failures,
            )

    def _open(self, reason: str, **fields) -> None:
        self._opened_at = self._clock()
        self._transition(CircuitState.OPEN)
        logger.warning("circuit_opened", command=self.name, reason=reason, **fields)

    def _check_sleep_window(self) -> None:
        if self._state != CircuitState.OPEN:
            return
        if self._clock() - self._opened_at >= self.config.sleep_window_ms / 1000:
            self._transition(CircuitState.HALF_OPEN)
            logger.info("circuit_half_open", command=self.name)

    def _transition(self, state: CircuitState) -> None:
        if state == CircuitState.CLOSED and self._state != CircuitState.CLOSED:
            logger.info("circuit_closed", command=self.name)
        self._state = state
        self._trial_in_flight = False
        CIRCUIT_STATE.labels(command=self.name).set(_STATE_GAUGE_VALUES[state])
