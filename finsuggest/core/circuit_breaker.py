"""
Circuit breaker for AI capability resilience.

5 consecutive failures = open circuit, 60s cooldown, then a single trial call.
Prevents wasted API calls and cascading latency while the provider is down.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

from .models import CircuitBreakerState, CircuitState

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Circuit breaker guarding one external capability.

    Behavior:
    - CLOSED: Normal operation, all calls pass through
    - OPEN: After failure_threshold consecutive failures, reject all calls
    - HALF_OPEN: After open_timeout, admit one trial call at a time
    - success_threshold consecutive trial successes close the circuit,
      any trial failure reopens it and restarts the timer

    can_call() must be checked before the external call. A rejected call is
    never reported back, so it is never counted as a failure.

    Usage:
        breaker = CircuitBreaker(name="gemini")

        if breaker.can_call():
            try:
                text = provider.generate(prompt)
                breaker.record_success()
            except ProviderError:
                breaker.record_failure()
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        open_timeout: float = 60.0,
        name: str = "ai",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures to open circuit
            success_threshold: Consecutive successes needed to close from half-open
            open_timeout: Seconds the circuit stays open before a trial call
            name: Protected capability, used in log lines
            clock: Monotonic time source (injectable for tests)
        """
        if failure_threshold < 1 or success_threshold < 1:
            raise ValueError("Circuit breaker thresholds must be >= 1")

        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.open_timeout = open_timeout
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._total_calls = 0
        self._total_failures = 0
        self._total_rejected = 0
        self._lock = threading.Lock()

    def _maybe_half_open(self) -> None:
        """OPEN -> HALF_OPEN once the timeout has elapsed. Caller holds the lock."""
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.open_timeout:
                self._state = CircuitState.HALF_OPEN
                self._successes = 0
                self._trial_in_flight = False
                logger.info(f"Circuit HALF_OPEN for {self.name} (testing recovery)")

    def get_state(self) -> CircuitState:
        """Current state, applying the lazy OPEN -> HALF_OPEN transition."""
        with self._lock:
            self._maybe_half_open()
            return self._state

    def can_call(self) -> bool:
        """
        Check whether a call may be attempted now.

        Returns:
            True if CLOSED, or HALF_OPEN with no trial call outstanding
        """
        with self._lock:
            self._maybe_half_open()

            if self._state is CircuitState.CLOSED:
                return True

            if self._state is CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True

            self._total_rejected += 1
            if self._state is CircuitState.OPEN:
                remaining = self.open_timeout - (self._clock() - self._opened_at)
                logger.debug(f"Circuit OPEN for {self.name}, retry in {max(0.0, remaining):.0f}s")
            return False

    def record_success(self) -> None:
        """
        Record a successful call.

        In HALF_OPEN state, may transition to CLOSED.
        In CLOSED state, resets failure counter.
        """
        with self._lock:
            self._total_calls += 1
            self._failures = 0
            self._trial_in_flight = False

            if self._state is CircuitState.HALF_OPEN:
                self._successes += 1
                logger.info(
                    f"Circuit {self.name} trial success "
                    f"({self._successes}/{self.success_threshold})"
                )
                if self._successes >= self.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._successes = 0
                    self._opened_at = None
                    logger.info(f"Circuit CLOSED for {self.name} (recovered)")

    def record_failure(self) -> None:
        """
        Record a failed call.

        May transition to OPEN if failure threshold reached.
        """
        with self._lock:
            self._total_calls += 1
            self._total_failures += 1
            self._failures += 1
            self._successes = 0
            self._trial_in_flight = False

            if self._state is CircuitState.HALF_OPEN:
                # Any failure in half-open immediately reopens circuit
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                logger.warning(f"Circuit OPEN for {self.name} (recovery failed)")
            elif self._state is CircuitState.CLOSED and self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                logger.warning(
                    f"Circuit OPEN for {self.name} after {self._failures} consecutive failures"
                )

    def snapshot(self) -> CircuitBreakerState:
        """Copy of the breaker state for persistence or display."""
        with self._lock:
            self._maybe_half_open()
            return CircuitBreakerState(
                state=self._state,
                consecutive_failures=self._failures,
                consecutive_successes=self._successes,
                opened_at=self._opened_at,
            )

    def get_stats(self) -> Dict:
        """
        Get statistics for the circuit.

        Returns:
            Dict with state, counters, and timing info
        """
        with self._lock:
            self._maybe_half_open()
            result = {
                "name": self.name,
                "state": self._state.value,
                "consecutive_failures": self._failures,
                "consecutive_successes": self._successes,
                "total_calls": self._total_calls,
                "total_failures": self._total_failures,
                "total_rejected": self._total_rejected,
            }

            if self._state is CircuitState.OPEN and self._opened_at is not None:
                remaining = self.open_timeout - (self._clock() - self._opened_at)
                result["recovery_in_seconds"] = max(0.0, remaining)

            return result

    def reset(self) -> None:
        """
        Manually reset the circuit to CLOSED state.

        Useful for admin override or testing.
        """
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._successes = 0
            self._opened_at = None
            self._trial_in_flight = False
            logger.info(f"Circuit manually reset for {self.name}")
