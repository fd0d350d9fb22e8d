"""
Rate limiting and retry for AI provider calls.

Two protections wrap every AI-tier call:
- a minimum spacing between consecutive calls (process-wide, default 2s)
- exponential backoff on rate-limit responses, up to 3 attempts in total

Time is injected (clock + sleep) so the whole thing runs instantly in tests.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from .errors import RateLimitError, RetriesExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MIN_INTERVAL = 2.0
DEFAULT_BASE_DELAY = 5.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_MAX_ATTEMPTS = 3


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retrying after the given (1-based) failed attempt."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


@dataclass
class RetryState:
    """
    Retry bookkeeping for one logical call.

    attempt counts attempts already made. After a rate-limited attempt,
    register_rate_limit() either schedules next_delay or marks the state
    exhausted.
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    attempt: int = 0
    next_delay: Optional[float] = None
    exhausted: bool = False
    succeeded: bool = False

    def begin_attempt(self) -> int:
        if self.exhausted or self.succeeded:
            raise RuntimeError("RetryState is terminal")
        self.attempt += 1
        self.next_delay = None
        return self.attempt

    def register_success(self) -> None:
        self.succeeded = True
        self.next_delay = None

    def register_rate_limit(self) -> Optional[float]:
        """Returns the delay before the next attempt, or None when exhausted."""
        if self.attempt >= self.max_attempts:
            self.exhausted = True
            self.next_delay = None
            return None
        self.next_delay = backoff_delay(self.attempt, self.base_delay, self.max_delay)
        return self.next_delay

    @property
    def is_terminal(self) -> bool:
        return self.exhausted or self.succeeded


class RateLimiter:
    """
    Minimum-interval limiter with rate-limit backoff for an async caller.

    The last-call timestamp is shared by every caller holding this instance,
    so one instance per process gives process-wide spacing.

    Usage:
        limiter = RateLimiter()
        text = await limiter.call(lambda: asyncio.to_thread(provider.generate, prompt))
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between two consecutive calls
            base_delay: First backoff delay after a rate-limit response
            max_delay: Upper bound for a backoff delay
            max_attempts: Total attempts per call, including the first one
            clock: Monotonic time source
            sleep: Coroutine used for waiting
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.min_interval = min_interval
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self._clock = clock
        self._sleep = sleep

        self._last_call: Optional[float] = None
        self._spacing_lock: Optional[asyncio.Lock] = None

        self._stats = {
            "calls": 0,
            "rate_limited": 0,
            "retries": 0,
            "exhausted": 0,
            "throttle_wait_seconds": 0.0,
        }

    def new_retry_state(self) -> RetryState:
        return RetryState(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
        )

    def get_wait_time(self) -> float:
        """
        Seconds until the next call may start.

        Returns:
            Wait time in seconds (0 if immediately available)
        """
        if self._last_call is None:
            return 0.0
        elapsed = self._clock() - self._last_call
        return max(0.0, self.min_interval - elapsed)

    async def _throttle(self) -> None:
        """Wait for the minimum interval, then stamp the call time."""
        if self._spacing_lock is None:
            self._spacing_lock = asyncio.Lock()

        async with self._spacing_lock:
            wait = self.get_wait_time()
            if wait > 0:
                self._stats["throttle_wait_seconds"] += wait
                logger.debug(f"Throttling AI call for {wait:.2f}s")
                await self._sleep(wait)
            self._last_call = self._clock()

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn with spacing and rate-limit retries.

        Args:
            fn: Zero-argument coroutine factory performing one attempt

        Returns:
            The result of the first successful attempt

        Raises:
            RetriesExhausted: every attempt was rate limited
            Exception: any non-rate-limit error, unretried
        """
        state = self.new_retry_state()
        last_error: Optional[RateLimitError] = None

        while not state.is_terminal:
            attempt = state.begin_attempt()
            await self._throttle()
            self._stats["calls"] += 1

            try:
                result = await fn()
            except RateLimitError as e:
                last_error = e
                self._stats["rate_limited"] += 1
                delay = state.register_rate_limit()
                if delay is None:
                    break
                if e.retry_after:
                    delay = min(max(delay, e.retry_after), self.max_delay)
                self._stats["retries"] += 1
                logger.warning(
                    f"Rate limited (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.0f}s"
                )
                await self._sleep(delay)
                continue

            state.register_success()
            return result

        self._stats["exhausted"] += 1
        logger.error(f"Rate limit retries exhausted after {state.attempt} attempts")
        raise RetriesExhausted(state.attempt, last_error)

    def get_status(self) -> Dict:
        """
        Get current limiter status.

        Returns:
            Dict with configuration, counters and wait time
        """
        return {
            **self._stats,
            "min_interval": self.min_interval,
            "max_attempts": self.max_attempts,
            "wait_time_seconds": self.get_wait_time(),
        }

    def reset(self) -> None:
        """Forget the last call timestamp and counters."""
        self._last_call = None
        for key in self._stats:
            self._stats[key] = 0 if key != "throttle_wait_seconds" else 0.0
