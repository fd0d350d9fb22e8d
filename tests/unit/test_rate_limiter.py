"""
Unit tests for rate limiting and rate-limit backoff.
"""

import asyncio

import pytest

from finsuggest.core.errors import ProviderError, RateLimitError, RetriesExhausted
from finsuggest.core.rate_limiter import RateLimiter, RetryState, backoff_delay


def test_backoff_delay_doubles_and_caps():
    assert backoff_delay(1, 5.0, 30.0) == 5.0
    assert backoff_delay(2, 5.0, 30.0) == 10.0
    assert backoff_delay(3, 5.0, 30.0) == 20.0
    assert backoff_delay(4, 5.0, 30.0) == 30.0


class TestRetryState:
    """The retry state machine, without any sleeping."""

    def test_schedules_until_exhausted(self):
        state = RetryState(max_attempts=3, base_delay=5.0, max_delay=30.0)

        state.begin_attempt()
        assert state.register_rate_limit() == 5.0
        state.begin_attempt()
        assert state.register_rate_limit() == 10.0
        state.begin_attempt()
        assert state.register_rate_limit() is None

        assert state.exhausted is True
        assert state.is_terminal is True
        assert state.attempt == 3

    def test_success_is_terminal(self):
        state = RetryState()
        state.begin_attempt()
        state.register_success()

        assert state.is_terminal
        with pytest.raises(RuntimeError):
            state.begin_attempt()


class TestRateLimiter:
    """Tests for RateLimiter.call()."""

    @pytest.fixture(autouse=True)
    def _limiter(self, clock):
        self.clock = clock
        self.limiter = RateLimiter(
            min_interval=2.0,
            base_delay=5.0,
            max_delay=30.0,
            max_attempts=3,
            clock=clock,
            sleep=clock.sleep,
        )

    def test_first_call_not_throttled(self):
        async def ok():
            return "done"

        assert asyncio.run(self.limiter.call(ok)) == "done"
        assert self.clock.sleeps == []

    def test_enforces_min_interval(self):
        """A second call right after the first waits the remaining interval."""
        async def ok():
            return 1

        async def run():
            await self.limiter.call(ok)
            self.clock.advance(0.5)
            await self.limiter.call(ok)

        asyncio.run(run())

        assert self.clock.sleeps == [pytest.approx(1.5)]

    def test_rate_limited_then_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise RateLimitError()
            return "ok"

        assert asyncio.run(self.limiter.call(flaky)) == "ok"
        assert len(attempts) == 2
        assert self.clock.sleeps == [5.0]

    def test_retries_exhausted(self):
        """Three rate-limited attempts raise RetriesExhausted."""
        async def always_limited():
            raise RateLimitError()

        with pytest.raises(RetriesExhausted) as exc_info:
            asyncio.run(self.limiter.call(always_limited))

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, RateLimitError)
        assert self.clock.sleeps == [5.0, 10.0]
        assert self.limiter.get_status()["exhausted"] == 1

    def test_retry_after_header_respected(self):
        calls = []

        async def limited_once():
            calls.append(1)
            if len(calls) == 1:
                raise RateLimitError(retry_after=12)
            return "ok"

        asyncio.run(self.limiter.call(limited_once))

        assert self.clock.sleeps == [12]

    def test_other_errors_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise ProviderError("boom", status_code=500)

        with pytest.raises(ProviderError):
            asyncio.run(self.limiter.call(broken))

        assert len(calls) == 1

    def test_status_and_reset(self):
        async def ok():
            return None

        asyncio.run(self.limiter.call(ok))
        status = self.limiter.get_status()

        assert status["calls"] == 1
        assert status["wait_time_seconds"] == pytest.approx(2.0)

        self.limiter.reset()
        assert self.limiter.get_status()["calls"] == 0
        assert self.limiter.get_wait_time() == 0.0

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RateLimiter(max_attempts=0)
