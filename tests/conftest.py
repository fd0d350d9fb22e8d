import asyncio
import atexit
import faulthandler
import os
import sys
import tempfile
import threading
from typing import Optional

import pytest

# Keep test logs out of the user's home; must happen before finsuggest imports
os.environ.setdefault("FINSUGGEST_LOG_DIR", tempfile.mkdtemp(prefix="finsuggest-logs-"))


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _start_watchdog(timeout_seconds: int) -> Optional[threading.Timer]:
    if timeout_seconds <= 0:
        return None

    def _kill() -> None:
        faulthandler.dump_traceback(file=sys.stderr, all_threads=True)
        # Hard exit: a hung event loop must not block CI forever.
        os._exit(2)

    timer = threading.Timer(timeout_seconds, _kill)
    timer.daemon = True
    timer.start()
    return timer


def pytest_sessionstart(session) -> None:  # noqa: ANN001
    faulthandler.enable(all_threads=True)

    # Absolute upper bound for the whole test run (default 10 minutes).
    timer = _start_watchdog(_env_int("PYTEST_WATCHDOG_TIMEOUT_SECONDS", 10 * 60))
    if timer is not None:
        atexit.register(timer.cancel)


class FakeClock:
    """Manually advanced time source, usable as clock= and sleep=."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Let other tasks run, like a real sleep would
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Each test sees a fresh config cache and provider registry cache."""
    from finsuggest.providers.factory import ProviderFactory
    from finsuggest.utils.config import reset_config_cache

    monkeypatch.delenv("FINSUGGEST_CONFIG", raising=False)
    reset_config_cache()
    ProviderFactory.clear_cache()
    yield
    reset_config_cache()
    ProviderFactory.clear_cache()
