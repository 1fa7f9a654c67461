"""
Pytest Configuration and Fixtures

This module provides shared fixtures and helpers for all tests.
"""

import threading
import time
from typing import Callable, Generator

import pytest

from ttl_cache.cache.store import CacheStore
from ttl_cache.future import Future


# ============================================================================
# Future Helpers
# ============================================================================

def wait_for(future: Future, timeout: float = 5.0) -> Future:
    """Block until ``future`` is complete and return it."""
    done = threading.Event()
    future.on_complete(lambda _: done.set())
    if not done.wait(timeout):
        raise TimeoutError(f"{future!r} did not complete within {timeout}s")
    return future


def result_of(future: Future, timeout: float = 5.0):
    """Block until ``future`` is complete; return its value or raise its cause."""
    wait_for(future, timeout)
    if future.failed():
        raise future.cause()
    return future.result()


def wait_until(condition: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll ``condition`` until it holds."""
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise TimeoutError("condition not met in time")
        time.sleep(0.005)


def drain(cache: CacheStore) -> None:
    """Block until everything queued on the cache so far has run."""
    result_of(cache.get_keys_count())


def wait_for_sweep(cache: CacheStore) -> None:
    """Block until a full eviction sweep has started and finished."""
    runs = cache._sweep.runs
    # A sweep already in flight may have read the clock before the caller
    # changed it, so wait for the one after it
    wait_until(lambda: cache._sweep.runs >= runs + 2)


# ============================================================================
# Clock Fixtures
# ============================================================================

class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Cache Fixtures
# ============================================================================

@pytest.fixture
def cache(clock: FakeClock) -> Generator[CacheStore, None, None]:
    """A cache driven by the fake clock, sweeping every 10ms."""
    store = CacheStore(eviction_period=0.01, clock=clock, name="test-cache")
    yield store
    store.shut_down_now()
    store.shut_down_await(timeout=5)


@pytest.fixture
def quiet_cache(clock: FakeClock) -> Generator[CacheStore, None, None]:
    """A cache whose only sweep has already run."""
    store = CacheStore(eviction_period=3600, clock=clock, name="test-quiet-cache")
    wait_until(lambda: store._sweep.runs >= 1)
    yield store
    store.shut_down_now()
    store.shut_down_await(timeout=5)


@pytest.fixture
def real_cache() -> Generator[CacheStore, None, None]:
    """A cache on the real clock, sweeping every 100ms."""
    store = CacheStore(eviction_period=0.1, name="test-real-cache")
    yield store
    store.shut_down_now()
    store.shut_down_await(timeout=5)


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
