"""
Tests for the cache lifecycle

These tests verify:
- shut_down() drains queued work before the cache terminates
- Operations after shutdown fail with RejectedSubmissionError
- shut_down_await() timeout validation
- shut_down_now() abandons queued work
- The shared default instance and independent instances
- Settings defaults

Run with: python -m pytest tests/test_lifecycle.py -v
"""

import threading

import pytest

from ttl_cache.cache import store
from ttl_cache.cache.entry import TimeUnit
from ttl_cache.cache.store import CacheStore, LifecycleState, get_default, new_instance
from ttl_cache.config.settings import Settings
from ttl_cache.errors import InvalidArgumentError, RejectedSubmissionError
from tests.conftest import result_of, wait_until


def block_worker(cache: CacheStore) -> threading.Event:
    """Occupy the worker until the returned event is set."""
    gate = threading.Event()
    started = threading.Event()

    def _block():
        started.set()
        gate.wait(5)

    cache._submit("block", _block)
    started.wait(5)
    return gate


@pytest.fixture
def default_cleanup():
    """Shut down the default instance a test leaves running."""
    yield
    leftover = store._default
    if leftover is not None:
        leftover.shut_down_now()
        leftover.shut_down_await(timeout=5)
        assert leftover.is_terminated() is True


class TestState:
    """Test lifecycle state reporting."""

    def test_new_cache_is_running(self, cache: CacheStore):
        assert cache.state is LifecycleState.RUNNING
        assert cache.is_running() is True
        assert cache.is_terminated() is False

    def test_shut_down_terminates(self, cache: CacheStore):
        cache.shut_down()
        assert cache.is_running() is False

        assert cache.shut_down_await(timeout=5) is True
        assert cache.state is LifecycleState.TERMINATED

    def test_shutting_down_while_draining(self, cache: CacheStore):
        gate = block_worker(cache)
        cache.shut_down()

        assert cache.state is LifecycleState.SHUTTING_DOWN
        gate.set()
        assert cache.shut_down_await(timeout=5) is True

    def test_shut_down_twice(self, cache: CacheStore):
        cache.shut_down()
        cache.shut_down()
        assert cache.shut_down_await(timeout=5) is True

    def test_repr(self, cache: CacheStore):
        assert repr(cache) == "CacheStore(name='test-cache', state=running)"


class TestShutDown:
    """Test graceful shutdown."""

    def test_shutdown_drains(self, cache: CacheStore):
        future = cache.add("k", "v")
        cache.shut_down()

        assert result_of(future) is True
        assert cache.shut_down_await(timeout=5) is True

    def test_shutdown_drains_blocked_queue(self, cache: CacheStore):
        gate = block_worker(cache)
        futures = [cache.add(f"k{i}", i) for i in range(10)]
        count = cache.get_keys_count()

        cache.shut_down()
        gate.set()

        assert cache.shut_down_await(timeout=5) is True
        assert all(f.succeeded() for f in futures)
        assert count.result() == 10

    def test_operations_rejected_after_shutdown(self, cache: CacheStore):
        cache.shut_down()

        for future in (
                cache.add("k", "v"),
                cache.get("k"),
                cache.find(lambda v: True),
                cache.get_many("k"),
                cache.get_keys("k"),
                cache.get_all_keys(),
                cache.get_keys_count(),
                cache.have("k"),
                cache.evict("k"),
                cache.evict_all_except("k"),
                cache.evict_matching("k"),
        ):
            assert future.is_complete() is True
            assert isinstance(future.cause(), RejectedSubmissionError)

    def test_rejection_never_raises_at_call_site(self, cache: CacheStore):
        cache.shut_down_await(timeout=5)
        future = cache.add("k", "v")
        assert future.failed() is True

    def test_await_invalid_timeout(self, cache: CacheStore):
        with pytest.raises(InvalidArgumentError):
            cache.shut_down_await(timeout=0)
        with pytest.raises(ValueError):
            cache.shut_down_await(timeout=-1)
        assert cache.is_running() is True

    def test_await_timeout_in_unit(self, cache: CacheStore):
        assert cache.shut_down_await(timeout=5000, unit=TimeUnit.MILLISECONDS) is True

    def test_await_times_out(self, cache: CacheStore):
        gate = block_worker(cache)
        try:
            assert cache.shut_down_await(timeout=50, unit=TimeUnit.MILLISECONDS) is False
            assert cache.state is LifecycleState.SHUTTING_DOWN
        finally:
            gate.set()
        assert cache.shut_down_await(timeout=5) is True

    def test_await_from_worker_does_not_deadlock(self, cache: CacheStore):
        future = cache._submit("shut-down", lambda: cache.shut_down_await(timeout=1))

        assert result_of(future) is False
        assert cache.shut_down_await(timeout=5) is True

    def test_context_manager(self, clock):
        with CacheStore(eviction_period=0.01, clock=clock) as cache:
            future = cache.add("k", "v")
        assert future.succeeded() is True
        assert cache.is_terminated() is True


class TestShutDownNow:
    """Test forceful shutdown."""

    def test_shut_down_now_abandons_queued(self, quiet_cache: CacheStore):
        cache = quiet_cache
        gate = block_worker(cache)
        futures = [cache.add(f"k{i}", i) for i in range(5)]

        abandoned = cache.shut_down_now()
        gate.set()

        assert len(abandoned) == 5
        for future in futures:
            assert isinstance(future.cause(), RejectedSubmissionError)
        assert cache.shut_down_await(timeout=5) is True

    def test_shut_down_now_idle(self, quiet_cache: CacheStore):
        cache = quiet_cache
        assert cache.shut_down_now() == []
        assert cache.shut_down_await(timeout=5) is True


class TestInstances:
    """Test the shared and independent instance accessors."""

    def test_default_is_shared(self, default_cleanup):
        assert get_default() is get_default()
        assert get_default().is_running() is True

    def test_default_replaced_after_shutdown(self, default_cleanup):
        first = get_default()
        first.shut_down_await(timeout=5)

        second = get_default()
        assert second is not first
        assert second.is_running() is True

    def test_new_instance_is_independent(self):
        a = new_instance(eviction_period=0.05, name="a")
        b = new_instance(eviction_period=0.05, name="b")
        try:
            result_of(a.add("k", "v"))
            assert result_of(b.get_keys_count()) == 0
        finally:
            a.shut_down_now()
            b.shut_down_now()

    def test_invalid_options(self):
        with pytest.raises(InvalidArgumentError):
            CacheStore(eviction_period=0)
        with pytest.raises(InvalidArgumentError):
            CacheStore(shutdown_timeout=-1)
        with pytest.raises(InvalidArgumentError):
            CacheStore(max_pending=-1)
        with pytest.raises(InvalidArgumentError):
            CacheStore(default_ttl=1.5)
        with pytest.raises(InvalidArgumentError):
            CacheStore(default_unit="SECONDS")


class TestBoundedQueue:
    """Test the optional queue capacity."""

    def test_full_queue_rejects(self, clock):
        cache = CacheStore(eviction_period=3600, clock=clock, max_pending=3)
        wait_until(lambda: cache._sweep.runs >= 1)
        gate = block_worker(cache)
        try:
            futures = [cache.add(f"k{i}", i) for i in range(5)]
            rejected = [f for f in futures if f.failed()]

            assert len(rejected) >= 2
            assert all(isinstance(f.cause(), RejectedSubmissionError) for f in rejected)
        finally:
            gate.set()
            cache.shut_down_await(timeout=5)


class TestSettings:
    """Test configuration defaults."""

    def test_defaults(self):
        s = Settings()
        assert s.EVICTION_PERIOD > 0
        assert isinstance(s.DEFAULT_TTL, int)
        assert TimeUnit.parse(s.DEFAULT_UNIT) is TimeUnit.SECONDS
        assert s.SHUTDOWN_TIMEOUT > 0
        assert s.MAX_PENDING >= 0

    def test_cache_uses_settings(self, clock):
        with CacheStore(clock=clock) as cache:
            assert cache.default_unit is TimeUnit.parse(Settings().DEFAULT_UNIT)
            assert cache.shutdown_timeout == Settings().SHUTDOWN_TIMEOUT
            assert cache.default_ttl == Settings().DEFAULT_TTL

    def test_unknown_default_unit_setting(self, monkeypatch):
        monkeypatch.setattr(store.settings, "DEFAULT_UNIT", "FORTNIGHTS")

        with pytest.raises(InvalidArgumentError, match="FORTNIGHTS"):
            CacheStore()

    def test_default_ttl_setting(self, monkeypatch, clock):
        monkeypatch.setattr(store.settings, "DEFAULT_TTL", 7)

        with CacheStore(clock=clock) as cache:
            assert cache.default_ttl == 7
