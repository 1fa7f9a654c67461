"""
Cache Store Module

This module implements the cache engine: an in-memory key-value store with
an asynchronous API, per-entry TTL and a periodic eviction sweep.

Every operation is queued on a single worker thread and returns a Future
right away. The worker runs operations one at a time in arrival order, and
the eviction sweep is queued on the same worker, so reads, writes and
evictions never overlap.

Failures are never raised at the call site; they arrive on the Future:
- NotFoundError: key absent, nothing matched, or store empty
- TypeMismatchError: value is not of the requested type
- RejectedSubmissionError: engine shut down, or queue full
- InvalidArgumentError: bad arguments
"""

import logging
import re
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..config.settings import settings
from ..errors import (
    InvalidArgumentError,
    NotFoundError,
    RejectedSubmissionError,
    TypeMismatchError,
)
from ..future import Future, Promise
from .entry import Entry, TimeUnit
from .eviction import ExpirySweep
from .worker import PeriodicScheduler, SerialWorker, Unit

logger = logging.getLogger(__name__)

KeyPattern = Union[str, re.Pattern[str]]
TypeSpec = Union[type, Tuple[type, ...]]


class LifecycleState(Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


def _type_name(value_type: TypeSpec) -> str:
    if isinstance(value_type, tuple):
        return " | ".join(t.__name__ for t in value_type)
    return value_type.__name__


def _is_type_spec(value_type: Any) -> bool:
    if isinstance(value_type, tuple):
        return bool(value_type) and all(isinstance(t, type) for t in value_type)
    return isinstance(value_type, type)


class CacheStore:
    """
    Asynchronous in-memory cache with TTL eviction.

    Usage:
        cache = CacheStore()
        cache.add("user:1", {"name": "Ada"}, ttl=30)
        cache.get("user:1", dict).on_success(print)
        cache.shut_down_await()

    Or from asyncio code:
        value = await cache.get("user:1")

    Completion handlers run on the worker thread. A handler that blocks
    stalls every operation queued after it, so keep handlers short or hand
    the work off to another thread.

    Attributes:
        name: Prefix for thread names and log lines
        eviction_period: Seconds between eviction sweeps
        default_unit: TimeUnit used by add() when no unit is given
        default_ttl: TTL used by add() when no ttl is given
        shutdown_timeout: Seconds shut_down_await() waits by default
    """

    def __init__(
            self,
            eviction_period: Optional[float] = None,
            default_unit: Optional[TimeUnit] = None,
            default_ttl: Optional[int] = None,
            shutdown_timeout: Optional[float] = None,
            max_pending: Optional[int] = None,
            clock: Optional[Callable[[], float]] = None,
            name: str = "ttl-cache",
    ):
        """
        Initialize the engine and start its worker and eviction timer.

        Args:
            eviction_period: Seconds between sweeps (default from settings)
            default_unit: Unit for add() without a unit (default from settings)
            default_ttl: TTL for add() without a ttl, 0 for none (default from settings)
            shutdown_timeout: Default wait of shut_down_await() in seconds
            max_pending: Queue capacity, 0 for unbounded (default from settings)
            clock: Callable returning the current time in seconds
                   (default time.monotonic)
            name: Prefix for thread names

        Raises:
            InvalidArgumentError: If a setting is out of range
        """
        self.name = name
        self.eviction_period = (
            eviction_period if eviction_period is not None else settings.EVICTION_PERIOD
        )
        if default_unit is None:
            try:
                default_unit = TimeUnit.parse(settings.DEFAULT_UNIT)
            except ValueError as e:
                raise InvalidArgumentError(str(e)) from e
        self.default_unit = default_unit
        self.default_ttl = default_ttl if default_ttl is not None else settings.DEFAULT_TTL
        self.shutdown_timeout = (
            shutdown_timeout if shutdown_timeout is not None else settings.SHUTDOWN_TIMEOUT
        )
        max_pending = max_pending if max_pending is not None else settings.MAX_PENDING

        if not isinstance(self.default_unit, TimeUnit):
            raise InvalidArgumentError(f"default_unit must be a TimeUnit, got {self.default_unit!r}")
        if isinstance(self.default_ttl, bool) or not isinstance(self.default_ttl, int):
            raise InvalidArgumentError(f"default_ttl must be an integer, got {self.default_ttl!r}")
        if self.eviction_period <= 0:
            raise InvalidArgumentError("eviction_period must be positive")
        if self.shutdown_timeout <= 0:
            raise InvalidArgumentError("shutdown_timeout must be positive")
        if max_pending < 0:
            raise InvalidArgumentError("max_pending must be zero or positive")

        self._clock = clock if clock is not None else time.monotonic

        # Only touched from the worker thread
        self._entries: Dict[str, Entry] = {}
        self._sweep = ExpirySweep(self._entries, self._clock)

        self._worker = SerialWorker(name=f"{name}-worker", max_pending=max_pending)
        self._scheduler = PeriodicScheduler(
            self.eviction_period,
            self._schedule_sweep,
            name=f"{name}-eviction",
        )
        self._scheduler.start()

        logger.info(
            "%s started (eviction every %ss, max pending %s)",
            name, self.eviction_period, max_pending or "unbounded",
        )

    # ========================================================================
    # Submission
    # ========================================================================

    def _submit(self, name: str, fn: Callable[[], Any]) -> Future:
        promise = Promise.promise()
        try:
            self._worker.submit(Unit(name, fn, promise))
        except RejectedSubmissionError as e:
            logger.warning("%s", e)
            promise.fail(e)
        return promise.future()

    @staticmethod
    def _invalid(message: str) -> Future:
        return Future.failed_future(InvalidArgumentError(message))

    def _schedule_sweep(self) -> None:
        try:
            self._worker.submit(Unit("evict-expired", self._sweep.run))
        except RejectedSubmissionError as e:
            logger.debug("Eviction sweep skipped: %s", e)

    def _require_entries(self) -> None:
        if not self._entries:
            raise NotFoundError("cache storage is empty")

    # ========================================================================
    # Writes
    # ========================================================================

    def add(
            self,
            key: str,
            value: Any,
            ttl: Optional[int] = None,
            unit: Optional[TimeUnit] = None,
    ) -> Future:
        """
        Insert or replace the entry for ``key``.

        Re-adding a key replaces the value and the TTL wholesale.

        Args:
            key: The key to store
            value: Any value
            ttl: Lifetime in ``unit``; 0 or less means the entry never expires
                 (default: the engine's default_ttl)
            unit: Unit of ``ttl`` (default: the engine's default_unit)

        Returns:
            Future resolving to True
        """
        if not isinstance(key, str):
            return self._invalid(f"key must be a string, got {type(key).__name__}")
        ttl = ttl if ttl is not None else self.default_ttl
        if isinstance(ttl, bool) or not isinstance(ttl, int):
            return self._invalid(f"ttl must be an integer, got {ttl!r}")
        unit = unit if unit is not None else self.default_unit
        if not isinstance(unit, TimeUnit):
            return self._invalid(f"unit must be a TimeUnit, got {unit!r}")

        def _add() -> bool:
            self._entries[key] = Entry(key, value, self._clock(), ttl, unit)
            return True

        return self._submit("add", _add)

    # ========================================================================
    # Reads
    # ========================================================================

    def get(self, key: str, value_type: Optional[TypeSpec] = None) -> Future:
        """
        Look up the value for ``key`` and restart its TTL.

        Args:
            key: The key to look up
            value_type: If given, the value must be an instance of it

        Returns:
            Future resolving to the value; fails with NotFoundError or
            TypeMismatchError
        """
        if not isinstance(key, str):
            return self._invalid(f"key must be a string, got {type(key).__name__}")
        if value_type is not None and not _is_type_spec(value_type):
            return self._invalid(f"value_type must be a type, got {value_type!r}")

        def _get() -> Any:
            self._require_entries()
            entry = self._entries.get(key)
            if entry is None:
                raise NotFoundError(f"Could not find any value for {key}")
            if value_type is not None and not entry.is_instance(value_type):
                raise TypeMismatchError(
                    f"Value for {key} is {entry.value_type.__name__}, not {_type_name(value_type)}"
                )
            entry.touch(self._clock())
            return entry.value

        return self._submit("get", _get)

    def find(
            self,
            predicate: Callable[[Any], bool],
            value_type: Optional[TypeSpec] = None,
    ) -> Future:
        """
        Return the first value that satisfies ``predicate``.

        Entries whose value is not of ``value_type`` are skipped, as are
        entries for which the predicate raises. The matching entry's TTL is
        restarted.

        Returns:
            Future resolving to the value; fails with NotFoundError if
            nothing matches
        """
        if not callable(predicate):
            return self._invalid("predicate must be callable")
        if value_type is not None and not _is_type_spec(value_type):
            return self._invalid(f"value_type must be a type, got {value_type!r}")

        def _find() -> Any:
            self._require_entries()
            for entry in self._entries.values():
                if value_type is not None and not entry.is_instance(value_type):
                    continue
                try:
                    matched = predicate(entry.value)
                except Exception:
                    logger.debug("Predicate raised on %r, skipping", entry.key, exc_info=True)
                    continue
                if matched:
                    entry.touch(self._clock())
                    return entry.value
            raise NotFoundError("Could not find any value for the given predicate")

        return self._submit("find", _find)

    def get_many(self, *keys: str) -> Future:
        """
        Look up several keys at once, restarting the TTL of each hit.

        Returns:
            Future resolving to a dict of the keys that were found;
            fails with NotFoundError only when the store is empty
        """
        if not all(isinstance(key, str) for key in keys):
            return self._invalid("keys must be strings")

        def _get_many() -> Dict[str, Any]:
            self._require_entries()
            now = self._clock()
            found = {}
            for key in keys:
                entry = self._entries.get(key)
                if entry is not None:
                    entry.touch(now)
                    found[key] = entry.value
            return found

        return self._submit("get_many", _get_many)

    def get_keys(self, *patterns: KeyPattern) -> Future:
        """
        List the keys matching at least one of ``patterns``.

        Patterns are regular expressions searched anywhere in the key.
        With no patterns the result is an empty list.
        """
        if not patterns:
            return Future.succeeded_future([])
        try:
            compiled = self._compile_all(patterns)
        except InvalidArgumentError as e:
            return Future.failed_future(e)

        def _get_keys() -> List[str]:
            return [
                key for key in self._entries
                if any(p.search(key) for p in compiled)
            ]

        return self._submit("get_keys", _get_keys)

    def get_all_keys(self) -> Future:
        """Future resolving to a list of every key."""
        return self._submit("get_all_keys", lambda: list(self._entries))

    def get_keys_count(self) -> Future:
        """Future resolving to the number of entries."""
        return self._submit("get_keys_count", lambda: len(self._entries))

    def have(self, key: str) -> Future:
        """
        Check whether ``key`` is present, restarting its TTL if it is.

        Returns:
            Future resolving to True/False; fails with NotFoundError when
            the store is empty
        """
        if not isinstance(key, str):
            return self._invalid(f"key must be a string, got {type(key).__name__}")

        def _have() -> bool:
            self._require_entries()
            entry = self._entries.get(key)
            if entry is None:
                return False
            entry.touch(self._clock())
            return True

        return self._submit("have", _have)

    # ========================================================================
    # Evictions
    # ========================================================================

    def evict(self, *keys: str) -> Future:
        """Remove the given keys. Future resolves to the number removed."""
        if not all(isinstance(key, str) for key in keys):
            return self._invalid("keys must be strings")

        def _evict() -> int:
            count = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    count += 1
            return count

        return self._submit("evict", _evict)

    def evict_all_except(self, *keys: str) -> Future:
        """Remove every key not listed. Future resolves to the number removed."""
        if not all(isinstance(key, str) for key in keys):
            return self._invalid("keys must be strings")
        keep = frozenset(keys)

        def _evict_all_except() -> int:
            doomed = [key for key in self._entries if key not in keep]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

        return self._submit("evict_all_except", _evict_all_except)

    def evict_matching(self, pattern: KeyPattern) -> Future:
        """Remove every key matching ``pattern``. Future resolves to the number removed."""
        try:
            compiled = self._compile(pattern)
        except InvalidArgumentError as e:
            return Future.failed_future(e)

        def _evict_matching() -> int:
            doomed = [key for key in self._entries if compiled.search(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

        return self._submit("evict_matching", _evict_matching)

    @staticmethod
    def _compile(pattern: KeyPattern) -> re.Pattern[str]:
        if isinstance(pattern, re.Pattern):
            return pattern
        if not isinstance(pattern, str):
            raise InvalidArgumentError(f"pattern must be a string or re.Pattern, got {pattern!r}")
        try:
            return re.compile(pattern)
        except re.error as e:
            raise InvalidArgumentError(f"invalid pattern {pattern!r}: {e}") from e

    @classmethod
    def _compile_all(cls, patterns: Iterable[KeyPattern]) -> List[re.Pattern[str]]:
        return [cls._compile(p) for p in patterns]

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @property
    def state(self) -> LifecycleState:
        if self._worker.is_accepting():
            return LifecycleState.RUNNING
        if self._worker.is_terminated() and self._scheduler.is_terminated():
            return LifecycleState.TERMINATED
        return LifecycleState.SHUTTING_DOWN

    def is_running(self) -> bool:
        return self.state is LifecycleState.RUNNING

    def is_terminated(self) -> bool:
        return self.state is LifecycleState.TERMINATED

    def shut_down(self) -> None:
        """
        Stop the eviction timer and stop accepting operations.

        Operations already queued still run and complete their futures.
        Calling it again has no effect.
        """
        if not self._worker.is_accepting():
            return
        self._scheduler.cancel()
        self._worker.shutdown()
        logger.info("%s shutting down, %d operations left to drain", self.name, self._worker.pending())

    def shut_down_await(self, timeout: Optional[float] = None, unit: TimeUnit = TimeUnit.SECONDS) -> bool:
        """
        Shut down and wait for queued operations to drain.

        Args:
            timeout: Maximum wait in ``unit`` (default: shutdown_timeout seconds)
            unit: Unit of ``timeout``

        Returns:
            True if the engine terminated within the timeout

        Raises:
            InvalidArgumentError: If timeout is not positive
        """
        if timeout is None:
            seconds = self.shutdown_timeout
        elif timeout <= 0:
            raise InvalidArgumentError("timeout must be positive")
        else:
            seconds = unit.to_seconds(timeout)

        self.shut_down()

        deadline = time.monotonic() + seconds
        self._scheduler.await_termination(seconds)
        self._worker.await_termination(max(0.0, deadline - time.monotonic()))

        terminated = self.is_terminated()
        if terminated:
            logger.info("%s terminated", self.name)
        else:
            logger.warning("%s did not terminate within %.3fs", self.name, seconds)
        return terminated

    def shut_down_now(self) -> List[Unit]:
        """
        Stop immediately, dropping every operation not yet started.

        The futures of dropped operations fail with RejectedSubmissionError.
        An operation already running finishes normally.

        Returns:
            The dropped units
        """
        self._scheduler.cancel()
        abandoned = self._worker.shutdown_now()
        for unit in abandoned:
            unit.abandon("abandoned by shut_down_now")
        if abandoned:
            logger.warning("%s shut down now, abandoned %d operations", self.name, len(abandoned))
        else:
            logger.info("%s shut down now", self.name)
        return abandoned

    def __enter__(self) -> "CacheStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shut_down_await()

    def __repr__(self) -> str:
        return f"CacheStore(name={self.name!r}, state={self.state.value})"


# ============================================================================
# Instances
# ============================================================================

_default: Optional[CacheStore] = None
_default_lock = threading.Lock()


def get_default() -> CacheStore:
    """
    Return the process-wide shared cache.

    The shared instance is created on first use with the default settings.
    If it has been shut down, the next call creates a fresh one.
    """
    global _default
    with _default_lock:
        if _default is None or not _default.is_running():
            _default = CacheStore(name="ttl-cache-default")
        return _default


def new_instance(**options: Any) -> CacheStore:
    """Create an independent cache; ``options`` are passed to CacheStore."""
    return CacheStore(**options)
