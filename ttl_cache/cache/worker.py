"""
Serial Worker Module

This module provides the execution machinery behind the cache engine:

- Unit: one queued piece of work, bound to the Promise it completes
- SerialWorker: a FIFO queue drained by a single thread, so every unit runs
  to completion before the next one starts
- PeriodicScheduler: a timer thread that calls an action at a fixed period

The entry map is only ever touched by units running on the worker thread,
which is what lets the cache go without locks around it.
"""

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, List, Optional

from ..errors import CacheError, RejectedSubmissionError
from ..future import Promise

logger = logging.getLogger(__name__)


class Unit:
    """
    A unit of work for the SerialWorker.

    The return value of ``fn`` completes ``promise``; an exception fails it.
    Units without a promise (eviction sweeps) only log their failures.
    """

    __slots__ = ("name", "fn", "promise")

    def __init__(self, name: str, fn: Callable[[], Any], promise: Optional[Promise] = None):
        self.name = name
        self.fn = fn
        self.promise = promise

    def run(self) -> None:
        try:
            value = self.fn()
        except CacheError as e:
            if self.promise is None:
                logger.warning("Unit %s failed: %s", self.name, e)
            else:
                self.promise.fail(e)
        except BaseException as e:
            logger.exception("Unit %s raised an unexpected error", self.name)
            if self.promise is not None:
                self.promise.fail(e)
        else:
            if self.promise is not None:
                self.promise.complete(value)

    def abandon(self, reason: str) -> None:
        """Fail the unit's promise without running it."""
        if self.promise is not None:
            self.promise.fail(RejectedSubmissionError(f"{self.name}: {reason}"))

    def __repr__(self) -> str:
        return f"Unit({self.name})"


class SerialWorker:
    """
    Single-threaded FIFO executor.

    Units run strictly in submission order on one thread. ``submit`` never
    blocks: it raises RejectedSubmissionError once the worker is shut down
    or when ``max_pending`` units are already waiting.

    Attributes:
        name: Thread name, also used in log lines
        max_pending: Queue capacity; 0 means unbounded
    """

    def __init__(self, name: str = "ttl-cache-worker", max_pending: int = 0):
        if max_pending < 0:
            raise ValueError("max_pending must be zero or positive")
        self.name = name
        self.max_pending = max_pending

        self._queue: Deque[Unit] = deque()
        self._cond = threading.Condition()
        self._accepting = True

        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def submit(self, unit: Unit) -> None:
        """
        Append a unit to the queue.

        Raises:
            RejectedSubmissionError: If the worker is shut down or full
        """
        with self._cond:
            if not self._accepting:
                raise RejectedSubmissionError(f"{self.name} is shut down, rejected {unit.name}")
            if self.max_pending and len(self._queue) >= self.max_pending:
                raise RejectedSubmissionError(
                    f"{self.name} queue is full ({self.max_pending} pending), rejected {unit.name}"
                )
            self._queue.append(unit)
            self._cond.notify()

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._queue and self._accepting:
                    self._cond.wait()
                if not self._queue:
                    # Shut down and drained
                    break
                unit = self._queue.popleft()
            try:
                unit.run()
            except BaseException:
                # A completion handler raised past the promise
                logger.exception("Unit %s escaped its promise", unit.name)
        logger.debug("%s drained and stopped", self.name)

    def shutdown(self) -> None:
        """Stop accepting units; queued units still run."""
        with self._cond:
            self._accepting = False
            self._cond.notify_all()

    def shutdown_now(self) -> List[Unit]:
        """Stop accepting units and drop the queue, returning what was dropped."""
        with self._cond:
            self._accepting = False
            pending = list(self._queue)
            self._queue.clear()
            self._cond.notify_all()
        return pending

    def await_termination(self, timeout: Optional[float]) -> bool:
        """Wait up to ``timeout`` seconds for the thread to exit."""
        if not self.on_worker_thread():
            self._thread.join(timeout)
        return self.is_terminated()

    def on_worker_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def is_accepting(self) -> bool:
        return self._accepting

    def is_terminated(self) -> bool:
        return not self._accepting and not self._thread.is_alive()

    def pending(self) -> int:
        """Number of units waiting to run."""
        with self._cond:
            return len(self._queue)


class PeriodicScheduler:
    """
    Calls ``action`` every ``period`` seconds on a background thread.

    The first call happens after ``initial_delay``. An exception raised by
    the action is logged and the timer keeps going. ``cancel`` stops the
    timer; an action already running is allowed to finish.
    """

    def __init__(
            self,
            period: float,
            action: Callable[[], None],
            name: str = "ttl-cache-scheduler",
            initial_delay: float = 0.0,
    ):
        if period <= 0:
            raise ValueError("period must be positive")
        self.period = period
        self.name = name
        self._action = action
        self._initial_delay = initial_delay
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        delay = self._initial_delay
        while not self._stopped.wait(delay):
            try:
                self._action()
            except Exception:
                logger.exception("Scheduled action %s failed", self.name)
            delay = self.period

    def cancel(self) -> None:
        self._stopped.set()

    def is_cancelled(self) -> bool:
        return self._stopped.is_set()

    def await_termination(self, timeout: Optional[float]) -> bool:
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        return self.is_terminated()

    def is_terminated(self) -> bool:
        return self._stopped.is_set() and not self._thread.is_alive()
