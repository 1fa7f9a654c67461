"""
Promise / Future Module

This module implements the single-assignment result channel that every
cache operation returns through.

A Promise is the write side, held by the producer (the cache worker).
A Future is the read side, handed to callers. A Future starts pending and
moves to succeeded or failed exactly once; later completion attempts are
ignored.

Usage:
    promise = Promise.promise()
    promise.future().on_complete(lambda ar: print(ar.succeeded()))
    promise.complete(42)   # handler runs here, on this thread

Futures are also awaitable from asyncio code:
    value = await cache.get("key")
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

from ..errors import CacheError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

Handler = Callable[["AsyncResult[T]"], None]


def _as_exception(error: Union[BaseException, str, None]) -> BaseException:
    if isinstance(error, BaseException):
        return error
    return CacheError(error if error is not None else "failure")


class AsyncResult(Generic[T]):
    """
    The outcome of an asynchronous operation, as seen by a handler.

    Exactly one of ``result()`` or ``cause()`` is meaningful, depending on
    ``succeeded()`` / ``failed()``.
    """

    def succeeded(self) -> bool:
        raise NotImplementedError

    def failed(self) -> bool:
        raise NotImplementedError

    def result(self) -> Optional[T]:
        raise NotImplementedError

    def cause(self) -> Optional[BaseException]:
        raise NotImplementedError


class Future(AsyncResult[T]):
    """
    Read side of a result channel.

    Handlers registered with ``on_complete`` are invoked exactly once, in
    registration order:
    - immediately on the registering thread if the future is already done
    - otherwise on the thread that completes the future

    For futures returned by the cache, the completing thread is the cache
    worker, so a slow handler delays every operation queued behind it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._done = False
        self._value: Optional[T] = None
        self._cause: Optional[BaseException] = None
        self._handlers: Optional[List[Handler]] = []

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def succeeded_future(value: Any = None) -> "Future":
        """Create a future that has already succeeded."""
        future = Future()
        future._settle(value, None)
        return future

    @staticmethod
    def failed_future(error: Union[BaseException, str]) -> "Future":
        """Create a future that has already failed."""
        future = Future()
        future._settle(None, _as_exception(error))
        return future

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_complete(self) -> bool:
        return self._done

    def succeeded(self) -> bool:
        return self._done and self._cause is None

    def failed(self) -> bool:
        return self._done and self._cause is not None

    def result(self) -> Optional[T]:
        """The value if the future succeeded, None otherwise."""
        return self._value if self.succeeded() else None

    def cause(self) -> Optional[BaseException]:
        """The failure if the future failed, None otherwise."""
        return self._cause if self._done else None

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _settle(self, value: Optional[T], cause: Optional[BaseException]) -> bool:
        with self._lock:
            if self._done:
                return False
            self._value = value
            self._cause = cause
            self._done = True
            handlers, self._handlers = self._handlers, None

        for handler in handlers:
            self._emit(handler)
        return True

    def _emit(self, handler: Handler) -> None:
        try:
            handler(self)
        except BaseException:
            logger.exception("Completion handler %r raised", handler)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_complete(self, handler: Handler) -> "Future[T]":
        """Register a handler called with this future once it is done."""
        with self._lock:
            if not self._done:
                self._handlers.append(handler)
                return self
        self._emit(handler)
        return self

    def on_success(self, handler: Callable[[T], None]) -> "Future[T]":
        def _on_success(ar: AsyncResult[T]) -> None:
            if ar.succeeded():
                handler(ar.result())

        return self.on_complete(_on_success)

    def on_failure(self, handler: Callable[[BaseException], None]) -> "Future[T]":
        def _on_failure(ar: AsyncResult[T]) -> None:
            if ar.failed():
                handler(ar.cause())

        return self.on_complete(_on_failure)

    # ------------------------------------------------------------------
    # Transformations
    # ------------------------------------------------------------------

    def map(self, mapper: Callable[[T], U]) -> "Future[U]":
        """Apply ``mapper`` to a successful value; failures pass through."""
        promise: Promise[U] = Promise()

        def _map(ar: AsyncResult[T]) -> None:
            if ar.failed():
                promise.fail(ar.cause())
                return
            try:
                mapped = mapper(ar.result())
            except Exception as e:
                promise.fail(e)
                return
            promise.complete(mapped)

        self.on_complete(_map)
        return promise.future()

    def compose(self, next_step: Callable[[T], "Future[U]"]) -> "Future[U]":
        """Chain another asynchronous step after a successful value."""
        promise: Promise[U] = Promise()

        def _compose(ar: AsyncResult[T]) -> None:
            if ar.failed():
                promise.fail(ar.cause())
                return
            try:
                following = next_step(ar.result())
            except Exception as e:
                promise.fail(e)
                return
            following.on_complete(promise.handle)

        self.on_complete(_compose)
        return promise.future()

    def recover(self, fallback: Callable[[BaseException], "Future[T]"]) -> "Future[T]":
        """Replace a failure by the future returned from ``fallback``."""
        promise: Promise[T] = Promise()

        def _recover(ar: AsyncResult[T]) -> None:
            if ar.succeeded():
                promise.complete(ar.result())
                return
            try:
                following = fallback(ar.cause())
            except Exception as e:
                promise.fail(e)
                return
            following.on_complete(promise.handle)

        self.on_complete(_recover)
        return promise.future()

    def otherwise(self, value: T) -> "Future[T]":
        """Replace a failure by a plain value."""
        return self.recover(lambda _: Future.succeeded_future(value))

    # ------------------------------------------------------------------
    # asyncio bridge
    # ------------------------------------------------------------------

    def __await__(self):
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()

        def _transfer(ar: AsyncResult[T]) -> None:
            if waiter.done():
                return
            if ar.succeeded():
                waiter.set_result(ar.result())
            else:
                waiter.set_exception(ar.cause())

        self.on_complete(lambda ar: loop.call_soon_threadsafe(_transfer, ar))
        return (yield from waiter)

    def __repr__(self) -> str:
        if not self._done:
            return "Future{pending}"
        if self._cause is not None:
            return f"Future{{cause={self._cause!r}}}"
        return f"Future{{result={self._value!r}}}"


class Promise(Generic[T]):
    """
    Write side of a result channel.

    ``complete`` and ``fail`` return True when they moved the future to a
    terminal state and False when it was already done; they never raise.
    """

    def __init__(self):
        self._future: Future[T] = Future()

    @staticmethod
    def promise() -> "Promise":
        """Create a new pending promise."""
        return Promise()

    def future(self) -> Future[T]:
        return self._future

    def complete(self, value: Optional[T] = None) -> bool:
        return self._future._settle(value, None)

    def fail(self, error: Union[BaseException, str, None] = None) -> bool:
        return self._future._settle(None, _as_exception(error))

    try_complete = complete
    try_fail = fail

    def handle(self, ar: AsyncResult[T]) -> None:
        """Copy the outcome of ``ar`` into this promise."""
        if ar.succeeded():
            self.complete(ar.result())
        else:
            self.fail(ar.cause())

    def __repr__(self) -> str:
        return f"Promise{{{self._future!r}}}"
