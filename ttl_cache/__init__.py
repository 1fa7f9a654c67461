"""
TTL-Cache: Asynchronous In-Memory Cache

An in-memory key-value cache whose operations are serialized on a single
worker thread and return futures, with sliding per-entry TTLs enforced by a
periodic eviction sweep.
"""

from .cache import CacheStore, LifecycleState, TimeUnit, get_default, new_instance
from .errors import (
    CacheError,
    InvalidArgumentError,
    NotFoundError,
    RejectedSubmissionError,
    TypeMismatchError,
)
from .future import AsyncResult, Future, Promise

__version__ = "1.1.0"

__all__ = [
    "AsyncResult",
    "CacheError",
    "CacheStore",
    "Future",
    "InvalidArgumentError",
    "LifecycleState",
    "NotFoundError",
    "Promise",
    "RejectedSubmissionError",
    "TimeUnit",
    "TypeMismatchError",
    "get_default",
    "new_instance",
]
