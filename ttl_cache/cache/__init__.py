"""Cache module for TTL-Cache."""

from .entry import Entry, TimeUnit
from .eviction import ExpirySweep
from .store import CacheStore, LifecycleState, get_default, new_instance
from .worker import PeriodicScheduler, SerialWorker, Unit

__all__ = [
    "CacheStore",
    "Entry",
    "ExpirySweep",
    "LifecycleState",
    "PeriodicScheduler",
    "SerialWorker",
    "TimeUnit",
    "Unit",
    "get_default",
    "new_instance",
]
