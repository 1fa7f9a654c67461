"""
TTL Eviction Module

This module implements the expiry sweep that removes entries whose TTL has
run out.

Expiry rule:
- Entries with ttl <= 0 never expire
- Otherwise an entry expires once created_at + ttl (in seconds) <= now
- Reads refresh created_at, so the TTL is a sliding window

The sweep is run periodically on the cache worker. It has no caller to
report to, so it never raises: a failure on one entry is logged and the
sweep moves on to the next one.
"""

import logging
from typing import Callable, Dict, List

from .entry import Entry

logger = logging.getLogger(__name__)


class ExpirySweep:
    """
    Removes expired entries from an entry map.

    Must only be called from the thread that owns ``entries``.

    Usage:
        sweep = ExpirySweep(entries, clock=time.monotonic)
        removed = sweep.run()

    Attributes:
        runs: Number of completed sweeps
        removed: Total number of entries removed so far
    """

    def __init__(self, entries: Dict[str, Entry], clock: Callable[[], float]):
        self._entries = entries
        self._clock = clock
        self.runs = 0
        self.removed = 0

    def expired_keys(self, now: float) -> List[str]:
        """Keys of all entries expired at ``now``."""
        expired = []
        for key, entry in self._entries.items():
            try:
                if entry.is_expired(now):
                    expired.append(key)
            except Exception:
                logger.exception("Could not check expiry of %r, skipping", key)
        return expired

    def sweep(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        if not self._entries:
            return 0

        expired = self.expired_keys(self._clock())
        for key in expired:
            self._entries.pop(key, None)

        if expired:
            logger.debug("Evicted %d expired entries", len(expired))
        self.removed += len(expired)
        return len(expired)

    def run(self) -> int:
        """Run one sweep, logging instead of raising on failure."""
        try:
            return self.sweep()
        except Exception:
            logger.exception("Eviction sweep failed")
            return 0
        finally:
            self.runs += 1
