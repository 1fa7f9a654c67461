"""
Cache Entry Module

An Entry is the record stored for each key: the value, its type tag, the
last access timestamp and the time-to-live.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TimeUnit(Enum):
    """Time granularity for TTLs and timeouts, expressed in seconds."""

    NANOSECONDS = 1e-9
    MICROSECONDS = 1e-6
    MILLISECONDS = 1e-3
    SECONDS = 1.0
    MINUTES = 60.0
    HOURS = 3600.0
    DAYS = 86400.0

    def to_seconds(self, duration: float) -> float:
        """Convert ``duration`` expressed in this unit to seconds."""
        return duration * self.value

    @classmethod
    def parse(cls, name: str) -> "TimeUnit":
        """Look up a unit by name, case-insensitive ('seconds', 'MINUTES')."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown time unit: {name!r}") from None


@dataclass
class Entry:
    """
    A single cached value.

    Attributes:
        key: The key the entry is stored under
        value: The cached payload
        created_at: Last access time in seconds, from the engine clock
        ttl: Lifetime in ``ttl_unit``; 0 or less means the entry never expires
        ttl_unit: Unit of ``ttl``
        value_type: Concrete type of ``value``, captured at insertion
    """

    key: str
    value: Any
    created_at: float
    ttl: int = 0
    ttl_unit: TimeUnit = TimeUnit.SECONDS
    value_type: type = field(init=False)

    def __post_init__(self):
        self.value_type = type(self.value)

    def expires(self) -> bool:
        return self.ttl > 0

    def expiry_time(self) -> float:
        """Timestamp at which the entry becomes eligible for eviction."""
        return self.created_at + self.ttl_unit.to_seconds(self.ttl)

    def is_expired(self, now: float) -> bool:
        return self.expires() and self.expiry_time() <= now

    def touch(self, now: float) -> None:
        """Restart the TTL clock. Never moves ``created_at`` backwards."""
        if now > self.created_at:
            self.created_at = now

    def is_instance(self, value_type: type) -> bool:
        return issubclass(self.value_type, value_type)

    def __str__(self) -> str:
        return f"{self.key}: {self.value}"
