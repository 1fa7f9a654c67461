"""Result channel module for TTL-Cache."""

from .promise import AsyncResult, Future, Promise

__all__ = ["AsyncResult", "Future", "Promise"]
