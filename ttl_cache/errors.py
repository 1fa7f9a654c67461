"""
Error Types

Every failure produced by the cache is delivered through the Future returned
by the operation, never raised at the call site. The exception classes below
are the possible causes found on a failed Future.

The concrete classes also inherit from the closest builtin so callers can
catch them the usual way (``except KeyError`` for a missing key, etc.).
"""


class CacheError(Exception):
    """Base class for all cache failures."""


class NotFoundError(CacheError, KeyError):
    """Key absent, predicate unmatched, or store empty."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep it readable
        return Exception.__str__(self)


class TypeMismatchError(CacheError, TypeError):
    """Stored value is not of the type the caller asked for."""


class RejectedSubmissionError(CacheError, RuntimeError):
    """Work submitted after shutdown began, or the queue is full."""


class InvalidArgumentError(CacheError, ValueError):
    """An argument failed validation."""
