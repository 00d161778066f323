"""Exception taxonomy shared by every catchmap component."""

from __future__ import annotations

__all__ = [
    "CatchmentError",
    "ValidationError",
    "CapacityError",
    "NotFoundError",
    "PersistenceError",
]


class CatchmentError(Exception):
    """Base class; every error raised by catchmap is recoverable at the UI boundary."""


class ValidationError(CatchmentError, ValueError):
    """Bad radius, bad coordinates, unknown unit or a missing selection."""


class CapacityError(CatchmentError):
    """Raised when adding a favorite would exceed the configured limit."""

    def __init__(self, limit: int):
        super().__init__(f"Maximum of {limit} favorite schools allowed")
        self.limit = limit


class NotFoundError(CatchmentError, KeyError):
    """Operation on an unknown school, zone or pin id."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class PersistenceError(CatchmentError):
    """The remote favorites store rejected the mutation or was unreachable."""

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
