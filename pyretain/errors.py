from __future__ import annotations

from typing import Optional


class PyretainError(Exception):
    """Base exception for pyretain."""


class ConfigError(PyretainError):
    pass


class TargetResolutionError(PyretainError):
    pass


class ScanFailure(PyretainError):
    """
    Raised when a reachability scan cannot be completed.

    Two situations end a scan this way:

    - reading a slot (or iterating a container) failed after the access check
      succeeded, which points at an inconsistent host environment;
    - the caller-supplied predicate raised.

    The original exception is always chained as ``__cause__``.

    Parameters
    ----------
    message : str
        Human-readable description.
    field : str | None
        Name of the slot being read when the failure happened, if any.
    holder_type : type | None
        Type of the object owning that slot (or being iterated).
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        holder_type: Optional[type] = None,
    ) -> None:
        self.field: Optional[str] = field
        self.holder_type: Optional[type] = holder_type
        super().__init__(message)
