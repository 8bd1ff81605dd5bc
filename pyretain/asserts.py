# pyretain/asserts.py
from __future__ import annotations

from typing import Any, Optional
import logging
import re

from .introspect import qualified_name
from .scanner import ReachabilityScanner, instance_of

__all__ = [
    "assert_instance_of_not_reachable",
    "assert_instance_of_reachable",
    "describe_object",
]

_log = logging.getLogger("pyretain.asserts")
_OPAQUE_REPR_RE = re.compile(r"^<[\w\.]+ object at 0x[0-9A-Fa-f]+>$")
_MAX_REPR = 200


def describe_object(obj: Any) -> str:
    """
    Short description of `obj` for failure messages: its repr when that is
    informative, otherwise ``instance of <module.Class>``. Never raises.
    """
    if obj is None:
        return "None"
    try:
        r = repr(obj)
    except Exception:
        r = ""
    if r and not _OPAQUE_REPR_RE.match(r):
        return r if len(r) <= _MAX_REPR else r[: _MAX_REPR - 3] + "..."
    return f"instance of {qualified_name(type(obj))}"


def _scanner(scanner: Optional[ReachabilityScanner]) -> ReachabilityScanner:
    return scanner if scanner is not None else ReachabilityScanner()


def assert_instance_of_not_reachable(
    start: Any, cls: type, *, scanner: Optional[ReachabilityScanner] = None
) -> None:
    """
    Fail if an instance of `cls` is strongly reachable from `start`.

    Typical use is a leak check in a test: after tearing something down,
    assert that no instance of the torn-down type is still retained by a
    long-lived object. Weak references do not count as retention.

    Note: the search walks everything reachable from `start`, which can be a
    large part of the heap for well-connected roots.
    """
    _log.debug("scanning from %s for %s", type(start).__name__, qualified_name(cls))
    if _scanner(scanner).is_reachable(instance_of(cls), start):
        raise AssertionError(
            f"Found an instance of {qualified_name(cls)} reachable from {describe_object(start)}"
        )


def assert_instance_of_reachable(
    start: Any, cls: type, *, scanner: Optional[ReachabilityScanner] = None
) -> None:
    """Fail unless an instance of `cls` is strongly reachable from `start`."""
    _log.debug("scanning from %s for %s", type(start).__name__, qualified_name(cls))
    if not _scanner(scanner).is_reachable(instance_of(cls), start):
        raise AssertionError(
            f"No instance of {qualified_name(cls)} reachable from {describe_object(start)}"
        )
