# pyretain/rt.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Iterable, List
import importlib
import os
import sys

from .errors import TargetResolutionError


def ensure_import_roots(
    import_roots: Iterable[str | os.PathLike[str]], base: Path | None = None
) -> List[str]:
    """
    Insert import paths at the front of sys.path, without duplicates.
    Relative paths are resolved against `base` (default: CWD).
    Returns the absolute directories actually inserted, in declared order.
    """
    root = (base or Path.cwd()).resolve()
    to_add: list[str] = []
    for raw in import_roots:
        p = Path(raw).expanduser()
        abs_p = p if p.is_absolute() else (root / p)
        try:
            ap = str(abs_p.resolve())
        except Exception:
            ap = str(abs_p)
        if os.path.isdir(ap) and ap not in sys.path and ap not in to_add:
            to_add.append(ap)
    # maintain declared order
    for ap in to_add[::-1]:
        sys.path.insert(0, ap)
    return to_add


def resolve_attr(fq: str) -> Any:
    """
    Resolve a fully-qualified attribute: 'pkg.mod.Class' or 'pkg.mod.obj.attr'.
    Imports the longest module prefix and getattr through the remainder.
    """
    parts = fq.split(".")
    if not all(parts):
        raise TargetResolutionError(f"Invalid dotted path {fq!r}")
    for i in range(len(parts), 0, -1):
        mod_name = ".".join(parts[:i])
        try:
            obj = importlib.import_module(mod_name)
            rest = parts[i:]
            break
        except ImportError:
            continue
    else:
        raise TargetResolutionError(f"Cannot import any prefix of {fq!r}")
    for name in rest:
        try:
            obj = getattr(obj, name)
        except AttributeError as exc:
            raise TargetResolutionError(f"{fq!r}: no attribute {name!r} on {obj!r}") from exc
    return obj


def resolve_type(fq: str) -> type:
    obj = resolve_attr(fq)
    if not isinstance(obj, type):
        raise TargetResolutionError(f"{fq!r} does not name a class (got {type(obj).__name__})")
    return obj
