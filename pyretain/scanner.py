# pyretain/scanner.py
from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterator, Optional

from .classify import ReferenceClassifier, WeakReferentClassifier
from .config import ScanSettings, load_scan_settings
from .errors import ScanFailure
from .introspect import ACCESS_REFUSED, StructuralIntrospector, qualified_name

__all__ = ["ReachabilityScanner", "instance_of", "is_reachable"]

Predicate = Callable[[Any], bool]


def instance_of(cls: type) -> Predicate:
    """
    Predicate matching instances of `cls` (subclasses included).

    Uses ``type(obj)`` rather than ``isinstance`` so that weak proxies, which
    forward ``__class__`` to their referent, never match.
    """
    def matches(obj: Any) -> bool:
        return issubclass(type(obj), cls)
    matches.__qualname__ = f"instance_of({qualified_name(cls)})"
    return matches


class ReachabilityScanner:
    """
    Breadth-first search over the live object graph.

    Starting from a root, every owning reference is followed: container
    elements, ``__slots__`` entries across the MRO, the instance ``__dict__``
    and builtin native members. Objects that expose none of these are walked
    through ``gc.get_referents``. Scalar values are tested with the predicate
    but never expanded. Every slot the :class:`ReferenceClassifier` reports as
    non-owning (by default, the referent of weak references and weak proxies)
    is skipped without reading.

    Objects are deduplicated by identity; ``__eq__`` and ``__hash__`` of
    scanned objects are never called. The graph must not be mutated by other
    threads while a scan runs.

    Parameters
    ----------
    classifier : ReferenceClassifier | None
        Non-owning slot policy. Defaults to :class:`WeakReferentClassifier`.
    introspector : StructuralIntrospector | None
        Field discovery and reads. Defaults to a plain
        :class:`StructuralIntrospector`.
    """

    def __init__(
        self,
        classifier: Optional[ReferenceClassifier] = None,
        introspector: Optional[StructuralIntrospector] = None,
    ) -> None:
        self._classifier = classifier if classifier is not None else WeakReferentClassifier()
        self._introspector = introspector if introspector is not None else StructuralIntrospector()

    @classmethod
    def from_settings(
        cls, settings: ScanSettings, classifier: Optional[ReferenceClassifier] = None
    ) -> "ReachabilityScanner":
        introspector = StructuralIntrospector(
            expand_namespaces=settings.expand_namespaces,
            extra_scalar_types=settings.scalar_types,
        )
        return cls(classifier=classifier, introspector=introspector)

    @classmethod
    def from_config(cls, start: Optional[Path] = None) -> "ReachabilityScanner":
        """Build a scanner from the layered configuration ([scan] section)."""
        return cls.from_settings(load_scan_settings(start))

    def is_reachable(self, predicate: Predicate, root: Any) -> bool:
        """
        Return True iff an object matching `predicate` is strongly reachable
        from `root`. The root itself is never tested.

        Raises
        ------
        ScanFailure
            If the predicate raises, or a slot read fails for a reason other
            than refused access.
        """
        if root is None:
            return False

        intro = self._introspector
        visited: Dict[int, Any] = {id(root): root}  # values pin ids for the scan
        frontier: Deque[Any] = deque([root])

        while frontier:
            current = frontier.popleft()
            for ref in self._neighbors(current):
                if self._matches(predicate, ref):
                    return True
                # scalars are tested but have nothing to expand
                if intro.is_scalar(ref) or id(ref) in visited:
                    continue
                visited[id(ref)] = ref
                frontier.append(ref)
        return False

    def _neighbors(self, current: Any) -> Iterator[Any]:
        intro = self._introspector
        holder = type(current)

        if intro.is_scalar(current):
            return

        if intro.is_container(current):
            try:
                elements = list(intro.elements(current))
            except Exception as exc:
                raise ScanFailure(
                    f"error iterating {qualified_name(holder)}", holder_type=holder
                ) from exc
            for element in elements:
                if element is not None:
                    yield element

        try:
            fields = intro.fields_of(holder)
            opaque = intro.uses_referents(holder)
        except Exception as exc:
            raise ScanFailure(
                f"error listing fields of {qualified_name(holder)}", holder_type=holder
            ) from exc

        for fld in fields:
            if intro.is_scalar_type(fld.declared_type) or self._classifier.is_non_owning(fld):
                continue
            try:
                value = intro.read(fld, current)
            except Exception as exc:
                raise ScanFailure(
                    f"error reading {fld.name!r} of {qualified_name(holder)}",
                    field=fld.name,
                    holder_type=holder,
                ) from exc
            if value is ACCESS_REFUSED or value is None:
                continue
            yield value

        if opaque:
            try:
                refs = [r for r in intro.referents(current) if r is not None]
            except Exception as exc:
                raise ScanFailure(
                    f"error listing referents of {qualified_name(holder)}", holder_type=holder
                ) from exc
            yield from refs

        if intro.expand_namespaces:
            # class-level state
            yield holder

    @staticmethod
    def _matches(predicate: Predicate, obj: Any) -> bool:
        try:
            return bool(predicate(obj))
        except Exception as exc:
            holder = type(obj)
            raise ScanFailure(
                f"predicate raised on an instance of {qualified_name(holder)}",
                holder_type=holder,
            ) from exc


def is_reachable(
    predicate: Predicate, root: Any, *, scanner: Optional[ReachabilityScanner] = None
) -> bool:
    """Convenience wrapper around :meth:`ReachabilityScanner.is_reachable`."""
    return (scanner or ReachabilityScanner()).is_reachable(predicate, root)
