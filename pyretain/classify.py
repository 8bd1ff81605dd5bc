# pyretain/classify.py
from __future__ import annotations

from abc import ABC, abstractmethod
import weakref

from .introspect import REFERENT, Field

__all__ = ["ReferenceClassifier", "WeakReferentClassifier"]

_WEAK_TYPES = (weakref.ReferenceType, *weakref.ProxyTypes)


class ReferenceClassifier(ABC):
    """
    Policy deciding which structural slots are *non-owning*.

    A non-owning slot is never read by the scanner: objects reachable only
    through it are not considered retained.
    """

    @abstractmethod
    def is_non_owning(self, fld: Field) -> bool:
        ...


class WeakReferentClassifier(ReferenceClassifier):
    """
    Exclude exactly one slot kind: the referent of a weak reference or weak
    proxy. Everything else, including the internals of library collections
    such as ``WeakValueDictionary``, is treated as owning.
    """

    def is_non_owning(self, fld: Field) -> bool:
        return fld.name == REFERENT and issubclass(fld.declaring_type, _WEAK_TYPES)
