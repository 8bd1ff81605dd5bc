# pyretain/introspect.py
from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Tuple
import array
import functools
import gc
import inspect
import types
import weakref

__all__ = [
    "ACCESS_REFUSED",
    "AccessRefused",
    "Field",
    "REFERENT",
    "SCALAR_TYPES",
    "StructuralIntrospector",
    "qualified_name",
]

# Name of the pseudo-field a weak reference (or proxy) uses for its target.
REFERENT = "__referent__"

SCALAR_TYPES: Tuple[type, ...] = (type(None), bool, int, float, complex, str, bytes)

# Containers whose payload is raw data: never iterated.
SCALAR_CONTAINER_TYPES: Tuple[type, ...] = (bytearray, memoryview, array.array, range)

_CONTAINER_TYPES: Tuple[type, ...] = (
    list, tuple, deque, dict, set, frozenset, types.MappingProxyType,
)

_PROXY_TYPES: Tuple[type, ...] = tuple(weakref.ProxyTypes)
_NAMESPACE_TYPES: Tuple[type, ...] = (type, types.ModuleType)
_DATA_DESCRIPTORS = (types.MemberDescriptorType, types.GetSetDescriptorType)

# Types whose references are fully covered by fields or elements, or that are
# leaves on purpose. Anything else without fields is walked via gc.
_NO_REFERENTS_FALLBACK: Tuple[type, ...] = (
    _CONTAINER_TYPES
    + SCALAR_CONTAINER_TYPES
    + _PROXY_TYPES
    + _NAMESPACE_TYPES
    + (weakref.ReferenceType,)
)

# Builtin types whose owned references live in C-level members rather than
# in __slots__ or __dict__.
_NATIVE_FIELDS: Tuple[Tuple[type, Tuple[str, ...]], ...] = (
    (types.FunctionType, ("__closure__", "__defaults__", "__kwdefaults__")),
    (types.MethodType, ("__self__", "__func__")),
    (types.BuiltinFunctionType, ("__self__",)),
    (functools.partial, ("func", "args", "keywords")),
    (property, ("fget", "fset", "fdel")),
    (staticmethod, ("__func__",)),
    (classmethod, ("__func__",)),
    (BaseException, ("args", "__traceback__", "__cause__", "__context__")),
    (StopIteration, ("value",)),
    (defaultdict, ("default_factory",)),
)

_CELL_CONTENTS = types.CellType.__dict__["cell_contents"]


class AccessRefused:
    """Marker returned by :meth:`StructuralIntrospector.read` for a refused slot."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "ACCESS_REFUSED"


ACCESS_REFUSED = AccessRefused()


@dataclass(frozen=True)
class Field:
    """
    One structural slot of a type.

    - ``declaring_type``: the class in the MRO that owns the storage.
    - ``declared_type``: annotated class of the slot when known, else None.
    - ``accessor``: callable reading the slot from an instance; None when the
      runtime does not expose the slot through a plain descriptor.
    """
    name: str
    declaring_type: type
    declared_type: Optional[type] = None
    accessor: Optional[Callable[[Any], Any]] = field(default=None, compare=False, repr=False)

    @property
    def accessible(self) -> bool:
        return self.accessor is not None


def qualified_name(tp: type) -> str:
    name = getattr(tp, "__qualname__", None) or getattr(tp, "__name__", None) or repr(tp)
    module = getattr(tp, "__module__", None)
    if not module or module == "builtins":
        return name
    return f"{module}.{name}"


def _descriptor_reader(descr: Any, owner: type) -> Callable[[Any], Any]:
    def read(obj: Any) -> Any:
        return descr.__get__(obj, owner)
    return read


def _cell_contents(cell: Any) -> Any:
    try:
        return _CELL_CONTENTS.__get__(cell, types.CellType)
    except ValueError:
        # empty cell
        return None


def _mangle(cls: type, name: str) -> str:
    if name.startswith("__") and not name.endswith("__"):
        stripped = cls.__name__.lstrip("_")
        if stripped:
            return f"_{stripped}{name}"
    return name


def _class_annotations(cls: type) -> Dict[str, Any]:
    # String annotations are resolved when possible; unresolvable ones leave
    # the declared type unknown.
    for eval_str in (True, False):
        try:
            return dict(inspect.get_annotations(cls, eval_str=eval_str))
        except Exception:
            continue
    return {}


def _declared_type(annotations: Dict[str, Any], name: str, attr: str) -> Optional[type]:
    hint = annotations.get(attr, annotations.get(name))
    return hint if isinstance(hint, type) else None


class StructuralIntrospector:
    """
    Reflective access to the owned state of arbitrary Python objects.

    Reads go through the descriptors stored on the declaring classes
    (``__slots__`` member descriptors, the ``__dict__`` getset, builtin
    members), so user-level ``__getattr__``/``__getattribute__`` overrides,
    properties and ``__eq__`` are never invoked.

    Parameters
    ----------
    expand_namespaces : bool, default False
        Follow module dicts, class dicts (with every base in the MRO), function
        ``__globals__`` and frame globals. When False, classes and modules are
        leaves.
    extra_scalar_types : Iterable[type]
        Types treated like numbers and strings: no outgoing references. Only
        exact instances count; subclass instances are walked as usual.
    """

    def __init__(
        self,
        *,
        expand_namespaces: bool = False,
        extra_scalar_types: Iterable[type] = (),
    ) -> None:
        self.expand_namespaces = expand_namespaces
        self._scalar_types: Tuple[type, ...] = SCALAR_TYPES + tuple(extra_scalar_types)
        # exact types only: a subclass instance may carry its own state
        self._scalar_ids = frozenset(id(t) for t in self._scalar_types)
        # keyed by id(type): metaclasses may define __eq__/__hash__
        self._fields_cache: Dict[int, Tuple[type, Tuple[Field, ...]]] = {}

    # ---------- scalar data ----------

    def is_scalar(self, value: Any) -> bool:
        return id(type(value)) in self._scalar_ids

    def is_scalar_type(self, tp: Optional[type]) -> bool:
        return isinstance(tp, type) and id(tp) in self._scalar_ids

    # ---------- containers ----------

    def is_container(self, obj: Any) -> bool:
        return issubclass(type(obj), _CONTAINER_TYPES)

    def elements(self, obj: Any) -> Iterator[Any]:
        """
        Yield the references held by a builtin container, going through the
        builtin base type so that subclass overrides cannot hide entries.
        Mappings yield each key followed by its value.
        """
        tp = type(obj)
        if issubclass(tp, dict):
            for key, value in dict.items(obj):
                yield key
                yield value
        elif issubclass(tp, types.MappingProxyType):
            # the wrapped mapping is the proxy's only referent
            yield from gc.get_referents(obj)
        elif issubclass(tp, list):
            yield from list.__iter__(obj)
        elif issubclass(tp, tuple):
            yield from tuple.__iter__(obj)
        elif issubclass(tp, deque):
            yield from deque.__iter__(obj)
        elif issubclass(tp, set):
            yield from set.__iter__(obj)
        elif issubclass(tp, frozenset):
            yield from frozenset.__iter__(obj)

    # ---------- fields ----------

    def fields_of(self, tp: type) -> Tuple[Field, ...]:
        """Every structural slot of `tp`, own type first, then its ancestors."""
        hit = self._fields_cache.get(id(tp))
        if hit is not None and hit[0] is tp:
            return hit[1]
        seen: set[Tuple[int, str]] = set()
        fields = []
        for f in self._discover_fields(tp):
            key = (id(f.declaring_type), f.name)
            if key not in seen:
                seen.add(key)
                fields.append(f)
        out = tuple(fields)
        self._fields_cache[id(tp)] = (tp, out)
        return out

    def read(self, fld: Field, obj: Any) -> Any:
        """
        Current value of `fld` on `obj`, None for an unset slot, or
        ``ACCESS_REFUSED`` when the slot is not exposed. Any other failure
        propagates.
        """
        if not fld.accessible:
            return ACCESS_REFUSED
        try:
            return fld.accessor(obj)
        except AttributeError:
            # unset __slots__ entry
            return None

    # ---------- C-level state ----------

    def uses_referents(self, tp: type) -> bool:
        """
        True when `tp` exposes no fields but may still own references in
        C-level state (generators, tracebacks, frames, itertools objects...).
        Such objects are walked through ``gc.get_referents``, which reports
        exactly the references an object owns.
        """
        if issubclass(tp, _NO_REFERENTS_FALLBACK) or id(tp) in self._scalar_ids:
            return False
        return not self.fields_of(tp)

    def referents(self, obj: Any) -> Iterator[Any]:
        tp = type(obj)
        skip = {id(tp)}
        if issubclass(tp, types.FrameType) and not self.expand_namespaces:
            # same rule as function __globals__
            skip.update((id(obj.f_globals), id(obj.f_builtins)))
        for ref in gc.get_referents(obj):
            if id(ref) not in skip:
                yield ref

    def _discover_fields(self, tp: type) -> Iterator[Field]:
        if issubclass(tp, _PROXY_TYPES):
            yield Field(REFERENT, tp)
            return
        if issubclass(tp, _NAMESPACE_TYPES) and not self.expand_namespaces:
            return

        if issubclass(tp, weakref.ReferenceType):
            yield Field(REFERENT, weakref.ReferenceType, accessor=weakref.ReferenceType.__call__)
            yield self._native_field(weakref.ReferenceType, "__callback__")
        if issubclass(tp, types.CellType):
            yield Field("cell_contents", types.CellType, accessor=_cell_contents)
        for base, names in _NATIVE_FIELDS:
            if issubclass(tp, base):
                for name in names:
                    yield self._native_field(base, name)
        if self.expand_namespaces and issubclass(tp, types.FunctionType):
            yield self._native_field(types.FunctionType, "__globals__")
        if self.expand_namespaces and issubclass(tp, type):
            # class-level state of every base
            yield self._native_field(type, "__mro__")

        for cls in tp.__mro__:
            yield from self._slot_fields(cls)

        dict_field = self._dict_field(tp)
        if dict_field is not None:
            yield dict_field

    @staticmethod
    def _native_field(base: type, name: str) -> Field:
        descr = base.__dict__.get(name)
        if isinstance(descr, _DATA_DESCRIPTORS):
            return Field(name, base, accessor=_descriptor_reader(descr, base))
        return Field(name, base)

    @staticmethod
    def _slot_fields(cls: type) -> Iterator[Field]:
        ns = cls.__dict__
        slots = ns.get("__slots__")
        if slots is None:
            return
        if isinstance(slots, str):
            slots = (slots,)
        annotations: Optional[Dict[str, Any]] = None
        for name in slots:
            if name in ("__dict__", "__weakref__"):
                continue
            attr = _mangle(cls, name)
            descr = ns.get(attr)
            if not isinstance(descr, types.MemberDescriptorType):
                # shadowed by a property or plain value
                yield Field(attr, cls)
                continue
            if annotations is None:
                annotations = _class_annotations(cls)
            yield Field(
                attr,
                cls,
                declared_type=_declared_type(annotations, name, attr),
                accessor=_descriptor_reader(descr, cls),
            )

    @staticmethod
    def _dict_field(tp: type) -> Optional[Field]:
        for cls in tp.__mro__:
            descr = cls.__dict__.get("__dict__")
            if descr is None:
                continue
            if isinstance(descr, _DATA_DESCRIPTORS):
                return Field("__dict__", cls, accessor=_descriptor_reader(descr, cls))
            return Field("__dict__", cls)
        return None
