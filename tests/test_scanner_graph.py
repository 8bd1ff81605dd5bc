# tests/test_scanner_graph.py
from __future__ import annotations

import weakref

import pytest

from pyretain.scanner import ReachabilityScanner, instance_of, is_reachable


# --- Test fixtures -----------------------------------------------------------

class Target:
    pass


class Holder:
    def __init__(self, ref=None) -> None:
        self.ref = ref


class Pair:
    def __init__(self, a=None, b=None) -> None:
        self.a = a
        self.b = b


class Base:
    def __init__(self) -> None:
        self.__hidden = None

    def hide(self, value) -> None:
        self.__hidden = value


class Derived(Base):
    def __init__(self) -> None:
        super().__init__()
        self.visible = 1


class Touchy:
    """Equality and hashing blow up: the scanner must never call them."""

    def __init__(self, payload=None) -> None:
        self.payload = payload

    def __eq__(self, other):
        raise RuntimeError("__eq__ called")

    def __hash__(self):
        raise RuntimeError("__hash__ called")


class AlwaysEqual:
    def __init__(self, payload=None) -> None:
        self.payload = payload

    def __eq__(self, other):
        return isinstance(other, AlwaysEqual)

    def __hash__(self):
        return 1


# --- Direct and transitive containment --------------------------------------

def test_direct_strong_field_is_reachable():
    assert is_reachable(instance_of(Target), Holder(Target()))


def test_transitive_chain_is_reachable():
    root = Holder(Holder(Holder(Target())))
    assert is_reachable(instance_of(Target), root)


def test_truncated_chain_is_not_reachable():
    root = Holder(Holder(Holder(None)))
    assert not is_reachable(instance_of(Target), root)


def test_subclass_instances_match():
    class SpecialTarget(Target):
        pass

    assert is_reachable(instance_of(Target), Holder(SpecialTarget()))
    assert not is_reachable(instance_of(SpecialTarget), Holder(Target()))


def test_private_attributes_of_ancestors_are_walked():
    d = Derived()
    d.hide(Target())
    assert is_reachable(instance_of(Target), d)


def test_root_itself_is_not_tested():
    assert not is_reachable(instance_of(Target), Target())


def test_root_reached_again_through_cycle_is_tested_as_neighbor():
    t = Target()
    t.back = Holder(t)
    assert is_reachable(instance_of(Target), t)


# --- Cycles ------------------------------------------------------------------

def test_two_node_cycle_terminates():
    a = Holder()
    r = Holder(a)
    a.ref = r
    assert not is_reachable(instance_of(Target), r)


def test_self_reference_terminates():
    r = Holder()
    r.ref = r
    assert not is_reachable(instance_of(Target), r)


def test_target_behind_cycle_is_found():
    a = Pair()
    b = Pair(a)
    a.a = b
    a.b = Target()
    assert is_reachable(instance_of(Target), b)


# --- Null safety -------------------------------------------------------------

def test_none_root_is_not_explored():
    calls = []

    def spy(obj):
        calls.append(obj)
        return True

    assert not is_reachable(spy, None)
    assert calls == []


def test_none_fields_and_elements_are_skipped():
    seen = []

    def spy(obj):
        seen.append(obj)
        return False

    root = Pair(None, [None, None])
    assert not is_reachable(spy, root)
    assert all(x is not None for x in seen)


# --- Identity -----------------------------------------------------------------

def test_equal_but_distinct_objects_are_each_visited():
    first = AlwaysEqual()
    second = AlwaysEqual(Target())
    assert first == second
    assert is_reachable(instance_of(Target), Pair(first, second))


def test_eq_and_hash_are_never_called():
    root = [Touchy(), Touchy(Touchy(Target()))]
    assert is_reachable(instance_of(Target), Holder(root))


def test_each_object_expanded_once():
    shared = Holder()
    root = Pair(shared, [shared, shared, (shared,)])
    expanded = []

    class CountingScanner(ReachabilityScanner):
        def _neighbors(self, current):
            expanded.append(id(current))
            return super()._neighbors(current)

    assert not CountingScanner().is_reachable(instance_of(Target), root)
    assert expanded.count(id(shared)) == 1


# --- Short-circuit -----------------------------------------------------------

def test_stops_at_first_match():
    seen = []

    def pred(obj):
        seen.append(obj)
        return isinstance(obj, Target)

    after = Holder()
    root = [Target(), after]
    assert is_reachable(pred, Holder(root))
    assert all(o is not after for o in seen)


# --- Scenario from the weak/strong mix ----------------------------------------

class Z:
    pass


def test_weak_and_strong_paths_scenario():
    z = Z()
    y = Holder(z)
    x = Pair(a=y, b=weakref.ref(z))
    assert is_reachable(instance_of(Z), x)

    y.ref = None
    assert not is_reachable(instance_of(Z), x)
    assert x.b() is z  # still alive, only weakly held by the graph


def test_scanner_does_not_mutate_graph():
    inner = [1, 2, Target()]
    root = Pair(inner, {"k": (3, 4)})
    before = (list(inner), dict(root.b), dict(vars(root)))
    assert is_reachable(instance_of(Target), root)
    assert (inner, root.b, vars(root)) == before


@pytest.mark.parametrize("root", [0, "text", 3.5, b"raw", True])
def test_scalar_roots_reach_nothing(root):
    assert not is_reachable(lambda obj: True, root)
