"""Mock values: placeholders for anything a template reads but nobody supplied.

MockValue is a tagged variant:

- **unseeded** (``MockValue("user")``): "no information available". Truthy,
  renders as ``[mock:user]``, numeric conversions give zero, iterates as
  empty, ``>``/``>=``/``<=`` hold and ``<`` does not, equal only to other
  unseeded mocks. Attribute access, indexing and arithmetic return new
  mocks labelled with the path taken (``user.profile``, ``flash['x']``,
  ``total+``), so arbitrarily deep chains never raise. Calling returns the
  mock itself, which makes ``user.is_active()`` behave like
  ``user.is_active``.
- **seeded** (``MockValue("user.is_admin", True)``): every operation
  delegates to the wrapped value. This is how a permutation's forced value
  reaches a deeply chained path. Calling a non-callable seeded mock
  returns the mock, so both ``x.is_open`` and ``x.is_open()`` see the value.

FalsyValue is a seeded False that iterates empty and has length zero; it
stands in for collections forced False.

Stubs are immutable records built once from ``{name -> forced value}``
tables: StubValue answers specific attributes and keys, IteratorStub also
iterates exactly one pre-configured item. Both fall back to mock chains for
everything else.

Dunder lookups are never mocked, so protocol checks such as
``getattr(value, "__html__", None)`` behave normally.

"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import Any

_UNSET: Any = object()


def _is_dunder(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")


def unwrap(value: Any) -> Any:
    """The wrapped value of a seeded mock; anything else unchanged."""
    if isinstance(value, MockValue) and value._value is not _UNSET:
        return value._value
    return value


def is_seeded(value: Any) -> bool:
    return isinstance(value, MockValue) and value._value is not _UNSET


def _comparison(op: Callable[[Any, Any], Any], unseeded: bool) -> Callable[[MockValue, Any], Any]:
    def method(self: MockValue, other: Any) -> Any:
        if self._value is not _UNSET:
            return op(self._value, unwrap(other))
        return unseeded

    return method


def _arithmetic(
    symbol: str, op: Callable[[Any, Any], Any], reflected: bool = False
) -> Callable[[MockValue, Any], Any]:
    def method(self: MockValue, other: Any) -> Any:
        if self._value is not _UNSET:
            if reflected:
                return op(unwrap(other), self._value)
            return op(self._value, unwrap(other))
        return MockValue(f"{self._name()}{symbol}")

    return method


class MockValue:
    """Chainable placeholder value (see module docstring)."""

    __slots__ = ("_label", "_value")

    def __init__(self, label: str | None = None, value: Any = _UNSET) -> None:
        self._label = label
        self._value = value

    def _name(self) -> str:
        return self._label or "value"

    # ─────────────────────────────────────────────────────────────────────────
    # Chaining
    # ─────────────────────────────────────────────────────────────────────────

    def __getattr__(self, name: str) -> Any:
        if _is_dunder(name):
            raise AttributeError(name)
        if self._value is not _UNSET:
            try:
                return getattr(self._value, name)
            except AttributeError:
                pass
        return MockValue(f"{self._name()}.{name}")

    def __getitem__(self, key: Any) -> Any:
        if self._value is not _UNSET:
            return self._value[unwrap(key)]
        return MockValue(f"{self._name()}[{key!r}]")

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self._value is not _UNSET and callable(self._value):
            return self._value(*args, **kwargs)
        return self

    # ─────────────────────────────────────────────────────────────────────────
    # Conversions
    # ─────────────────────────────────────────────────────────────────────────

    def __bool__(self) -> bool:
        if self._value is not _UNSET:
            return bool(self._value)
        return True

    def __str__(self) -> str:
        if self._value is not _UNSET:
            return str(self._value)
        return f"[mock:{self._name()}]"

    def __repr__(self) -> str:
        if self._value is not _UNSET:
            return f"MockValue({self._label!r}, {self._value!r})"
        return f"MockValue({self._label!r})"

    def __format__(self, spec: str) -> str:
        if self._value is not _UNSET:
            return format(self._value, spec)
        try:
            return format(str(self), spec)
        except ValueError:
            return format(0, spec)

    def __int__(self) -> int:
        return int(self._value) if self._value is not _UNSET else 0

    def __float__(self) -> float:
        return float(self._value) if self._value is not _UNSET else 0.0

    def __index__(self) -> int:
        return operator.index(self._value) if self._value is not _UNSET else 0

    def __len__(self) -> int:
        return len(self._value) if self._value is not _UNSET else 0

    def __iter__(self) -> Iterator[Any]:
        if self._value is not _UNSET:
            return iter(self._value)
        return iter(())

    def __contains__(self, item: Any) -> bool:
        if self._value is not _UNSET:
            return unwrap(item) in self._value
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Comparison
    # ─────────────────────────────────────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        if self._value is not _UNSET:
            return bool(self._value == unwrap(other))
        return isinstance(other, MockValue) and other._value is _UNSET

    def __ne__(self, other: object) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        if self._value is not _UNSET:
            try:
                return hash(self._value)
            except TypeError:
                return id(self)
        return hash(MockValue)

    __gt__ = _comparison(operator.gt, True)
    __ge__ = _comparison(operator.ge, True)
    __le__ = _comparison(operator.le, True)
    __lt__ = _comparison(operator.lt, False)

    # ─────────────────────────────────────────────────────────────────────────
    # Arithmetic
    # ─────────────────────────────────────────────────────────────────────────

    __add__ = _arithmetic("+", operator.add)
    __sub__ = _arithmetic("-", operator.sub)
    __mul__ = _arithmetic("*", operator.mul)
    __truediv__ = _arithmetic("/", operator.truediv)
    __floordiv__ = _arithmetic("//", operator.floordiv)
    __mod__ = _arithmetic("%", operator.mod)
    __pow__ = _arithmetic("**", operator.pow)
    __radd__ = _arithmetic("+", operator.add, reflected=True)
    __rsub__ = _arithmetic("-", operator.sub, reflected=True)
    __rmul__ = _arithmetic("*", operator.mul, reflected=True)
    __rtruediv__ = _arithmetic("/", operator.truediv, reflected=True)
    __rfloordiv__ = _arithmetic("//", operator.floordiv, reflected=True)
    __rmod__ = _arithmetic("%", operator.mod, reflected=True)

    def __neg__(self) -> Any:
        if self._value is not _UNSET:
            return -self._value
        return MockValue(f"-{self._name()}")


class FalsyValue(MockValue):
    """Seeded False that also reads as an empty collection.

    Comparisons and arithmetic see ``False``; iteration is empty, length is
    zero and key lookups fall back to mock chains, so ``for x in items`` and
    ``len(items)`` take their empty paths when ``items`` is forced False.
    """

    __slots__ = ()

    def __init__(self, label: str | None = None) -> None:
        super().__init__(label, False)

    def __getitem__(self, key: Any) -> Any:
        return MockValue(f"{self._name()}[{key!r}]")

    def __len__(self) -> int:
        return 0

    def __iter__(self) -> Iterator[Any]:
        return iter(())

    def __contains__(self, item: Any) -> bool:
        return False

    def __repr__(self) -> str:
        return f"FalsyValue({self._label!r})"


class StubValue(MockValue):
    """Truthy mock answering specific attributes and keys with fixed values.

    Args:
        label: Display label, also the prefix for fallback mock labels.
        members: Attribute name -> value.
        items: Key -> value for ``stub[key]``, ``stub.get(key)`` and
            ``stub.setdefault(key, default)``.
    """

    __slots__ = ("_items", "_members")

    def __init__(
        self,
        label: str,
        members: Mapping[str, Any] | None = None,
        items: Mapping[Any, Any] | None = None,
    ) -> None:
        super().__init__(label)
        self._members = MappingProxyType(dict(members or {}))
        self._items = MappingProxyType(dict(items or {}))

    def __getattr__(self, name: str) -> Any:
        if not _is_dunder(name) and name in self._members:
            return self._members[name]
        return MockValue.__getattr__(self, name)

    def __getitem__(self, key: Any) -> Any:
        key = unwrap(key)
        if key in self._items:
            return self._items[key]
        return MockValue.__getitem__(self, key)

    def get(self, key: Any, default: Any = None) -> Any:
        return self[key]

    def setdefault(self, key: Any, default: Any = None) -> Any:
        return self[key]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._label!r}, members={sorted(self._members)!r})"


class IteratorStub(StubValue):
    """Stub whose iteration yields exactly one pre-configured item."""

    __slots__ = ("_item",)

    def __init__(
        self,
        label: str,
        item: Any,
        members: Mapping[str, Any] | None = None,
        items: Mapping[Any, Any] | None = None,
    ) -> None:
        super().__init__(label, members, items)
        self._item = item

    def __iter__(self) -> Iterator[Any]:
        return iter((self._item,))

    def __len__(self) -> int:
        return 1

    def __contains__(self, item: Any) -> bool:
        return item is self._item

    def __getitem__(self, key: Any) -> Any:
        if key in (0, -1) and key not in self._items:
            return self._item
        return super().__getitem__(key)


# ─────────────────────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────────────────────


def forced(label: str, value: Any) -> Any:
    """Wrap a forced value so it survives being called or chained."""
    if isinstance(value, MockValue):
        return value
    if value is False:
        return FalsyValue(label)
    return MockValue(label, value)


def build_nested_mock(path: Sequence[str], value: Any, label: str = "value") -> Any:
    """Chain of stubs where each hop answers the next name in ``path``.

    Example:
        >>> issue = build_nested_mock(["pull_request", "is_open"], False, "issue")
        >>> bool(issue.pull_request.is_open())
        False
    """
    if not path:
        return forced(label, value)
    head, *rest = path
    return StubValue(label, members={head: build_nested_mock(rest, value, f"{label}.{head}")})


def build_hash_mock(key: Any, value: Any, label: str = "hash") -> StubValue:
    """Stub answering ``[key]`` with ``value``."""
    return StubValue(label, items={key: forced(f"{label}[{key!r}]", value)})


def build_iterator_mock(conditions: Mapping[str, Any], label: str = "items") -> IteratorStub:
    """Iterator yielding one item that answers each condition name with its value.

    Example:
        >>> products = build_iterator_mock({"in_stock": True}, "products")
        >>> [bool(p.in_stock) for p in products]
        [True]
    """
    item_label = f"{label}[0]"
    members = {name: forced(f"{item_label}.{name}", value) for name, value in conditions.items()}
    return IteratorStub(label, StubValue(item_label, members=members))
