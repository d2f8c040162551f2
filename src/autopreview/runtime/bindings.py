"""Turn a permutation into execution-context bindings.

A permutation maps identifier paths to forced values::

    {"user.is_admin": True,
     "flash['notice']": "Saved",
     "products.__block_item__.in_stock": False,
     "hide_actions": False}

Paths are parsed with ``ast`` into a root name plus attribute, key and
block-item segments, merged into a trie per root, then frozen into stubs:

- deeper leaves become seeded MockValues, so both ``x.is_open`` and
  ``x.is_open()`` see the forced value;
- a root forced True with nothing deeper binds an unseeded mock (truthy,
  chains); False anywhere binds a FalsyValue (falsy, iterates empty); any
  other root value is bound as is;
- attribute hops become StubValue members, key hops StubValue items;
- a ``__block_item__`` hop makes the node an IteratorStub whose single item
  answers the remaining path.

Paths are applied deepest first. A shallower value arriving at a node that
already has deeper hops is dropped, so ``issue.pull_request`` can never
erase the stub answering ``issue.pull_request.is_open``. The one exception
is a root forced False: it replaces the stub outright, so the root itself
is falsy.

"""

from __future__ import annotations

import ast
import logging
from collections.abc import Mapping
from typing import Any

from autopreview.constants import BLOCK_ITEM
from autopreview.runtime.mock import FalsyValue, IteratorStub, MockValue, StubValue, forced

logger = logging.getLogger(__name__)

# Segment kinds
ATTR = "attr"
ITEM = "item"
BLOCK = "block"

Segment = tuple[str, Any]


def parse_path(identifier: str) -> tuple[str, tuple[Segment, ...]] | None:
    """Split ``identifier`` into its root name and segments.

    Returns None when the identifier is not a name followed by attribute
    access, constant subscripts and argument-less calls.

    Example:
        >>> parse_path("flash['notice']")
        ('flash', (('item', 'notice'),))
        >>> parse_path("products.__block_item__.in_stock")
        ('products', (('block', None), ('attr', 'in_stock')))
    """
    try:
        node = ast.parse(identifier.strip(), mode="eval").body
    except SyntaxError:
        return None

    segments: list[Segment] = []
    while True:
        if isinstance(node, ast.Attribute):
            if node.attr == BLOCK_ITEM:
                segments.append((BLOCK, None))
            else:
                segments.append((ATTR, node.attr))
            node = node.value
        elif isinstance(node, ast.Subscript):
            try:
                key = ast.literal_eval(node.slice)
                hash(key)
            except (ValueError, TypeError, SyntaxError):
                return None
            segments.append((ITEM, key))
            node = node.value
        elif isinstance(node, ast.Call) and not node.args and not node.keywords:
            node = node.func
        elif isinstance(node, ast.Name):
            return node.id, tuple(reversed(segments))
        else:
            return None


class _PathNode:
    """Mutable trie node, only alive while one permutation is being bound."""

    __slots__ = ("attrs", "block", "items", "value")

    def __init__(self) -> None:
        self.value: Any = None
        self.attrs: dict[str, _PathNode] = {}
        self.items: dict[Any, _PathNode] = {}
        self.block: _PathNode | None = None

    def has_children(self) -> bool:
        return bool(self.attrs or self.items or self.block is not None)

    def child(self, segment: Segment) -> _PathNode:
        kind, key = segment
        if kind == BLOCK:
            if self.block is None:
                self.block = _PathNode()
            return self.block
        table = self.attrs if kind == ATTR else self.items
        node = table.get(key)
        if node is None:
            node = table[key] = _PathNode()
        return node


def _freeze(label: str, node: _PathNode, *, root: bool = False) -> Any:
    if node.has_children():
        members = {name: _freeze(f"{label}.{name}", child) for name, child in node.attrs.items()}
        items = {key: _freeze(f"{label}[{key!r}]", child) for key, child in node.items.items()}
        if node.block is not None:
            item = _freeze(f"{label}[0]", node.block)
            return IteratorStub(label, item, members, items)
        return StubValue(label, members, items)
    if not root:
        return forced(label, node.value)
    if node.value is True:
        return MockValue(label)
    return FalsyValue(label) if node.value is False else node.value


def build_bindings(permutation: Mapping[str, Any]) -> dict[str, Any]:
    """Context bindings realising ``permutation`` (root name -> value).

    Example:
        >>> bindings = build_bindings({"issue.pull_request.is_open": False, "issue": True})
        >>> bool(bindings["issue"].pull_request.is_open())
        False
    """
    parsed: list[tuple[str, tuple[Segment, ...], Any]] = []
    for identifier, value in permutation.items():
        path = parse_path(identifier)
        if path is None:
            logger.debug("Cannot bind %r; leaving it to the mock fallback", identifier)
            continue
        parsed.append((path[0], path[1], value))

    # Deeper paths first; sort is stable so equal depths keep permutation order
    parsed.sort(key=lambda entry: len(entry[1]), reverse=True)

    roots: dict[str, _PathNode] = {}
    for name, segments, value in parsed:
        node = roots.get(name)
        if node is None:
            node = roots[name] = _PathNode()
        for segment in segments:
            node = node.child(segment)
        if node.has_children():
            if not segments and value is False:
                replacement = roots[name] = _PathNode()
                replacement.value = False
            continue
        node.value = value

    return {name: _freeze(name, node, root=True) for name, node in roots.items()}
