"""Shared visitor patterns for template node traversal.

Provides CONTAINER_ATTRS and visit_children for generic walks over the
template node tree. Used by the structural analyzer.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopreview.template.nodes import Node

# Attributes holding child nodes, in source order
CONTAINER_ATTRS = ("body", "elif_", "whens", "else_", "empty")


def visit_children(node: Node, visit: Callable[[Node], None]) -> None:
    """Visit every direct child node of ``node`` in source order."""
    for attr in CONTAINER_ATTRS:
        children = getattr(node, attr, None)
        if children:
            for child in children:
                visit(child)


def walk(node: Node, *, stop: Callable[[Node], bool] | None = None) -> Iterator[Node]:
    """Depth-first pre-order walk below ``node``.

    Nodes for which ``stop`` returns True are yielded but not descended into.
    """
    for attr in CONTAINER_ATTRS:
        children = getattr(node, attr, None)
        if not children:
            continue
        for child in children:
            yield child
            if stop is None or not stop(child):
                yield from walk(child, stop=stop)
