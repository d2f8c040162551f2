"""Template AST nodes.

All nodes are frozen, slotted dataclasses that track their source
location. Expression-bearing fields hold the embedded Python source text
exactly as written in the template (stripped); the compiler and the
structural analyzer each re-parse those fragments with `ast`.

"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Node:
    """Base class for all template nodes."""

    lineno: int
    col_offset: int


@dataclass(frozen=True, slots=True)
class TemplateNode(Node):
    """Root of a parsed template."""

    body: Sequence[Node]
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Data(Node):
    """Literal text between tags."""

    text: str


@dataclass(frozen=True, slots=True)
class Output(Node):
    """Output: {{ expr }}"""

    expr: str


@dataclass(frozen=True, slots=True)
class Elif(Node):
    """One {% elif cond %} arm of an If."""

    test: str
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class If(Node):
    """Conditional: {% if cond %}...{% elif cond %}...{% else %}...{% end %}"""

    test: str
    body: Sequence[Node]
    elif_: Sequence[Elif] = ()
    else_: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class Unless(Node):
    """Negated conditional: {% unless cond %}...{% else %}...{% end %}"""

    test: str
    body: Sequence[Node]
    else_: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class When(Node):
    """One {% when v1, v2 %} arm of a Case; ``values`` is the raw clause."""

    values: str
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Case(Node):
    """Multi-way branch: {% case subject %}{% when "a" %}...{% else %}...{% end %}"""

    subject: str
    whens: Sequence[When]
    else_: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class For(Node):
    """Iteration block: {% for x in items %}...{% empty %}...{% end %}"""

    target: str
    iter: str
    body: Sequence[Node]
    empty: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class Set(Node):
    """Assignment statement: {% set x = expr %}; ``code`` is ``x = expr``."""

    code: str
