"""In-process rendering of templates against an ExecutionContext.

The coverage sandbox uses ``execute`` on a compiled unit's code object;
``render_preview`` is the lightweight path for showing a template with
whatever values are at hand, no coverage measurement involved.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import CodeType
from typing import Any

from autopreview.constants import BUFFER_NAME
from autopreview.runtime.bindings import build_bindings
from autopreview.runtime.context import ExecutionContext
from autopreview.template.compiler import CodeGenerator
from autopreview.template.lexer import tokenize
from autopreview.template.parser import Parser


@dataclass(frozen=True, slots=True)
class RenderResult:
    """Rendered output plus the names that had to be mocked."""

    output: str
    accessed_mocks: tuple[str, ...] = ()


def execute(code: CodeType, context: ExecutionContext) -> str:
    """Run compiled template code in ``context`` and return its output."""
    exec(code, context)
    return "".join(context[BUFFER_NAME])


def render_permutation(
    code: CodeType,
    permutation: Mapping[str, Any] | None = None,
    locals: Mapping[str, Any] | None = None,
) -> RenderResult:
    """Execute ``code`` with ``permutation`` bound over ``locals``."""
    context = ExecutionContext(locals, build_bindings(permutation or {}))
    output = execute(code, context)
    return RenderResult(output, tuple(context.accessed_mocks))


def render_preview(
    source: str,
    *,
    locals: Mapping[str, Any] | None = None,
    mock_values: Mapping[str, Any] | None = None,
    name: str | None = None,
    autoescape: bool = True,
) -> RenderResult:
    """Render ``source`` in this process, mocking anything unbound.

    Example:
        >>> render_preview("Hi {{ user.name }}").output
        'Hi [mock:user.name]'
    """
    tree = Parser(tokenize(source, name), source=source, name=name, validate=True).parse()
    python_source, _ = CodeGenerator(autoescape).generate(tree)
    code = compile(python_source, name or "<template>", "exec")
    context = ExecutionContext(locals, mock_values)
    output = execute(code, context)
    return RenderResult(output, tuple(context.accessed_mocks))
