"""Template compiler: template nodes to executable Python source.

Unlike an in-memory code object, the compiled unit is written to disk as
plain Python source so that line and branch instrumentation can map
executed code back to real, readable lines.

Design:
1. **Module-level statements**: the template body becomes top-level code,
   executed with an ExecutionContext as globals. Name lookups therefore go
   through the context and fall back to mocks.
2. **StringBuilder**: output via ``__ap_emit(...)``, joined by the runtime.
3. **One statement per line**: embedded expressions are normalised with
   ``ast.unparse`` so every generated statement fits on one line, and each
   line records the template line it came from.

Generated shape:

    ```python
    __ap_buf = []
    __ap_emit = __ap_buf.append
    if not (any(items)):  # unless
        __ap_emit('Nothing here')
    match status:
        case 'active' | 'pending':
            __ap_emit(__ap_escape(status))
        case _:
            pass
    ```

"""

from __future__ import annotations

import ast
import hashlib
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import CodeType
from typing import cast

from autopreview.config import DEFAULT_CONFIG, PreviewConfig
from autopreview.constants import (
    BUFFER_NAME,
    EMIT_NAME,
    ESCAPE_NAME,
    LOOP_FLAG_PREFIX,
    STR_NAME,
    UNLESS_MARKER,
    WHEN_NAME,
)
from autopreview.template.lexer import tokenize
from autopreview.template.nodes import (
    Case,
    Data,
    For,
    If,
    Node,
    Output,
    Set,
    TemplateNode,
    Unless,
)
from autopreview.template.parser import Parser

logger = logging.getLogger(__name__)

_INDENT = "    "
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_]")


@dataclass(frozen=True, slots=True)
class CompiledUnit:
    """A template translated to Python source and written to disk.

    Attributes:
        unit_id: Stable identifier (path stem plus a digest of the resolved
            path, or a content hash for strings).
        source_path: Template path, or None for string templates.
        template_source: Original template text.
        python_source: Generated Python source.
        compiled_path: Location of the generated file.
        line_map: Compiled line number -> template line number.
    """

    unit_id: str
    source_path: str | None
    template_source: str
    python_source: str
    compiled_path: Path
    line_map: Mapping[int, int] = field(default_factory=dict)

    def template_line(self, compiled_line: int) -> int | None:
        """Template line that produced ``compiled_line`` (None for plumbing)."""
        return self.line_map.get(compiled_line)

    def write(self) -> None:
        """Write the generated source to ``compiled_path`` unless already there."""
        if self.compiled_path.is_file() and self.compiled_path.read_text(encoding="utf-8") == self.python_source:
            return
        self.compiled_path.parent.mkdir(parents=True, exist_ok=True)
        self.compiled_path.write_text(self.python_source, encoding="utf-8")

    def code(self) -> CodeType:
        """Compile the generated source with the artifact path as filename."""
        return compile(self.python_source, str(self.compiled_path), "exec")


def unit_id_for(source: str, path: str | Path | None) -> str:
    """Identifier for a compiled unit: ``<stem>_<path digest>``, else ``string_<digest>``.

    Templates sharing a file name in different directories get distinct ids.
    """
    if path is not None:
        stem = _UNSAFE_ID_CHARS.sub("_", Path(path).stem) or "template"
        location = hashlib.sha256(str(Path(path).resolve()).encode("utf-8")).hexdigest()[:8]
        return f"{stem}_{location}"
    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:12]
    return f"string_{digest}"


def _expr(code: str) -> str:
    """Normalise an embedded expression to one line of Python."""
    return ast.unparse(ast.parse(code.strip(), mode="eval").body)


class CodeGenerator:
    """Generate Python source lines for a TemplateNode.

    Node dispatch uses a dict keyed by node type name, built once from the
    ``_compile_<name>`` methods.
    """

    def __init__(self, autoescape: bool = True) -> None:
        self._autoescape = autoescape
        self._lines: list[str] = []
        self._line_map: dict[int, int] = {}
        self._indent = 0
        self._loop_counter = 0
        self._dispatch: dict[str, Callable[[Node], None]] = {
            "Data": self._compile_data,
            "Output": self._compile_output,
            "If": self._compile_if,
            "Unless": self._compile_unless,
            "Case": self._compile_case,
            "For": self._compile_for,
            "Set": self._compile_set,
        }

    def generate(self, tree: TemplateNode, header: Sequence[str] = ()) -> tuple[str, dict[int, int]]:
        """Return ``(python_source, line_map)`` for ``tree``."""
        self._lines = [f"# {line}" for line in header]
        self._line_map = {}
        self._indent = 0
        self._loop_counter = 0
        self._lines.append(f"{BUFFER_NAME} = []")
        self._lines.append(f"{EMIT_NAME} = {BUFFER_NAME}.append")
        self._compile_body(tree.body, allow_empty=True)
        return "\n".join(self._lines) + "\n", self._line_map

    def _emit(self, code: str, lineno: int) -> None:
        self._lines.append(_INDENT * self._indent + code)
        self._line_map[len(self._lines)] = lineno

    def _compile_body(self, body: Sequence[Node], lineno: int = 0, allow_empty: bool = False) -> None:
        """Compile a suite; emits ``pass`` when it generates nothing."""
        start = len(self._lines)
        for node in body:
            self._dispatch[type(node).__name__](node)
        if len(self._lines) == start and not allow_empty:
            self._emit("pass", lineno)

    def _indented(self, body: Sequence[Node], lineno: int) -> None:
        self._indent += 1
        self._compile_body(body, lineno)
        self._indent -= 1

    # ─────────────────────────────────────────────────────────────────────────
    # Node handlers
    # ─────────────────────────────────────────────────────────────────────────

    def _compile_data(self, node: Data) -> None:
        if node.text:
            self._emit(f"{EMIT_NAME}({node.text!r})", node.lineno)

    def _compile_output(self, node: Output) -> None:
        wrapper = ESCAPE_NAME if self._autoescape else STR_NAME
        self._emit(f"{EMIT_NAME}({wrapper}({_expr(node.expr)}))", node.lineno)

    def _compile_if(self, node: If) -> None:
        self._emit(f"if {_expr(node.test)}:", node.lineno)
        self._indented(node.body, node.lineno)
        for arm in node.elif_:
            self._emit(f"elif {_expr(arm.test)}:", arm.lineno)
            self._indented(arm.body, arm.lineno)
        if node.else_:
            self._emit("else:", node.lineno)
            self._indented(node.else_, node.lineno)

    def _compile_unless(self, node: Unless) -> None:
        self._emit(f"if not ({_expr(node.test)}):  {UNLESS_MARKER}", node.lineno)
        self._indented(node.body, node.lineno)
        if node.else_:
            self._emit("else:", node.lineno)
            self._indented(node.else_, node.lineno)

    def _compile_case(self, node: Case) -> None:
        """Compile {% case %} to a ``match`` statement.

        Literal and dotted-name values become patterns (``case 'a' | 'b':``);
        any other value turns the arm into a guarded capture
        (``case __ap_when if __ap_when in (x, y):``).
        """
        if not node.whens and not node.else_:
            return
        self._emit(f"match {_expr(node.subject)}:", node.lineno)
        self._indent += 1
        for arm in node.whens:
            values = ast.parse(f"({arm.values},)", mode="eval").body
            elements = values.elts if isinstance(values, ast.Tuple) else [values]
            if all(_is_pattern(element) for element in elements):
                pattern = " | ".join(ast.unparse(element) for element in elements)
                self._emit(f"case {pattern}:", arm.lineno)
            else:
                options = ", ".join(ast.unparse(element) for element in elements)
                self._emit(f"case {WHEN_NAME} if {WHEN_NAME} in ({options},):", arm.lineno)
            self._indented(arm.body, arm.lineno)
        if node.else_:
            self._emit("case _:", node.lineno)
            self._indented(node.else_, node.lineno)
        self._indent -= 1

    def _compile_for(self, node: For) -> None:
        loop = cast(ast.For, ast.parse(f"for {node.target} in {node.iter}: pass").body[0])
        header = f"for {ast.unparse(loop.target)} in {ast.unparse(loop.iter)}:"
        if not node.empty:
            self._emit(header, node.lineno)
            self._indented(node.body, node.lineno)
            return

        self._loop_counter += 1
        flag = f"{LOOP_FLAG_PREFIX}{self._loop_counter}"
        self._emit(f"{flag} = False", node.lineno)
        self._emit(header, node.lineno)
        self._indent += 1
        self._emit(f"{flag} = True", node.lineno)
        self._compile_body(node.body, node.lineno, allow_empty=True)
        self._indent -= 1
        self._emit(f"if not {flag}:", node.lineno)
        self._indented(node.empty, node.lineno)

    def _compile_set(self, node: Set) -> None:
        statement = ast.parse(node.code.strip()).body[0]
        self._emit(ast.unparse(statement), node.lineno)


def _is_pattern(node: ast.expr) -> bool:
    """True when ``node`` is valid as a literal or value pattern."""
    if isinstance(node, ast.Constant):
        return True
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
        return isinstance(node.operand, ast.Constant) and isinstance(
            node.operand.value, (int, float, complex)
        )
    if isinstance(node, ast.Attribute):
        value = node.value
        while isinstance(value, ast.Attribute):
            value = value.value
        return isinstance(value, ast.Name)
    return False


class TemplateCompiler:
    """Compile template text into a CompiledUnit on disk.

    Example:
        >>> compiler = TemplateCompiler()
        >>> unit = compiler.compile("{% if admin %}Hi{% end %}")
        >>> unit.compiled_path.suffix
        '.py'
    """

    def __init__(self, config: PreviewConfig | None = None) -> None:
        self._config = config or DEFAULT_CONFIG

    def compile(self, source: str, path: str | Path | None = None) -> CompiledUnit:
        """Compile ``source``; raises TemplateSyntaxError for invalid templates."""
        name = str(path) if path is not None else None
        tree = Parser(tokenize(source, name), source=source, name=name, validate=True).parse()

        digest = hashlib.sha256(source.encode("utf-8")).hexdigest()
        header = (
            f"Generated by autopreview from {name or '(string)'}; do not edit.",
            f"sha256: {digest}",
        )
        python_source, line_map = CodeGenerator(self._config.autoescape).generate(tree, header)

        unit_id = unit_id_for(source, path)
        compiled_path = (Path(self._config.artifact_dir) / f"{unit_id}.py").resolve()

        unit = CompiledUnit(
            unit_id=unit_id,
            source_path=name,
            template_source=source,
            python_source=python_source,
            compiled_path=compiled_path,
            line_map=line_map,
        )
        unit.write()
        logger.debug("Compiled %s to %s", name or unit_id, compiled_path)
        return unit

    def compile_file(self, path: str | Path) -> CompiledUnit:
        return self.compile(Path(path).read_text(encoding="utf-8"), path)
