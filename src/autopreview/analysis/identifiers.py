"""Identifier collection over Python expression ASTs.

Identifiers are the names and access paths a condition reads, in the
notation permutations use as keys:

- ``user``                      bare name
- ``is_admin``                  call without receiver (``is_admin()``)
- ``user.profile.is_active``    attribute and method chains; calls add no
                                parentheses
- ``flash['notice']``           constant subscripts
- ``flash['notice']``           ``flash.get("notice", d)`` and
                                ``flash.setdefault("notice", d)``
- ``user.name``                 ``getattr(user, "name", d)``

Builtins are not identifiers (they are never mocked); a builtin call
contributes its arguments only. Names bound by comprehensions and lambdas
inside the expression are ignored.

"""

from __future__ import annotations

import ast
import builtins
import re
from collections.abc import Callable, Iterable

_BUILTIN_NAMES = frozenset(dir(builtins))

# Default-access methods: receiver.get(key, default)
_DEFAULT_ACCESS = frozenset({"get", "setdefault"})

_ROOT = re.compile(r"[A-Za-z_]\w*")


def root_name(identifier: str) -> str:
    """Leading name of an identifier path (``user`` for ``user.profile``)."""
    match = _ROOT.match(identifier)
    return match.group(0) if match else identifier


def _constant_key(node: ast.expr) -> tuple[bool, object]:
    if isinstance(node, ast.Constant) and isinstance(node.value, (str, int, float, bool, bytes)):
        return True, node.value
    return False, None


def _default_access(node: ast.Call) -> tuple[ast.expr, str] | None:
    """``(receiver, suffix)`` for default-access calls, else None."""
    func = node.func
    if (
        isinstance(func, ast.Attribute)
        and func.attr in _DEFAULT_ACCESS
        and node.args
        and not node.keywords
    ):
        ok, key = _constant_key(node.args[0])
        if ok:
            return func.value, f"[{key!r}]"
    if (
        isinstance(func, ast.Name)
        and func.id == "getattr"
        and len(node.args) >= 2
        and isinstance(node.args[1], ast.Constant)
        and isinstance(node.args[1].value, str)
        and node.args[1].value.isidentifier()
    ):
        return node.args[0], f".{node.args[1].value}"
    return None


def resolve_path(node: ast.expr) -> str | None:
    """Dotted/bracketed path for a name, attribute, subscript or call chain.

    Returns None when the chain does not terminate at a plain name or uses a
    non-constant subscript.
    """
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        base = resolve_path(node.value)
        return f"{base}.{node.attr}" if base is not None else None
    if isinstance(node, ast.Subscript):
        ok, key = _constant_key(node.slice)
        if not ok:
            return None
        base = resolve_path(node.value)
        return f"{base}[{key!r}]" if base is not None else None
    if isinstance(node, ast.Call):
        access = _default_access(node)
        if access is not None:
            receiver, suffix = access
            base = resolve_path(receiver)
            return f"{base}{suffix}" if base is not None else None
        return resolve_path(node.func)
    return None


def _chain_base(node: ast.expr) -> ast.expr:
    """Innermost receiver of an attribute/subscript/call chain."""
    while True:
        if isinstance(node, ast.Call):
            access = _default_access(node)
            node = access[0] if access is not None else node.func
        elif isinstance(node, (ast.Attribute, ast.Subscript)):
            node = node.value
        else:
            return node


class IdentifierCollector:
    """Collect identifiers read by one expression.

    Example:
        >>> import ast
        >>> expr = ast.parse("user.is_active and flash.get('notice')", mode="eval")
        >>> IdentifierCollector().collect(expr.body)
        ['user.is_active', "flash['notice']"]
    """

    def __init__(self) -> None:
        self._found: list[str] = []
        self._bound: list[frozenset[str]] = []
        self._dispatch: dict[str, Callable[[ast.AST], None]] = {}
        for name in dir(self):
            if name.startswith("_visit_") and name != "_visit_children":
                method = getattr(self, name)
                if callable(method):
                    self._dispatch[name[7:]] = method

    def collect(self, node: ast.AST) -> list[str]:
        self._found = []
        self._bound = []
        self._visit(node)
        return list(self._found)

    def _add(self, identifier: str) -> None:
        root = root_name(identifier)
        if root in _BUILTIN_NAMES:
            return
        if any(root in scope for scope in self._bound):
            return
        if identifier not in self._found:
            self._found.append(identifier)

    def _visit(self, node: ast.AST | None) -> None:
        if node is None:
            return
        handler = self._dispatch.get(type(node).__name__.lower())
        if handler is not None:
            handler(node)
        else:
            self._visit_children(node)

    def _visit_children(self, node: ast.AST) -> None:
        for child in ast.iter_child_nodes(node):
            self._visit(child)

    def _visit_all(self, nodes: Iterable[ast.AST]) -> None:
        for node in nodes:
            self._visit(node)

    # ─────────────────────────────────────────────────────────────────────────
    # Names and chains
    # ─────────────────────────────────────────────────────────────────────────

    def _visit_name(self, node: ast.Name) -> None:
        self._add(node.id)

    def _visit_attribute(self, node: ast.Attribute) -> None:
        self._chain(node)

    def _visit_subscript(self, node: ast.Subscript) -> None:
        self._chain(node)

    def _visit_call(self, node: ast.Call) -> None:
        self._chain(node)

    def _chain(self, node: ast.expr) -> None:
        """Record one chain, then scan what it evaluates along the way."""
        path = resolve_path(node)
        if path is not None:
            self._add(path)
        else:
            self._add_unresolved(node, _chain_base(node))
        self._scan_chain(node)

    def _add_unresolved(self, node: ast.expr, base: ast.expr) -> None:
        # Non-constant subscripts end the chain at their receiver
        current = node
        while current is not base:
            if isinstance(current, ast.Subscript) and not _constant_key(current.slice)[0]:
                self._chain_or_visit(current.value)
                return
            if isinstance(current, ast.Call):
                access = _default_access(current)
                current = access[0] if access is not None else current.func
            else:
                current = current.value  # type: ignore[attr-defined]
        if isinstance(base, ast.Name):
            return
        # Receiver is not a name (literal list, call result, ...): raw source
        self._add(ast.unparse(node) if not isinstance(node, ast.Call) else ast.unparse(node.func))
        self._visit(base)

    def _chain_or_visit(self, node: ast.expr) -> None:
        if isinstance(node, (ast.Attribute, ast.Subscript, ast.Call)):
            self._chain(node)
        else:
            self._visit(node)

    def _scan_chain(self, node: ast.expr) -> None:
        """Visit call arguments and dynamic keys inside a chain."""
        current = node
        while True:
            if isinstance(current, ast.Call):
                access = _default_access(current)
                if access is not None:
                    receiver, _ = access
                    extra = current.args[2:] if isinstance(current.func, ast.Name) else current.args[1:]
                    self._visit_all(extra)
                    current = receiver
                    continue
                self._visit_all(current.args)
                self._visit_all(keyword.value for keyword in current.keywords)
                current = current.func
            elif isinstance(current, ast.Subscript):
                if not _constant_key(current.slice)[0]:
                    self._visit(current.slice)
                current = current.value
            elif isinstance(current, ast.Attribute):
                current = current.value
            else:
                return

    # ─────────────────────────────────────────────────────────────────────────
    # Scopes
    # ─────────────────────────────────────────────────────────────────────────

    def _scoped(self, targets: Iterable[ast.AST], body: Iterable[ast.AST]) -> None:
        names = frozenset(
            sub.id for target in targets for sub in ast.walk(target) if isinstance(sub, ast.Name)
        )
        self._bound.append(names)
        self._visit_all(body)
        self._bound.pop()

    def _visit_comprehension_node(self, node: ast.ListComp | ast.SetComp | ast.GeneratorExp | ast.DictComp) -> None:
        generators = node.generators
        # The first iterable is evaluated in the enclosing scope
        self._visit(generators[0].iter)
        parts: list[ast.AST] = [gen.iter for gen in generators[1:]]
        parts.extend(cond for gen in generators for cond in gen.ifs)
        if isinstance(node, ast.DictComp):
            parts.extend((node.key, node.value))
        else:
            parts.append(node.elt)
        self._scoped((gen.target for gen in generators), parts)

    def _visit_listcomp(self, node: ast.ListComp) -> None:
        self._visit_comprehension_node(node)

    def _visit_setcomp(self, node: ast.SetComp) -> None:
        self._visit_comprehension_node(node)

    def _visit_generatorexp(self, node: ast.GeneratorExp) -> None:
        self._visit_comprehension_node(node)

    def _visit_dictcomp(self, node: ast.DictComp) -> None:
        self._visit_comprehension_node(node)

    def _visit_lambda(self, node: ast.Lambda) -> None:
        params = [
            ast.Name(arg.arg)
            for arg in (*node.args.posonlyargs, *node.args.args, *node.args.kwonlyargs)
        ]
        if node.args.vararg is not None:
            params.append(ast.Name(node.args.vararg.arg))
        if node.args.kwarg is not None:
            params.append(ast.Name(node.args.kwarg.arg))
        self._visit_all(node.args.defaults)
        self._scoped(params, [node.body])

    def _visit_namedexpr(self, node: ast.NamedExpr) -> None:
        self._visit(node.value)
