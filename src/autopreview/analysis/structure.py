"""Template structural analysis.

The branch extractor sees compiled Python, where a ``{% case %}`` is just a
``match`` and a loop variable is just a name. This analyzer works on the
original template instead: the template parser (recover mode) separates
tags from text, and each embedded code fragment is re-parsed with ``ast``
to recover:

- **case facts**: the literal values of every ``when`` clause;
- **block conditionals**: conditions on a loop variable inside
  ``{% for var in path %}``, realised later by iterator stubs;
- **computed variables**: ``set``/walrus targets assigned from
  non-trivial expressions, plus the predicate-shaped paths they depend on;
- **string comparisons**: ``X == "literal"`` targets.

A fragment that does not parse on its own is skipped; the rest of the
template is still analysed.

Example:
    >>> analyzer = TemplateStructureAnalyzer('{% case kind %}{% when "a", "b" %}x{% end %}')
    >>> analyzer.case_values()
    {'kind': ['a', 'b']}

"""

from __future__ import annotations

import ast
import builtins
import logging
from collections.abc import Callable
from typing import Any

from autopreview.analysis.facts import (
    BlockConditionalFact,
    CaseFact,
    ComputedVariableFact,
    StringComparisonFact,
    TemplateFacts,
)
from autopreview.analysis.identifiers import resolve_path, root_name
from autopreview.analysis.visitor import visit_children, walk
from autopreview.config import DEFAULT_CONFIG, PreviewConfig
from autopreview.exceptions import TemplateSyntaxError
from autopreview.template.lexer import tokenize
from autopreview.template.nodes import (
    Case,
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

_BUILTIN_NAMES = frozenset(dir(builtins))


def _parse_fragment(code: str, mode: str = "eval") -> ast.AST | None:
    code = code.strip()
    if not code:
        return None
    try:
        tree = ast.parse(code, mode=mode)
    except SyntaxError as exc:
        logger.debug("Skipping unparsable fragment %r: %s", code, exc.msg)
        return None
    return tree.body if isinstance(tree, ast.Expression) else tree


def _case_subject(node: ast.expr) -> tuple[str, bool]:
    """Display text of a case subject and whether it can be forced.

    Only identifier paths rooted at a non-builtin name are forced; a
    subject such as ``len(items)`` is kept as source text.
    """
    path = resolve_path(node)
    if path is None or root_name(path) in _BUILTIN_NAMES:
        return ast.unparse(node), False
    return path, True


def is_computed(node: ast.AST | None) -> bool:
    """True when assigning ``node`` runs real computation.

    Calls with a receiver or arguments, attribute and subscript access,
    comparisons, arithmetic, ``not``, conditional expressions and boolean
    combinations are computed; so is any container holding one. A bare
    literal, a bare name or an argument-less plain call is not.
    """
    if node is None:
        return False
    if isinstance(node, ast.Call):
        return isinstance(node.func, ast.Attribute) or bool(node.args or node.keywords)
    if isinstance(
        node, (ast.Attribute, ast.Subscript, ast.Compare, ast.BinOp, ast.IfExp, ast.BoolOp)
    ):
        return True
    if isinstance(node, ast.UnaryOp):
        return isinstance(node.op, ast.Not) or is_computed(node.operand)
    if isinstance(node, (ast.Tuple, ast.List, ast.Set)):
        return any(is_computed(element) for element in node.elts)
    if isinstance(node, ast.Dict):
        return any(is_computed(part) for part in (*node.keys, *node.values))
    if isinstance(node, ast.JoinedStr):
        return any(is_computed(part) for part in node.values)
    if isinstance(node, ast.FormattedValue):
        return is_computed(node.value)
    return False


class TemplateStructureAnalyzer:
    """Recover case, loop, computed-variable and comparison facts.

    ``analyze()`` is cheap and idempotent; the fact properties and the
    convenience maps call it on first use.
    """

    def __init__(self, source: str, config: PreviewConfig | None = None) -> None:
        self._source = source
        self._config = config or DEFAULT_CONFIG
        self._facts: TemplateFacts | None = None
        self._cases: list[CaseFact] = []
        self._blocks: list[BlockConditionalFact] = []
        self._computed: dict[str, ComputedVariableFact] = {}
        self._comparisons: dict[str, list[str]] = {}
        self._case_forced: dict[str, list[Any]] = {}
        self._dispatch: dict[str, Callable[[Any], None]] = {}
        for name in dir(self):
            if name.startswith("_visit_") and name != "_visit_children":
                method = getattr(self, name)
                if callable(method):
                    self._dispatch[name[7:]] = method

    def analyze(self) -> TemplateFacts:
        self._cases = []
        self._blocks = []
        self._computed = {}
        self._comparisons = {}
        self._case_forced = {}

        tree = self._parse()
        if tree is not None:
            self._visit(tree)

        self._facts = TemplateFacts(
            case_facts=tuple(self._cases),
            block_conditionals=tuple(self._blocks),
            computed_variables=tuple(self._computed.values()),
            string_comparisons=tuple(
                StringComparisonFact(subject, tuple(values))
                for subject, values in self._comparisons.items()
            ),
        )
        return self._facts

    def _parse(self) -> TemplateNode | None:
        if not self._source.strip():
            return None
        try:
            tokens = tokenize(self._source)
        except TemplateSyntaxError as exc:
            logger.debug("Template does not tokenize; no structural facts: %s", exc)
            return None
        return Parser(tokens, source=self._source, recover=True).parse()

    @property
    def facts(self) -> TemplateFacts:
        if self._facts is None:
            return self.analyze()
        return self._facts

    @property
    def case_facts(self) -> tuple[CaseFact, ...]:
        return self.facts.case_facts

    @property
    def block_conditionals(self) -> tuple[BlockConditionalFact, ...]:
        return self.facts.block_conditionals

    @property
    def computed_variables(self) -> tuple[ComputedVariableFact, ...]:
        return self.facts.computed_variables

    @property
    def string_comparison_facts(self) -> tuple[StringComparisonFact, ...]:
        return self.facts.string_comparisons

    # ─────────────────────────────────────────────────────────────────────────
    # Convenience maps (synthesizer inputs)
    # ─────────────────────────────────────────────────────────────────────────

    def case_values(self) -> dict[str, list[Any]]:
        """Subject -> forced values, merged across case statements.

        Non-string literals (``1``, ``None``) are converted back to their
        values so that forcing them matches the compiled pattern.
        """
        if self._facts is None:
            self.analyze()
        return {subject: list(values) for subject, values in self._case_forced.items()}

    def string_comparisons(self) -> dict[str, list[str]]:
        return {fact.subject: list(fact.values) for fact in self.string_comparison_facts}

    def computed_names(self) -> list[str]:
        return [fact.name for fact in self.computed_variables]

    def computed_dependencies(self) -> dict[str, list[str]]:
        return {
            fact.name: list(fact.dependencies)
            for fact in self.computed_variables
            if fact.dependencies
        }

    def block_triples(self) -> list[tuple[str, str, tuple[str, ...]]]:
        return [(fact.iterator, fact.variable, fact.conditions) for fact in self.block_conditionals]

    # ─────────────────────────────────────────────────────────────────────────
    # Template node visitors
    # ─────────────────────────────────────────────────────────────────────────

    def _visit(self, node: Node) -> None:
        handler = self._dispatch.get(type(node).__name__.lower())
        if handler is not None:
            handler(node)
        else:
            visit_children(node, self._visit)

    def _visit_output(self, node: Output) -> None:
        self._scan(_parse_fragment(node.expr))

    def _visit_if(self, node: If) -> None:
        self._scan(_parse_fragment(node.test))
        for arm in node.elif_:
            self._scan(_parse_fragment(arm.test))
        visit_children(node, self._visit)

    def _visit_unless(self, node: Unless) -> None:
        self._scan(_parse_fragment(node.test))
        visit_children(node, self._visit)

    def _visit_case(self, node: Case) -> None:
        subject = _parse_fragment(node.subject)
        self._scan(subject)
        if isinstance(subject, ast.expr):
            text, forceable = _case_subject(subject)
            values: list[str] = []
            forced = self._case_forced.setdefault(text, []) if forceable else []
            for arm in node.whens:
                for display, value in _when_values(arm.values):
                    if display not in values:
                        values.append(display)
                    if not any(type(v) is type(value) and v == value for v in forced):
                        forced.append(value)
            self._cases.append(CaseFact(text, tuple(values)))
        visit_children(node, self._visit)

    def _visit_for(self, node: For) -> None:
        self._scan(_parse_fragment(node.iter))
        self._block_conditional(node)
        visit_children(node, self._visit)

    def _visit_set(self, node: Set) -> None:
        module = _parse_fragment(node.code, mode="exec")
        if not isinstance(module, ast.Module):
            return
        for statement in module.body:
            if isinstance(statement, ast.Assign):
                self._assignment(statement.targets, statement.value)
            self._scan(statement)

    # ─────────────────────────────────────────────────────────────────────────
    # Fact extraction
    # ─────────────────────────────────────────────────────────────────────────

    def _scan(self, tree: ast.AST | None) -> None:
        """Collect string comparisons and walrus assignments in a fragment."""
        if tree is None:
            return
        for sub in ast.walk(tree):
            if isinstance(sub, ast.Compare):
                self._comparison(sub)
            elif isinstance(sub, ast.NamedExpr):
                self._assignment([sub.target], sub.value)

    def _comparison(self, node: ast.Compare) -> None:
        if len(node.ops) != 1 or not isinstance(node.ops[0], ast.Eq):
            return
        literal = node.comparators[0]
        if not (isinstance(literal, ast.Constant) and isinstance(literal.value, str)):
            return
        subject = resolve_path(node.left)
        if subject is None or root_name(subject) in _BUILTIN_NAMES:
            return
        values = self._comparisons.setdefault(subject, [])
        if literal.value not in values:
            values.append(literal.value)

    def _assignment(self, targets: list[ast.expr], value: ast.expr) -> None:
        for target in targets:
            if isinstance(target, ast.Name):
                if is_computed(value):
                    self._add_computed(target.id, self._dependencies(value))
            elif isinstance(target, (ast.Tuple, ast.List)):
                # Multiple assignment: every name target is computed
                for sub in ast.walk(target):
                    if isinstance(sub, ast.Name):
                        self._add_computed(sub.id, ())

    def _add_computed(self, name: str, dependencies: tuple[str, ...]) -> None:
        existing = self._computed.get(name)
        if existing is not None:
            merged = existing.dependencies + tuple(
                d for d in dependencies if d not in existing.dependencies
            )
            self._computed[name] = ComputedVariableFact(name, merged)
        else:
            self._computed[name] = ComputedVariableFact(name, dependencies)

    def _dependencies(self, value: ast.expr) -> tuple[str, ...]:
        """Predicate-shaped paths read by ``value``."""
        found: list[str] = []
        for sub in ast.walk(value):
            path: str | None = None
            if isinstance(sub, ast.Attribute) and self._config.is_predicate(sub.attr):
                path = resolve_path(sub)
            elif (
                isinstance(sub, ast.Call)
                and isinstance(sub.func, ast.Name)
                and self._config.is_predicate(sub.func.id)
            ):
                path = sub.func.id
            if path is not None and root_name(path) not in _BUILTIN_NAMES and path not in found:
                found.append(path)
        return tuple(found)

    def _block_conditional(self, node: For) -> None:
        target = _parse_fragment(node.target)
        iterable = _parse_fragment(node.iter)
        if not isinstance(target, ast.Name) or not _is_dotted(iterable):
            return
        variable = target.id

        conditions: list[str] = []
        for child in walk(node, stop=lambda n: isinstance(n, For)):
            if isinstance(child, If):
                tests = [child.test, *(arm.test for arm in child.elif_)]
            elif isinstance(child, Unless):
                tests = [child.test]
            else:
                continue
            for test in tests:
                attr = _loop_attribute(_parse_fragment(test), variable)
                if attr is not None and attr not in conditions:
                    conditions.append(attr)

        if conditions:
            self._blocks.append(
                BlockConditionalFact(ast.unparse(iterable), variable, tuple(conditions))
            )


def _is_dotted(node: ast.AST | None) -> bool:
    while isinstance(node, ast.Attribute):
        node = node.value
    return isinstance(node, ast.Name)


def _loop_attribute(test: ast.AST | None, variable: str) -> str | None:
    """``attr`` when ``test`` is exactly ``variable.attr`` or ``variable.attr()``."""
    if isinstance(test, ast.Call) and not test.args and not test.keywords:
        test = test.func
    if (
        isinstance(test, ast.Attribute)
        and isinstance(test.value, ast.Name)
        and test.value.id == variable
    ):
        return test.attr
    return None


def _when_values(clause: str) -> list[tuple[str, Any]]:
    """``(display, forced)`` pairs for one ``when`` clause.

    String literals display unquoted; other values display as source text.
    Number, boolean and None literals are forced as values so they match
    the compiled pattern; anything else is forced as its text.
    """
    parsed = _parse_fragment(f"({clause},)") if clause.strip() else None
    if not isinstance(parsed, ast.Tuple):
        return []
    pairs: list[tuple[str, Any]] = []
    for element in parsed.elts:
        if isinstance(element, ast.Constant) and isinstance(element.value, str):
            pairs.append((element.value, element.value))
        elif isinstance(element, ast.Constant) and (
            element.value is None or isinstance(element.value, (bool, int, float))
        ):
            pairs.append((ast.unparse(element), element.value))
        else:
            text = ast.unparse(element)
            pairs.append((text, text))
    return pairs
