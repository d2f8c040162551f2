"""Conditional branch extraction from compiled template source.

Parses the compiled unit's Python source with ``ast`` and walks the whole
tree, recording every ``if`` / ``unless`` / ``case`` site with the
identifiers its condition reads. Branches nest, so traversal always
continues into the children of a branch node.

Mapping from compiled Python back to template constructs:

| Python                       | Branch kind |
|------------------------------|-------------|
| ``if X:`` / ``elif X:``      | ``if``      |
| ``if not (X):  # unless``    | ``unless``  |
| ``if not X:``                | ``if``      |
| ``a if X else b``            | ``if``      |
| ``match X:``                 | ``case``    |

Conditions that only read reserved ``__ap_`` names are generated plumbing
(the ``{% empty %}`` flag) and are not reported as branches, although
their arcs are still described as branch sites.

"""

from __future__ import annotations

import ast
import itertools
import logging
from collections.abc import Callable, Mapping

from autopreview.analysis.facts import BranchSite, ConditionalBranch
from autopreview.analysis.identifiers import IdentifierCollector, root_name
from autopreview.config import DEFAULT_CONFIG, PreviewConfig
from autopreview.constants import UNLESS_MARKER, is_reserved
from autopreview.exceptions import BranchParseError, PermutationLimitError
from autopreview.permutations import Permutation

logger = logging.getLogger(__name__)


def _is_wildcard(case: ast.match_case) -> bool:
    pattern = case.pattern
    return (
        case.guard is None
        and isinstance(pattern, ast.MatchAs)
        and pattern.pattern is None
        and pattern.name is None
    )


def _literal(node: ast.AST) -> tuple[bool, object]:
    try:
        return True, ast.literal_eval(node)  # type: ignore[arg-type]
    except (ValueError, TypeError, SyntaxError):
        return False, None


def _pattern_values(case: ast.match_case) -> tuple[object, ...]:
    """Literal values a ``case`` arm matches."""
    pattern = case.pattern
    candidates: list[ast.AST] = []
    if isinstance(pattern, ast.MatchOr):
        candidates.extend(p.value for p in pattern.patterns if isinstance(p, ast.MatchValue))
        candidates.extend(
            ast.Constant(p.value) for p in pattern.patterns if isinstance(p, ast.MatchSingleton)
        )
    elif isinstance(pattern, ast.MatchValue):
        candidates.append(pattern.value)
    elif isinstance(pattern, ast.MatchSingleton):
        candidates.append(ast.Constant(pattern.value))
    elif case.guard is not None and isinstance(case.guard, ast.Compare):
        # case __ap_when if __ap_when in (a, b):
        container = case.guard.comparators[0]
        if isinstance(container, (ast.Tuple, ast.List)):
            candidates.extend(container.elts)

    values: list[object] = []
    for candidate in candidates:
        ok, value = _literal(candidate)
        if ok and value not in values:
            values.append(value)
    return tuple(values)


class BranchExtractor:
    """Collect ConditionalBranch records from compiled Python source.

    Node dispatch is O(1) through a table keyed by lowercase node type name,
    built from the ``_visit_<type>`` methods; other node types get a generic
    child walk.

    Example:
        >>> extractor = BranchExtractor("if user.is_admin:\\n    pass\\n")
        >>> [b.identifiers for b in extractor.analyze()]
        [('user.is_admin',)]
    """

    def __init__(self, source: str, config: PreviewConfig | None = None) -> None:
        self._source = source
        self._lines = source.splitlines()
        self._config = config or DEFAULT_CONFIG
        self._collector = IdentifierCollector()
        self._branches: list[ConditionalBranch] = []
        self._sites: dict[int, BranchSite] = {}
        self._analyzed = False
        self._dispatch: dict[str, Callable[..., None]] = {}
        for name in dir(self):
            if name.startswith("_visit_") and name != "_visit_children":
                method = getattr(self, name)
                if callable(method):
                    self._dispatch[name[7:]] = method

    def analyze(self) -> list[ConditionalBranch]:
        """Walk the source; raises BranchParseError if it does not parse."""
        try:
            tree = ast.parse(self._source)
        except SyntaxError as exc:
            raise BranchParseError(f"Cannot parse compiled source: {exc.msg}", exc.lineno) from exc

        self._branches = []
        self._sites = {}
        self._visit(tree)
        self._analyzed = True
        logger.debug("Found %d branches at %d sites", len(self._branches), len(self._sites))
        return list(self._branches)

    @property
    def branches(self) -> tuple[ConditionalBranch, ...]:
        if not self._analyzed:
            self.analyze()
        return tuple(self._branches)

    @property
    def sites(self) -> Mapping[int, BranchSite]:
        """Branch sites keyed by compiled line."""
        if not self._analyzed:
            self.analyze()
        return dict(self._sites)

    def conditional_variables(self) -> list[str]:
        """Union of every branch's identifiers, first-seen order."""
        variables: list[str] = []
        for branch in self.branches:
            for identifier in branch.identifiers:
                if identifier not in variables:
                    variables.append(identifier)
        return variables

    def generate_permutations(self) -> list[Permutation]:
        """Every True/False combination of the conditional variables.

        Exponential; raises PermutationLimitError above
        ``config.exhaustive_limit`` variables. The synthesizer in
        ``autopreview.permutations`` is the scalable alternative.
        """
        variables = self.conditional_variables()
        if not variables:
            return [Permutation()]
        if len(variables) > self._config.exhaustive_limit:
            raise PermutationLimitError(len(variables), self._config.exhaustive_limit)
        return [
            Permutation(zip(variables, values, strict=True))
            for values in itertools.product((True, False), repeat=len(variables))
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # Traversal
    # ─────────────────────────────────────────────────────────────────────────

    def _visit(self, node: ast.AST) -> None:
        handler = self._dispatch.get(type(node).__name__.lower())
        if handler is not None:
            handler(node)
        else:
            self._visit_children(node)

    def _visit_children(self, node: ast.AST) -> None:
        for child in ast.iter_child_nodes(node):
            self._visit(child)

    def _record(self, kind: str, condition: ast.expr, lineno: int) -> bool:
        """Add a branch unless it is generated plumbing; True if added."""
        identifiers = self._collector.collect(condition)
        if identifiers and all(is_reserved(root_name(i)) for i in identifiers):
            return False
        identifiers = [i for i in identifiers if not is_reserved(root_name(i))]
        self._branches.append(
            ConditionalBranch(kind, ast.unparse(condition), tuple(identifiers), lineno)
        )
        return True

    def _visit_if(self, node: ast.If) -> None:
        test = node.test
        kind = "if"
        if self._is_unless(node) and isinstance(test, ast.UnaryOp) and isinstance(test.op, ast.Not):
            kind, test = "unless", test.operand

        if self._record(kind, test, node.lineno):
            taken, other = ("then", "else")
        else:
            # if not __ap_loop_N: the {% empty %} arm of a loop
            kind, taken, other = "for", "empty", "exit"
        self._sites[node.lineno] = BranchSite(
            node.lineno, kind, node.body[0].lineno, taken, other, node.lineno
        )
        self._visit_children(node)

    def _is_unless(self, node: ast.If) -> bool:
        """True for the ``if`` a template {% unless %} compiled to."""
        if node.lineno > len(self._lines):
            return False
        return self._lines[node.lineno - 1].rstrip().endswith(UNLESS_MARKER)

    def _visit_ifexp(self, node: ast.IfExp) -> None:
        self._record("if", node.test, node.lineno)
        self._visit_children(node)

    def _visit_match(self, node: ast.Match) -> None:
        self._record("case", node.subject, node.lineno)
        for case in node.cases:
            if _is_wildcard(case):
                continue
            lineno = case.pattern.lineno
            self._sites[lineno] = BranchSite(
                lineno,
                "case",
                case.body[0].lineno,
                "when",
                "else",
                node.lineno,
                _pattern_values(case),
            )
        self._visit_children(node)

    def _visit_for(self, node: ast.For) -> None:
        self._sites[node.lineno] = BranchSite(
            node.lineno, "for", node.body[0].lineno, "loop", "exit", node.lineno
        )
        self._visit_children(node)

