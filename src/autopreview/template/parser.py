"""Template parser.

Builds an immutable node tree from the token stream. Block tags are
closed by ``{% end %}`` or their ``{% end<tag> %}`` alias.

Two modes:
- **strict** (default): unbalanced or misplaced tags raise
  TemplateSyntaxError; with ``validate=True`` every embedded expression
  must also parse as Python. The compiler uses strict + validate.
- **recover**: unterminated blocks are closed at end of input and stray
  tags are dropped. The structural analyzer uses this so that a damaged
  template still yields whatever facts can be recovered.

"""

from __future__ import annotations

import ast
import logging
import re
from collections.abc import Callable, Sequence

from autopreview.exceptions import ErrorCode, TemplateSyntaxError
from autopreview.template.lexer import Token, TokenType
from autopreview.template.nodes import (
    Case,
    Data,
    Elif,
    For,
    If,
    Node,
    Output,
    Set,
    TemplateNode,
    Unless,
    When,
)

logger = logging.getLogger(__name__)

_FOR_HEADER = re.compile(r"^(?P<target>.+?)\s+in\s+(?P<iter>.+)$", re.DOTALL)

_END_ALIASES = {
    "if": frozenset({"end", "endif"}),
    "unless": frozenset({"end", "endunless"}),
    "case": frozenset({"end", "endcase"}),
    "for": frozenset({"end", "endfor"}),
}

# Tags that only make sense inside an open block
_CONTINUATIONS = frozenset(
    {"elif", "else", "when", "empty", "end", "endif", "endunless", "endcase", "endfor"}
)


class Parser:
    """Parse a token list into a TemplateNode.

    Example:
        >>> from autopreview.template.lexer import tokenize
        >>> tree = Parser(tokenize("{% if x %}yes{% end %}")).parse()
        >>> type(tree.body[0]).__name__
        'If'
    """

    def __init__(
        self,
        tokens: Sequence[Token],
        *,
        source: str | None = None,
        name: str | None = None,
        validate: bool = False,
        recover: bool = False,
    ) -> None:
        self._tokens = tokens
        self._source = source
        self._name = name
        self._validate = validate
        self._recover = recover
        self._pos = 0
        self._dispatch: dict[str, Callable[[Token, str], Node]] = {
            "if": self._parse_if,
            "unless": self._parse_unless,
            "case": self._parse_case,
            "for": self._parse_for,
            "set": self._parse_set,
        }

    def parse(self) -> TemplateNode:
        body, _ = self._parse_body(frozenset(), opener=None)
        return TemplateNode(lineno=1, col_offset=0, body=tuple(body), name=self._name)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _error(self, message: str, token: Token, code: ErrorCode) -> TemplateSyntaxError:
        return TemplateSyntaxError(
            message, lineno=token.lineno, name=self._name, source=self._source, code=code
        )

    def _reject(self, message: str, token: Token, code: ErrorCode) -> None:
        """Raise in strict mode, log and continue in recover mode."""
        if not self._recover:
            raise self._error(message, token, code)
        logger.debug("Skipping %s at line %d: %s", token.value, token.lineno, message)

    @staticmethod
    def _split_tag(token: Token) -> tuple[str, str]:
        parts = token.value.split(None, 1)
        if not parts:
            return "", ""
        return parts[0], parts[1].strip() if len(parts) > 1 else ""

    def _check(self, code: str, token: Token, mode: str = "eval") -> None:
        if not self._validate:
            return
        if not code.strip():
            raise self._error(f"Missing expression in '{token.value}'", token, ErrorCode.INVALID_EXPRESSION)
        try:
            ast.parse(code.strip(), mode=mode)
        except SyntaxError as exc:
            raise self._error(
                f"Invalid Python in '{token.value}': {exc.msg}", token, ErrorCode.INVALID_EXPRESSION
            ) from exc

    def _parse_body(
        self, stop: frozenset[str], opener: Token | None
    ) -> tuple[list[Node], Token | None]:
        """Parse nodes until a tag in ``stop``; return them and the stop token."""
        nodes: list[Node] = []
        while self._pos < len(self._tokens):
            token = self._tokens[self._pos]
            self._pos += 1

            if token.type is TokenType.DATA:
                nodes.append(Data(token.lineno, token.col_offset, token.value))
                continue
            if token.type is TokenType.OUTPUT:
                self._check(token.value, token)
                nodes.append(Output(token.lineno, token.col_offset, token.value))
                continue

            keyword, args = self._split_tag(token)
            if keyword in stop:
                return nodes, token
            handler = self._dispatch.get(keyword)
            if handler is not None:
                nodes.append(handler(token, args))
            elif keyword in _CONTINUATIONS:
                self._reject(f"Unexpected '{keyword}'", token, ErrorCode.UNEXPECTED_TAG)
            else:
                self._reject(f"Unknown tag '{keyword}'", token, ErrorCode.UNKNOWN_TAG)

        if opener is not None:
            keyword, _ = self._split_tag(opener)
            self._reject(
                f"Unclosed '{keyword}' block opened", opener, ErrorCode.UNCLOSED_BLOCK
            )
        return nodes, None

    # ─────────────────────────────────────────────────────────────────────────
    # Block tags
    # ─────────────────────────────────────────────────────────────────────────

    def _parse_if(self, token: Token, test: str) -> If:
        self._check(test, token)
        ends = _END_ALIASES["if"]
        body, term = self._parse_body(ends | {"elif", "else"}, token)

        elifs: list[Elif] = []
        while term is not None and self._split_tag(term)[0] == "elif":
            elif_test = self._split_tag(term)[1]
            self._check(elif_test, term)
            elif_body, next_term = self._parse_body(ends | {"elif", "else"}, token)
            elifs.append(Elif(term.lineno, term.col_offset, elif_test, tuple(elif_body)))
            term = next_term

        else_: list[Node] = []
        if term is not None and self._split_tag(term)[0] == "else":
            else_, term = self._parse_body(ends, token)

        return If(token.lineno, token.col_offset, test, tuple(body), tuple(elifs), tuple(else_))

    def _parse_unless(self, token: Token, test: str) -> Unless:
        self._check(test, token)
        ends = _END_ALIASES["unless"]
        body, term = self._parse_body(ends | {"else"}, token)
        else_: list[Node] = []
        if term is not None and self._split_tag(term)[0] == "else":
            else_, term = self._parse_body(ends, token)
        return Unless(token.lineno, token.col_offset, test, tuple(body), tuple(else_))

    def _parse_case(self, token: Token, subject: str) -> Case:
        self._check(subject, token)
        ends = _END_ALIASES["case"]
        arms = ends | {"when", "else"}
        # Anything between {% case %} and the first {% when %} is dropped
        _, term = self._parse_body(arms, token)

        whens: list[When] = []
        while term is not None and self._split_tag(term)[0] == "when":
            values = self._split_tag(term)[1]
            self._check(f"({values},)" if values else "", term)
            when_body, next_term = self._parse_body(arms, token)
            whens.append(When(term.lineno, term.col_offset, values, tuple(when_body)))
            term = next_term

        else_: list[Node] = []
        if term is not None and self._split_tag(term)[0] == "else":
            else_, term = self._parse_body(ends, token)

        return Case(token.lineno, token.col_offset, subject, tuple(whens), tuple(else_))

    def _parse_for(self, token: Token, header: str) -> For:
        match = _FOR_HEADER.match(header)
        if match is None:
            if not self._recover:
                raise self._error(
                    f"Expected 'for <target> in <iterable>', got '{header}'",
                    token,
                    ErrorCode.INVALID_EXPRESSION,
                )
            target, iterable = header, ""
        else:
            target, iterable = match.group("target").strip(), match.group("iter").strip()
            self._check(f"for {target} in {iterable}: pass", token, mode="exec")

        ends = _END_ALIASES["for"]
        body, term = self._parse_body(ends | {"empty"}, token)
        empty: list[Node] = []
        if term is not None and self._split_tag(term)[0] == "empty":
            empty, term = self._parse_body(ends, token)
        return For(token.lineno, token.col_offset, target, iterable, tuple(body), tuple(empty))

    def _parse_set(self, token: Token, code: str) -> Set:
        self._check(code, token, mode="exec")
        if self._validate:
            statements = ast.parse(code.strip()).body
            if len(statements) != 1 or not isinstance(statements[0], ast.Assign):
                raise self._error(
                    f"Expected a single assignment in '{token.value}'",
                    token,
                    ErrorCode.INVALID_EXPRESSION,
                )
        return Set(token.lineno, token.col_offset, code)


def parse(
    tokens: Sequence[Token],
    *,
    source: str | None = None,
    name: str | None = None,
    validate: bool = False,
    recover: bool = False,
) -> TemplateNode:
    """Convenience wrapper around Parser."""
    return Parser(tokens, source=source, name=name, validate=validate, recover=recover).parse()
