"""Template lexer.

Splits template source into DATA, OUTPUT and TAG tokens. Comments are
consumed and produce no token. Delimiters:

    {{ expr }}     output
    {% tag ... %}  statement tag
    {# ... #}      comment

A ``-`` directly inside a delimiter (``{%-``, ``-%}``, ``{{-``, ``-}}``)
strips whitespace from the neighbouring DATA on that side.

Closing delimiters are only recognised outside string literals and at
bracket depth zero, so ``{{ {"a": {"b": 1}} }}`` and ``{% if x == "%}" %}``
tokenize as expected.
"""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum

from autopreview.exceptions import ErrorCode, TemplateSyntaxError

_OPENER = re.compile(r"\{[{%#]")

_CLOSERS = {"{{": "}}", "{%": "%}"}

_OPEN_BRACKETS = "([{"
_CLOSE_BRACKETS = ")]}"


class TokenType(Enum):
    DATA = "data"
    OUTPUT = "output"
    TAG = "tag"


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical unit with its 1-based line and 0-based column."""

    type: TokenType
    value: str
    lineno: int
    col_offset: int


class Lexer:
    """Tokenize one template source.

    Thread-safe: all state lives in the instance; create one per source.
    """

    def __init__(self, source: str, name: str | None = None) -> None:
        self._source = source
        self._name = name
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", source)]

    def _position(self, offset: int) -> tuple[int, int]:
        lineno = bisect_right(self._line_starts, offset)
        return lineno, offset - self._line_starts[lineno - 1]

    def _error(self, message: str, offset: int, code: ErrorCode) -> TemplateSyntaxError:
        lineno, _ = self._position(offset)
        return TemplateSyntaxError(
            message, lineno=lineno, name=self._name, source=self._source, code=code
        )

    def tokenize(self) -> list[Token]:
        source = self._source
        tokens: list[Token] = []
        pos = 0
        strip_next = False

        while pos < len(source):
            match = _OPENER.search(source, pos)
            data_end = match.start() if match else len(source)
            data_start = pos
            data = source[pos:data_end]
            if strip_next:
                stripped = data.lstrip()
                data_start += len(data) - len(stripped)
                data = stripped
                strip_next = False

            if match is None:
                self._append_data(tokens, data, data_start)
                break

            opener = match.group()
            inner_start = match.end()
            if source.startswith("-", inner_start):
                inner_start += 1
                data = data.rstrip()
            self._append_data(tokens, data, data_start)

            if opener == "{#":
                end = source.find("#}", inner_start)
                if end == -1:
                    raise self._error("Unclosed comment", match.start(), ErrorCode.UNCLOSED_COMMENT)
                strip_next = source[end - 1] == "-" and end > inner_start
                pos = end + 2
                continue

            closer = _CLOSERS[opener]
            end = self._find_close(inner_start, closer)
            if end == -1:
                code = ErrorCode.UNCLOSED_OUTPUT if opener == "{{" else ErrorCode.UNCLOSED_TAG
                raise self._error(f"Missing '{closer}'", match.start(), code)

            body = source[inner_start:end]
            if body.endswith("-"):
                body = body[:-1]
                strip_next = True
            lineno, col = self._position(match.start())
            token_type = TokenType.OUTPUT if opener == "{{" else TokenType.TAG
            tokens.append(Token(token_type, body.strip(), lineno, col))
            pos = end + len(closer)

        return tokens

    def _append_data(self, tokens: list[Token], data: str, offset: int) -> None:
        if data:
            lineno, col = self._position(offset)
            tokens.append(Token(TokenType.DATA, data, lineno, col))

    def _find_close(self, start: int, closer: str) -> int:
        """Offset of ``closer`` outside quotes and brackets, or -1."""
        source = self._source
        quote: str | None = None
        depth = 0
        i = start
        while i < len(source):
            ch = source[i]
            if quote:
                if ch == "\\":
                    i += 2
                    continue
                if ch == quote:
                    quote = None
            elif ch in "\"'":
                quote = ch
            elif ch in _OPEN_BRACKETS:
                depth += 1
            elif ch in _CLOSE_BRACKETS and depth > 0:
                depth -= 1
            elif depth == 0 and source.startswith(closer, i):
                return i
            i += 1
        return -1


def tokenize(source: str, name: str | None = None) -> list[Token]:
    """Tokenize ``source``; raises TemplateSyntaxError on unclosed delimiters."""
    return Lexer(source, name).tokenize()
