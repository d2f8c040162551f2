"""Exceptions for the autopreview engine.

Exception Hierarchy:
PreviewError (base)
├── TemplateSyntaxError       # Lexing/parsing a template failed
├── BranchParseError          # Compiled source could not be parsed for branches
├── PermutationLimitError     # Exhaustive permutations requested for too many variables
└── IsolationError            # Sandbox process could not run or misbehaved

Recovery rules:
- TemplateSyntaxError and BranchParseError are fatal to the caller.
- IsolationError never escapes `CoverageRunner.run()`; the runner turns it
  into a degraded CoverageResult with a single failed output.
- Failures inside a template during one permutation are not exceptions at
  this level at all: the sandbox captures them as failed outputs.

Example:
    ```
    AP-PAR-002: Unclosed 'if' block opened (card.html:3)
       |
    >  3 | {% if user.is_admin %}
       |
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from autopreview import terminal


class ErrorCode(Enum):
    """Searchable error codes.

    Format: AP-{CATEGORY}-{NUMBER}
    Categories: LEX (lexer), PAR (parser), ANL (analysis), RUN (runner)
    """

    # Lexer errors (AP-LEX-xxx)
    UNCLOSED_TAG = "AP-LEX-001"
    UNCLOSED_COMMENT = "AP-LEX-002"
    UNCLOSED_OUTPUT = "AP-LEX-003"

    # Parser errors (AP-PAR-xxx)
    UNKNOWN_TAG = "AP-PAR-001"
    UNCLOSED_BLOCK = "AP-PAR-002"
    INVALID_EXPRESSION = "AP-PAR-003"
    UNEXPECTED_TAG = "AP-PAR-004"

    # Analysis errors (AP-ANL-xxx)
    UNPARSABLE_SOURCE = "AP-ANL-001"
    PERMUTATION_LIMIT = "AP-ANL-002"

    # Runner errors (AP-RUN-xxx)
    SANDBOX_FAILED = "AP-RUN-001"
    SANDBOX_TIMEOUT = "AP-RUN-002"

    @property
    def category(self) -> str:
        """Error category (e.g., 'lexer', 'parser', 'analysis', 'runner')."""
        prefix = self.value.split("-")[1]
        return {
            "LEX": "lexer",
            "PAR": "parser",
            "ANL": "analysis",
            "RUN": "runner",
        }.get(prefix, "unknown")


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template lines around an error line, for display."""

    lines: tuple[tuple[int, str], ...]
    error_line: int

    def format(self) -> str:
        parts: list[str] = [terminal.dim_text("   |")]
        for lineno, content in self.lines:
            parts.append(
                terminal.format_source_line(lineno, content, is_error=lineno == self.error_line)
            )
        parts.append(terminal.dim_text("   |"))
        return "\n".join(parts)


def build_source_snippet(source: str, error_line: int, *, context_lines: int = 1) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line)


class PreviewError(Exception):
    """Base exception for all autopreview errors.

    Attributes:
        code: Optional ErrorCode identifying the failure.
    """

    code: ErrorCode | None = None

    def format_compact(self) -> str:
        """Format as ``CODE: message`` without traceback noise."""
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{self.code.value}: {header}"
        return header


class TemplateSyntaxError(PreviewError):
    """Template source could not be tokenized or parsed.

    When ``source`` and ``lineno`` are provided the message carries a
    snippet of the offending template line.
    """

    code: ErrorCode | None = ErrorCode.UNKNOWN_TAG

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        source: str | None = None,
        code: ErrorCode | None = None,
    ):
        self.message = message
        self.lineno = lineno
        self.name = name
        self.source = source
        if code is not None:
            self.code = code
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        location = self.name or "<template>"
        if self.lineno:
            location += f":{self.lineno}"
        msg = f"{self.message} ({location})"
        if self.source and self.lineno:
            snippet = build_source_snippet(self.source, self.lineno)
            msg += "\n" + snippet.format()
        return msg


class BranchParseError(PreviewError):
    """Compiled template source is not valid Python.

    Branch extraction has no partial mode: callers get this error and no
    branch list.
    """

    code: ErrorCode | None = ErrorCode.UNPARSABLE_SOURCE

    def __init__(self, message: str, lineno: int | None = None):
        self.lineno = lineno
        super().__init__(message if lineno is None else f"{message} (line {lineno})")


class PermutationLimitError(PreviewError):
    """Exhaustive True/False permutations requested for too many variables."""

    code: ErrorCode | None = ErrorCode.PERMUTATION_LIMIT

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"{count} conditional variables exceed the exhaustive permutation limit of {limit}; "
            "use PermutationSynthesizer instead"
        )


class IsolationError(PreviewError):
    """The sandbox process could not execute a permutation."""

    code: ErrorCode | None = ErrorCode.SANDBOX_FAILED

    def __init__(self, message: str, stderr: str = "", code: ErrorCode | None = None):
        self.stderr = stderr
        if code is not None:
            self.code = code
        super().__init__(message)
