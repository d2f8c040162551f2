"""autopreview: branch-coverage permutation engine for template previews.

Given a template, autopreview finds every conditional branch, synthesizes a
small set of variable assignments ("permutations") that together exercise
those branches, renders the template once per permutation against
auto-mocked data, and reports how much of the compiled template ran.

Quickstart:
    >>> from autopreview import verify_coverage_string
    >>> result = verify_coverage_string(
    ...     "{% if user.is_admin %}Admin{% else %}Guest{% end %}"
    ... )
    >>> result.branch_coverage
    100.0
    >>> [output.output for output in result.outputs]
    ['Admin', 'Guest']

Architecture:
Template Source → Lexer → Parser → Compiler → Python source on disk
→ {BranchExtractor, TemplateStructureAnalyzer} → PermutationSynthesizer
→ CoverageRunner (one sandbox process per permutation) → CoverageResult

Pipeline stages:
1. **Compiler**: template to module-level Python, one statement per line,
   with a compiled-line → template-line map
2. **Analysis**: branch sites and controlling identifiers from the compiled
   AST; case values, loop conditions, computed variables and string
   comparisons from the template
3. **Synthesis**: seeds, single flips, channel-specific values, bounded
   pairs and triples
4. **Execution**: ``python -m autopreview.coverage.sandbox`` per
   permutation under ``coverage`` line+branch measurement
5. **Aggregation**: merged percentages, hit counts, uncovered arcs

Preview without measurement:
    >>> from autopreview import render_preview
    >>> render_preview("Hello {{ user.name }}").output
    'Hello [mock:user.name]'

"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from autopreview.analysis import BranchExtractor, TemplateStructureAnalyzer
from autopreview.config import DEFAULT_CONFIG, PreviewConfig
from autopreview.coverage import CoverageResult, CoverageRunner, PermutationOutput
from autopreview.exceptions import (
    BranchParseError,
    ErrorCode,
    IsolationError,
    PermutationLimitError,
    PreviewError,
    TemplateSyntaxError,
)
from autopreview.permutations import Permutation, PermutationSynthesizer
from autopreview.runtime import ExecutionContext, MockValue, RenderResult, render_preview
from autopreview.template import CompiledUnit, TemplateCompiler

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_CONFIG",
    "BranchExtractor",
    "BranchParseError",
    "CompiledUnit",
    "CoverageResult",
    "CoverageRunner",
    "ErrorCode",
    "ExecutionContext",
    "IsolationError",
    "MockValue",
    "Permutation",
    "PermutationLimitError",
    "PermutationOutput",
    "PermutationSynthesizer",
    "PreviewConfig",
    "PreviewError",
    "RenderResult",
    "TemplateCompiler",
    "TemplateStructureAnalyzer",
    "TemplateSyntaxError",
    "__version__",
    "clean_compiled",
    "compile_template",
    "render_preview",
    "verify_coverage",
    "verify_coverage_string",
]

logger = logging.getLogger(__name__)


def compile_template(
    source: str, path: str | Path | None = None, config: PreviewConfig | None = None
) -> CompiledUnit:
    """Compile template text into a CompiledUnit in the artifact directory."""
    return TemplateCompiler(config).compile(source, path)


def verify_coverage(
    path: str | Path,
    locals: Mapping[str, Any] | None = None,
    config: PreviewConfig | None = None,
    *,
    targeted: bool = False,
) -> CoverageResult:
    """Compile the template at ``path`` and measure its branch coverage.

    Args:
        path: Template file.
        locals: Values bound before mocking; must survive a JSON round trip.
        config: Run settings; DEFAULT_CONFIG when omitted.
        targeted: When branches remain uncovered, run once more with
            permutations aimed at them; the second result is returned
            unless its branch coverage is lower.

    Raises:
        TemplateSyntaxError: The template does not compile.
        BranchParseError: The compiled unit is not valid Python.
    """
    unit = TemplateCompiler(config).compile_file(path)
    return _measure(unit, locals, config, targeted)


def verify_coverage_string(
    source: str,
    locals: Mapping[str, Any] | None = None,
    config: PreviewConfig | None = None,
    *,
    name: str | None = None,
    targeted: bool = False,
) -> CoverageResult:
    """Like verify_coverage, for template text."""
    unit = TemplateCompiler(config).compile(source, name)
    return _measure(unit, locals, config, targeted)


def _measure(
    unit: CompiledUnit,
    locals: Mapping[str, Any] | None,
    config: PreviewConfig | None,
    targeted: bool,
) -> CoverageResult:
    runner = CoverageRunner(unit, config, locals)
    result = runner.run()
    if not targeted or result.fully_covered or result.degraded:
        return result

    extra = result.targeted_permutations()
    if not extra:
        return result
    logger.debug("Re-running %s with %d targeted permutations", unit.unit_id, len(extra))
    retry = runner.run(extra)
    if retry.degraded or retry.branch_coverage < result.branch_coverage:
        return result
    return retry


def clean_compiled(config: PreviewConfig | None = None) -> int:
    """Delete compiled units from the artifact directory; returns the count."""
    artifact_dir = Path((config or DEFAULT_CONFIG).artifact_dir)
    if not artifact_dir.is_dir():
        return 0
    removed = 0
    for compiled in artifact_dir.glob("*.py"):
        compiled.unlink(missing_ok=True)
        removed += 1
    logger.debug("Removed %d compiled units from %s", removed, artifact_dir)
    return removed
