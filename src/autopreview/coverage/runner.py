"""Coverage runner: analysis, synthesis, isolated execution, aggregation.

Pipeline for one compiled unit:

1. BranchExtractor over the compiled source; TemplateStructureAnalyzer over
   the template source.
2. PermutationSynthesizer turns both into a bounded permutation list.
3. Every permutation runs in its own ``python -m autopreview.coverage.sandbox``
   process under line+branch measurement; the caller's own coverage session
   cannot interfere because ``COVERAGE_PROCESS_START`` is dropped from the
   child environment.
4. Per-permutation measurements are merged into one CoverageResult.

A template failing under one permutation is recorded on that permutation's
output and the run continues. A sandbox that cannot run at all (spawn
error, timeout, nonzero exit, unreadable output) degrades the whole run to
one failed output with zero coverage; ``run()`` does not raise for it.

Thread-Safety:
    Sandboxes are independent processes. With ``config.max_workers > 1``
    they run concurrently from a thread pool; outputs keep input order.

"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from autopreview.analysis.branches import BranchExtractor
from autopreview.analysis.structure import TemplateStructureAnalyzer
from autopreview.config import DEFAULT_CONFIG, PreviewConfig
from autopreview.coverage.result import CoverageResult, PermutationOutput, UncoveredBranch
from autopreview.exceptions import ErrorCode, IsolationError
from autopreview.permutations import Permutation, PermutationSynthesizer, dedupe
from autopreview.template.compiler import CompiledUnit

logger = logging.getLogger(__name__)

SANDBOX_MODULE = "autopreview.coverage.sandbox"

Arc = tuple[int, int]


@dataclass(frozen=True, slots=True)
class SandboxRun:
    """Parsed response of one sandbox process."""

    output: PermutationOutput
    executed_lines: frozenset[int]
    missing_lines: frozenset[int]
    executed_arcs: frozenset[Arc]
    missing_arcs: frozenset[Arc]


def sandbox_environment() -> dict[str, str]:
    """Child environment: no inherited coverage startup, package importable."""
    env = dict(os.environ)
    env.pop("COVERAGE_PROCESS_START", None)
    src_dir = str(Path(__file__).resolve().parents[2])
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = src_dir + (os.pathsep + existing if existing else "")
    return env


def _arcs(pairs: Iterable[Sequence[int]]) -> frozenset[Arc]:
    return frozenset((int(a), int(b)) for a, b in pairs)


def _percent(covered: int, total: int) -> float:
    return 100.0 if total == 0 else covered / total * 100.0


class CoverageRunner:
    """Measure how much of a compiled unit a synthesized permutation set covers.

    Example:
        >>> from autopreview.template import TemplateCompiler
        >>> unit = TemplateCompiler().compile("{% if flag %}on{% else %}off{% end %}")
        >>> result = CoverageRunner(unit).run()
        >>> result.branch_coverage
        100.0
    """

    def __init__(
        self,
        unit: CompiledUnit,
        config: PreviewConfig | None = None,
        locals: Mapping[str, Any] | None = None,
    ) -> None:
        self._unit = unit
        self._config = config or DEFAULT_CONFIG
        self._locals = dict(locals or {})
        self._env = sandbox_environment()

    @property
    def unit(self) -> CompiledUnit:
        return self._unit

    def permutations(self) -> tuple[BranchExtractor, TemplateStructureAnalyzer, list[Permutation]]:
        """Analyze the unit and synthesize its permutation list."""
        extractor = BranchExtractor(self._unit.python_source, self._config)
        extractor.analyze()
        analyzer = TemplateStructureAnalyzer(self._unit.template_source, self._config)
        analyzer.analyze()
        permutations = PermutationSynthesizer(self._config).synthesize(
            extractor.conditional_variables(),
            case_values=analyzer.case_values(),
            block_conditionals=analyzer.block_triples(),
            string_comparisons=analyzer.string_comparisons(),
            computed_variables=analyzer.computed_names(),
            computed_dependencies=analyzer.computed_dependencies(),
        )
        return extractor, analyzer, permutations

    def run(self, extra_permutations: Iterable[Mapping[str, Any]] = ()) -> CoverageResult:
        extractor, analyzer, permutations = self.permutations()
        permutations = dedupe([*permutations, *(Permutation(extra) for extra in extra_permutations)])
        branches = extractor.branches
        sites = extractor.sites
        facts = analyzer.facts
        logger.debug(
            "Running %d permutations of %s", len(permutations), self._unit.source_path or self._unit.unit_id
        )

        # Another compile may have replaced or removed the file since
        self._unit.write()
        try:
            runs = self._execute(permutations)
        except IsolationError as exc:
            logger.warning("Sandbox failed for %s: %s", self._unit.compiled_path, exc)
            return CoverageResult.failed(
                self._unit,
                str(exc),
                detail=exc.stderr,
                branches=branches,
                sites=sites,
                facts=facts,
            )

        return self._aggregate(runs, branches=branches, sites=sites, facts=facts)

    # ─────────────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────────────

    def _execute(self, permutations: Sequence[Permutation]) -> list[SandboxRun]:
        if self._config.max_workers > 1 and len(permutations) > 1:
            with ThreadPoolExecutor(max_workers=self._config.max_workers) as pool:
                return list(pool.map(self._run_one, permutations))
        return [self._run_one(permutation) for permutation in permutations]

    def _run_one(self, permutation: Permutation) -> SandboxRun:
        request = json.dumps(
            {
                "compiled_path": str(self._unit.compiled_path),
                "permutation": permutation.to_dict(),
                "locals": self._locals,
            },
            default=str,
        )
        try:
            completed = subprocess.run(
                [sys.executable, "-m", SANDBOX_MODULE],
                input=request,
                capture_output=True,
                text=True,
                timeout=self._config.timeout,
                env=self._env,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr.decode(errors="replace") if isinstance(exc.stderr, bytes) else exc.stderr or ""
            raise IsolationError(
                f"Sandbox timed out after {self._config.timeout}s",
                stderr=stderr,
                code=ErrorCode.SANDBOX_TIMEOUT,
            ) from exc
        except OSError as exc:
            raise IsolationError(f"Cannot start sandbox: {exc}") from exc

        if completed.returncode != 0:
            raise IsolationError(
                f"Sandbox exited with status {completed.returncode}", stderr=completed.stderr
            )
        try:
            payload = json.loads(completed.stdout)
        except json.JSONDecodeError as exc:
            raise IsolationError("Sandbox returned unreadable output", stderr=completed.stderr) from exc

        measured = payload.get("coverage") or {}
        output = PermutationOutput(
            permutation=permutation,
            output=payload.get("output"),
            error=payload.get("error"),
            traceback=tuple(payload.get("traceback") or ()),
            accessed_mocks=tuple(payload.get("accessed_mocks") or ()),
        )
        return SandboxRun(
            output=output,
            executed_lines=frozenset(measured.get("executed_lines", ())),
            missing_lines=frozenset(measured.get("missing_lines", ())),
            executed_arcs=_arcs(measured.get("executed_branches", ())),
            missing_arcs=_arcs(measured.get("missing_branches", ())),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Aggregation
    # ─────────────────────────────────────────────────────────────────────────

    def _aggregate(self, runs: Sequence[SandboxRun], **analysis: Any) -> CoverageResult:
        line_hits: Counter[int] = Counter()
        branch_hits: Counter[Arc] = Counter()
        statements: set[int] = set()
        arcs: set[Arc] = set()
        for run in runs:
            line_hits.update(run.executed_lines)
            branch_hits.update(run.executed_arcs)
            statements |= run.executed_lines | run.missing_lines
            arcs |= run.executed_arcs | run.missing_arcs

        covered_lines = set(line_hits)
        covered_arcs = set(branch_hits)
        sites = analysis["sites"]

        uncovered_branches = []
        for source, target in sorted(arcs - covered_arcs):
            site = sites.get(source)
            uncovered_branches.append(
                UncoveredBranch(
                    lineno=source,
                    target=target,
                    template_line=self._unit.template_line(source),
                    kind=site.kind if site is not None else "branch",
                    label=site.label(target) if site is not None else "",
                    site_id=f"{source}->{target}",
                )
            )

        return CoverageResult(
            unit=self._unit,
            outputs=tuple(run.output for run in runs),
            line_coverage=_percent(len(covered_lines), len(statements)),
            branch_coverage=_percent(len(covered_arcs), len(arcs)),
            total_lines=len(statements),
            covered_lines=len(covered_lines),
            total_branches=len(arcs),
            covered_branches=len(covered_arcs),
            uncovered_lines=tuple(sorted(statements - covered_lines)),
            uncovered_branches=tuple(uncovered_branches),
            line_hits=dict(line_hits),
            branch_hits=dict(branch_hits),
            **analysis,
        )
