"""Coverage run results and the text report."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from autopreview import terminal
from autopreview.analysis.facts import BranchSite, ConditionalBranch, TemplateFacts
from autopreview.constants import UNMATCHED
from autopreview.permutations import Permutation, dedupe
from autopreview.template.compiler import CompiledUnit

_RULE = "=" * 60


@dataclass(frozen=True, slots=True)
class PermutationOutput:
    """Rendered output, or the captured failure, of one permutation."""

    permutation: Permutation
    output: str | None = None
    error: str | None = None
    traceback: tuple[str, ...] = ()
    accessed_mocks: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class UncoveredBranch:
    """An arc no permutation took.

    Attributes:
        lineno: Compiled line the arc leaves.
        target: Compiled line the arc enters (negative: leaves the unit).
        template_line: Template line of ``lineno``, if known.
        kind: Site kind (``if``, ``unless``, ``case``, ``for``, or
            ``branch`` when the site is not a template construct).
        label: Direction (``then``/``else``, ``when``/``else``,
            ``loop``/``exit``/``empty``).
        site_id: ``"<lineno>-><target>"``.
    """

    lineno: int
    target: int
    template_line: int | None
    kind: str
    label: str
    site_id: str


@dataclass(frozen=True, slots=True)
class CoverageResult:
    """Aggregated coverage of one run; read-only once built.

    Percentages only count statements and arcs the measurement knows about;
    a unit with no branches reports 100% branch coverage, one with no
    statements 100% line coverage.
    """

    unit: CompiledUnit
    outputs: tuple[PermutationOutput, ...]
    line_coverage: float
    branch_coverage: float
    total_lines: int = 0
    covered_lines: int = 0
    total_branches: int = 0
    covered_branches: int = 0
    uncovered_lines: tuple[int, ...] = ()
    uncovered_branches: tuple[UncoveredBranch, ...] = ()
    line_hits: Mapping[int, int] = field(default_factory=dict)
    branch_hits: Mapping[tuple[int, int], int] = field(default_factory=dict)
    branches: tuple[ConditionalBranch, ...] = ()
    sites: Mapping[int, BranchSite] = field(default_factory=dict)
    facts: TemplateFacts = field(default_factory=TemplateFacts)
    degraded: bool = False

    @classmethod
    def failed(
        cls,
        unit: CompiledUnit,
        error: str,
        *,
        detail: str = "",
        branches: tuple[ConditionalBranch, ...] = (),
        sites: Mapping[int, BranchSite] | None = None,
        facts: TemplateFacts | None = None,
    ) -> CoverageResult:
        """Result for a run whose sandbox could not execute at all."""
        traceback = tuple(line for line in detail.splitlines()[-5:] if line)
        return cls(
            unit=unit,
            outputs=(PermutationOutput(Permutation(), error=error, traceback=traceback),),
            line_coverage=0.0,
            branch_coverage=0.0,
            branches=branches,
            sites=dict(sites or {}),
            facts=facts or TemplateFacts(),
            degraded=True,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Views
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def source_path(self) -> str | None:
        return self.unit.source_path

    @property
    def compiled_path(self) -> Path:
        return self.unit.compiled_path

    @property
    def permutations_run(self) -> int:
        return 0 if self.degraded else len(self.outputs)

    @property
    def fully_covered(self) -> bool:
        return not self.degraded and self.branch_coverage == 100.0

    @property
    def failures(self) -> tuple[PermutationOutput, ...]:
        return tuple(output for output in self.outputs if not output.success)

    @property
    def uncovered_template_lines(self) -> tuple[int, ...]:
        lines = {self.unit.template_line(n) for n in self.uncovered_lines}
        return tuple(sorted(line for line in lines if line is not None))

    def case_values(self) -> dict[str, list[str]]:
        return {fact.subject: list(fact.values) for fact in self.facts.case_facts}

    def string_comparisons(self) -> dict[str, list[str]]:
        return {fact.subject: list(fact.values) for fact in self.facts.string_comparisons}

    # ─────────────────────────────────────────────────────────────────────────
    # Targeted permutations
    # ─────────────────────────────────────────────────────────────────────────

    def targeted_permutations(self) -> list[Permutation]:
        """Permutations aimed at the uncovered branch arcs.

        Each one starts from the first permutation run and forces the
        controlling identifiers of one missed arc towards its direction:
        the body of an ``if`` wants them True, the body of an ``unless``
        False, a missed ``when`` arm its first literal and a missed ``case``
        fall-through the unmatched sentinel. Arcs of loops and of sites
        without a recorded branch are skipped. Permutations already run are
        not repeated.
        """
        base = self.outputs[0].permutation if self.outputs else Permutation()
        already_run = {output.permutation for output in self.outputs}
        by_line = {branch.lineno: branch for branch in self.branches}

        targeted: list[Permutation] = []
        for miss in self.uncovered_branches:
            site = self.sites.get(miss.lineno)
            if site is None:
                continue
            branch = by_line.get(site.owner)
            if branch is None or not branch.identifiers:
                continue
            changes = _forcing(site, miss.label, branch)
            if not changes:
                continue
            permutation = base.merge(changes)
            if permutation not in already_run:
                targeted.append(permutation)
        return dedupe(targeted)

    # ─────────────────────────────────────────────────────────────────────────
    # Report
    # ─────────────────────────────────────────────────────────────────────────

    def report(self, color: bool | None = None) -> str:
        """Human-readable summary of the run."""
        lines = [
            _RULE,
            terminal.heading("autopreview Coverage Report", color),
            _RULE,
            "",
            f"Source: {terminal.location(self.source_path or '(string)', color)}",
            f"Compiled: {terminal.dim_text(str(self.compiled_path), color)}",
            "",
            f"Branches found: {len(self.branches)}",
            f"Permutations run: {self.permutations_run}",
            "",
            "Coverage Results:",
            f"  Line Coverage:   {terminal.percent(self.line_coverage, color)}"
            f" ({self.covered_lines}/{self.total_lines})",
            f"  Branch Coverage: {terminal.percent(self.branch_coverage, color)}"
            f" ({self.covered_branches}/{self.total_branches})",
            "",
        ]

        if self.uncovered_lines:
            lines.append(f"Uncovered Lines: {', '.join(str(n) for n in self.uncovered_lines)}")
            if self.uncovered_template_lines:
                template_lines = ", ".join(str(n) for n in self.uncovered_template_lines)
                lines.append(f"  (template lines: {template_lines})")

        if self.uncovered_branches:
            lines.append("Uncovered Branches:")
            for miss in self.uncovered_branches:
                where = f"Line {miss.lineno}"
                if miss.template_line is not None:
                    where += f" (template line {miss.template_line})"
                lines.append(f"  - {where}: {miss.kind} {miss.label} ({miss.site_id})")

        if self.failures:
            lines.append("Failed Permutations:")
            for failure in self.failures:
                lines.append(f"  - {dict(failure.permutation)!r}: {terminal.failure(failure.error or '', color)}")

        lines.append("")
        if self.fully_covered:
            lines.append(terminal.success("All branches covered!", color))
        else:
            lines.append(terminal.failure("Some branches not covered", color))
        lines.append("")
        return "\n".join(lines)


def _forcing(site: BranchSite, label: str, branch: ConditionalBranch) -> dict[str, Any]:
    if site.kind == "case":
        # Only a subject that is itself an identifier path can be forced
        subject = branch.identifiers[0]
        if len(branch.identifiers) != 1 or branch.condition.removesuffix("()") != subject:
            return {}
        if label == "when":
            return {subject: site.values[0]} if site.values else {}
        return {subject: UNMATCHED}
    if site.kind in ("if", "unless"):
        into_body = label == "then"
        want = into_body if site.kind == "if" else not into_body
        return dict.fromkeys(branch.identifiers, want)
    return {}
