"""Coverage measurement: runner, sandbox worker, and results."""

from autopreview.coverage.result import CoverageResult, PermutationOutput, UncoveredBranch
from autopreview.coverage.runner import CoverageRunner, sandbox_environment

__all__ = [
    "CoverageResult",
    "CoverageRunner",
    "PermutationOutput",
    "UncoveredBranch",
    "sandbox_environment",
]
