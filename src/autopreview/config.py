"""Configuration for template compilation, analysis, and coverage runs.

A single frozen dataclass is threaded explicitly through the compiler,
analyzers, synthesizer, and runner. Nothing reads process-wide state
after construction.

Example:
    >>> from autopreview.config import DEFAULT_CONFIG
    >>> config = DEFAULT_CONFIG.replace(timeout=5.0, max_workers=4)
    >>> config.is_negative_guard("hide_actions")
    True

"""

from __future__ import annotations

import dataclasses
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Environment variable overriding the default artifact directory
ARTIFACT_DIR_ENV = "AUTOPREVIEW_COMPILED_DIR"


def default_artifact_dir() -> Path:
    """Scratch directory for compiled units.

    May be cleared at any time between runs; units are regenerated.
    """
    override = os.environ.get(ARTIFACT_DIR_ENV)
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / "autopreview_compiled"


@dataclass(frozen=True, slots=True)
class PreviewConfig:
    """Settings for one coverage run.

    Attributes:
        artifact_dir: Where compiled units are written.
        guard_prefixes: Names starting with one of these are negative guards
            (``hide_actions``); the all-true seed forces them False.
        blocked_markers: Names containing one of these are negative guards too.
        predicate_prefixes: Final path segments starting with one of these
            look like boolean predicates (computed-variable dependencies).
        predicate_markers: Final path segments containing one of these look
            like predicates as well.
        pair_limit: Only the first N boolean variables get pairwise flips.
        triple_limit: Only the first N boolean variables get triple flips.
        exhaustive_limit: Maximum variable count for the cartesian product.
        timeout: Seconds one sandbox process may run; None disables it.
        max_workers: Sandbox processes run concurrently when greater than 1.
        autoescape: HTML-escape ``{{ }}`` output.
    """

    artifact_dir: Path = field(default_factory=default_artifact_dir)
    guard_prefixes: tuple[str, ...] = ("hide_",)
    blocked_markers: tuple[str, ...] = ("_blocked",)
    predicate_prefixes: tuple[str, ...] = ("is_", "has_", "can_", "should_")
    predicate_markers: tuple[str, ...] = ("enabled", "visible", "writable")
    pair_limit: int = 20
    triple_limit: int = 10
    exhaustive_limit: int = 10
    timeout: float | None = 30.0
    max_workers: int = 1
    autoescape: bool = True

    def replace(self, **changes: Any) -> PreviewConfig:
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    def is_negative_guard(self, name: str) -> bool:
        """True for names whose permissive value is False (``hide_x``, ``user_blocked``)."""
        return name.startswith(self.guard_prefixes) or any(
            marker in name for marker in self.blocked_markers
        )

    def is_predicate(self, name: str) -> bool:
        """True for method/attribute names that read like boolean checks."""
        return name.startswith(self.predicate_prefixes) or any(
            marker in name for marker in self.predicate_markers
        )


DEFAULT_CONFIG = PreviewConfig()
