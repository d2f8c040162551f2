"""Terminal color helpers for coverage reports and error messages.

ANSI codes with TTY detection and NO_COLOR / FORCE_COLOR support.
Every helper accepts ``enabled`` so callers (the report, the CLI) can
force plain output regardless of the detected terminal.
"""

from __future__ import annotations

import os
import re
import sys
from typing import Literal

_CODES = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
}

ColorName = Literal[
    "reset", "bold", "dim", "red", "green", "yellow", "cyan", "bright_red", "bright_green"
]

_ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def _detect_colors() -> bool:
    """Decide whether stdout should receive ANSI codes.

    FORCE_COLOR wins over NO_COLOR (https://no-color.org/); otherwise
    colors are used only when stdout is a TTY.
    """
    if os.environ.get("FORCE_COLOR"):
        return True
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


_USE_COLORS = _detect_colors()


def supports_color() -> bool:
    """Return the color decision made at import time."""
    return _USE_COLORS


def colorize(text: str, *colors: ColorName, enabled: bool | None = None) -> str:
    """Wrap ``text`` in the given ANSI codes.

    Example:
        >>> colorize("100.0%", "green", enabled=False)
        '100.0%'
    """
    use = _USE_COLORS if enabled is None else enabled
    if not use or not colors:
        return text
    prefix = "".join(_CODES.get(color, "") for color in colors)
    if not prefix:
        return text
    return f"{prefix}{text}{_CODES['reset']}"


def strip_colors(text: str) -> str:
    """Remove ANSI escape sequences from ``text``."""
    return _ANSI_ESCAPE.sub("", text)


def heading(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "bold", enabled=enabled)


def location(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "cyan", enabled=enabled)


def dim_text(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "dim", enabled=enabled)


def line_number(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "yellow", enabled=enabled)


def error_code(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "bright_red", "bold", enabled=enabled)


def error_line(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "bright_red", enabled=enabled)


def success(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "bright_green", "bold", enabled=enabled)


def failure(text: str, enabled: bool | None = None) -> str:
    return colorize(text, "bright_red", "bold", enabled=enabled)


def percent(value: float, enabled: bool | None = None) -> str:
    """Format a coverage percentage, green when complete, yellow when partial."""
    text = f"{value:.1f}%"
    if value >= 100.0:
        return colorize(text, "green", enabled=enabled)
    if value > 0.0:
        return colorize(text, "yellow", enabled=enabled)
    return colorize(text, "red", enabled=enabled)


def format_source_line(lineno: int, content: str, is_error: bool = False) -> str:
    """Format one template line for a diagnostic snippet.

    Example:
        >>> strip_colors(format_source_line(3, "{% if x %}", is_error=True))
        '>  3 | {% if x %}'
    """
    marker = ">" if is_error else " "
    number = line_number(f"{marker}{lineno:>3}")
    body = error_line(content) if is_error else dim_text(content)
    return f"{number} | {body}"
