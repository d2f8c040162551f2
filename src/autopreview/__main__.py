"""Command line front end.

Usage:
    python -m autopreview templates/card.html
    python -m autopreview card.html --var title='"Hello"' --var count=3
    python -m autopreview card.html --targeted --workers 4 --no-color

Exit status: 0 when every branch is covered, 1 otherwise, 2 when the
template does not compile.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from autopreview import __version__, verify_coverage
from autopreview.config import DEFAULT_CONFIG
from autopreview.exceptions import BranchParseError, TemplateSyntaxError


def parse_var(text: str) -> tuple[str, Any]:
    """``NAME=VALUE``; VALUE is JSON when it parses as JSON, else a string."""
    name, sep, raw = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return name.strip(), value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autopreview",
        description="Measure how much of a template synthesized permutations cover",
    )
    parser.add_argument("template", type=Path, help="Template file")
    parser.add_argument(
        "--var",
        dest="variables",
        action="append",
        type=parse_var,
        default=[],
        metavar="NAME=VALUE",
        help="Bind a local before mocking (repeatable)",
    )
    parser.add_argument("--timeout", type=float, default=DEFAULT_CONFIG.timeout, help="Seconds per sandbox")
    parser.add_argument("--workers", type=int, default=DEFAULT_CONFIG.max_workers, help="Concurrent sandboxes")
    parser.add_argument("--artifact-dir", type=Path, help="Where compiled units are written")
    parser.add_argument("--targeted", action="store_true", help="Re-run aimed at uncovered branches")
    parser.add_argument("--no-color", action="store_true", help="Plain text report")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    changes: dict[str, Any] = {"timeout": args.timeout, "max_workers": args.workers}
    if args.artifact_dir is not None:
        changes["artifact_dir"] = args.artifact_dir
    config = DEFAULT_CONFIG.replace(**changes)

    try:
        result = verify_coverage(args.template, dict(args.variables), config, targeted=args.targeted)
    except (TemplateSyntaxError, BranchParseError) as exc:
        print(exc.format_compact(), file=sys.stderr)
        return 2
    except OSError as exc:
        print(f"Cannot read {args.template}: {exc}", file=sys.stderr)
        return 2

    print(result.report(color=False if args.no_color else None))
    return 0 if result.fully_covered else 1


if __name__ == "__main__":
    sys.exit(main())
