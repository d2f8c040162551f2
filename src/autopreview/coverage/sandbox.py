"""Sandbox worker: execute one permutation under coverage measurement.

Run as ``python -m autopreview.coverage.sandbox``. Reads one JSON request
from stdin::

    {"compiled_path": "/tmp/autopreview_compiled/card_5d41402a.py",
     "permutation": {"user.is_admin": true},
     "locals": {"title": "Hello"}}

and writes one JSON response to stdout::

    {"output": "...", "error": null, "traceback": [],
     "accessed_mocks": ["user"],
     "coverage": {"executed_lines": [...], "missing_lines": [...],
                  "executed_branches": [[3, 4], ...],
                  "missing_branches": [[3, -1], ...]}}

A template that raises is a normal response with ``error`` set. Anything
that stops this process from answering (bad request, crash) surfaces to
the parent as a nonzero exit status or unparsable output.

The wire shape is internal to autopreview and unversioned.
"""

from __future__ import annotations

import contextlib
import json
import sys
import tempfile
import traceback
from pathlib import Path
from typing import Any

import coverage

from autopreview.runtime.renderer import render_permutation

# Traceback lines kept per failed permutation
TRACEBACK_LINES = 5


def measure(cov: coverage.Coverage, path: Path) -> dict[str, list[Any]]:
    """Executed/missing lines and arcs of ``path`` from a stopped session."""
    empty: dict[str, list[Any]] = {
        "executed_lines": [],
        "missing_lines": [],
        "executed_branches": [],
        "missing_branches": [],
    }
    with tempfile.TemporaryDirectory(prefix="autopreview-") as scratch:
        outfile = Path(scratch) / "coverage.json"
        try:
            cov.json_report(outfile=str(outfile))
        except coverage.CoverageException:
            return empty
        report = json.loads(outfile.read_text(encoding="utf-8"))

    files = report.get("files", {})
    entry = next(iter(files.values()), None)
    if entry is None:
        return empty
    return {key: entry.get(key, []) for key in empty}


def run_request(request: dict[str, Any]) -> dict[str, Any]:
    path = Path(request["compiled_path"])
    code = compile(path.read_text(encoding="utf-8"), str(path), "exec")
    permutation = request.get("permutation") or {}
    locals_ = request.get("locals") or {}

    cov = coverage.Coverage(
        data_file=None,
        branch=True,
        include=[str(path)],
        config_file=False,
    )
    response: dict[str, Any] = {
        "output": None,
        "error": None,
        "traceback": [],
        "accessed_mocks": [],
    }
    cov.start()
    try:
        # Template code must not write into the response channel
        with contextlib.redirect_stdout(sys.stderr):
            result = render_permutation(code, permutation, locals_)
    except Exception as exc:
        response["error"] = f"{type(exc).__name__}: {exc}"
        lines = "".join(traceback.format_exception(exc)).splitlines()
        response["traceback"] = lines[-TRACEBACK_LINES:]
    else:
        response["output"] = result.output
        response["accessed_mocks"] = list(result.accessed_mocks)
    finally:
        cov.stop()

    response["coverage"] = measure(cov, path)
    return response


def main() -> int:
    request = json.load(sys.stdin)
    response = run_request(request)
    json.dump(response, sys.stdout, default=str)
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
