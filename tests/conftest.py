"""Pytest configuration and fixtures for autopreview tests."""

from pathlib import Path

import pytest

from autopreview.config import DEFAULT_CONFIG, PreviewConfig
from autopreview.template import CompiledUnit, TemplateCompiler


@pytest.fixture
def config(tmp_path: Path) -> PreviewConfig:
    """Default settings with compiled units written under tmp_path."""
    return DEFAULT_CONFIG.replace(artifact_dir=tmp_path / "compiled", timeout=60.0)


@pytest.fixture
def compiler(config: PreviewConfig) -> TemplateCompiler:
    return TemplateCompiler(config)


@pytest.fixture
def compile_unit(compiler: TemplateCompiler):
    """Compile template text into a CompiledUnit in the test's artifact dir."""

    def _compile(source: str, path: str | None = None) -> CompiledUnit:
        return compiler.compile(source, path)

    return _compile


@pytest.fixture
def template_file(tmp_path: Path):
    """Write template text to a file and return its path."""

    def _write(source: str, name: str = "card.html") -> Path:
        path = tmp_path / "templates" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path

    return _write


def compiled_lines(unit: CompiledUnit) -> list[str]:
    """Generated statements without the comment header."""
    return [line for line in unit.python_source.splitlines() if not line.startswith("#")]


def assert_contains(text: str, *expected_parts: str) -> None:
    """Assert ``text`` contains all expected parts.

    Args:
        text: The actual output.
        expected_parts: Strings that should all be present in the output.
    """
    for part in expected_parts:
        assert part in text, (
            f"Output missing expected content:\n"
            f"  Missing: {part!r}\n"
            f"  Actual: {text!r}"
        )
