"""Runtime: mock values, execution context, permutation bindings, rendering."""

from autopreview.runtime.bindings import build_bindings, parse_path
from autopreview.runtime.context import ExecutionContext
from autopreview.runtime.helpers import escape
from autopreview.runtime.mock import (
    FalsyValue,
    IteratorStub,
    MockValue,
    StubValue,
    build_hash_mock,
    build_iterator_mock,
    build_nested_mock,
    is_seeded,
    unwrap,
)
from autopreview.runtime.renderer import RenderResult, execute, render_permutation, render_preview

__all__ = [
    "ExecutionContext",
    "FalsyValue",
    "IteratorStub",
    "MockValue",
    "RenderResult",
    "StubValue",
    "build_bindings",
    "build_hash_mock",
    "build_iterator_mock",
    "build_nested_mock",
    "escape",
    "execute",
    "is_seeded",
    "parse_path",
    "render_permutation",
    "render_preview",
    "unwrap",
]
