"""Execution context: the namespace one compiled unit runs in.

The context is a ``dict`` used directly as the globals of ``exec``. Module
level name lookups in the compiled unit go through ``__getitem__``, so a
name nobody bound reaches ``__missing__`` and comes back as a fresh
MockValue labelled with that name. Builtins and dunder names are not
mocked: ``__missing__`` raises KeyError for them and the interpreter falls
through to the builtins module.

Example:
    >>> ctx = ExecutionContext({"title": "Hello"})
    >>> exec("x = title + ' ' + str(user.name)", ctx)
    >>> ctx["x"]
    'Hello [mock:user.name]'
    >>> ctx.accessed_mocks
    ['user']

"""

from __future__ import annotations

import builtins
from collections.abc import Mapping
from typing import Any

from autopreview.runtime.helpers import STATIC_NAMESPACE
from autopreview.runtime.mock import MockValue, is_seeded

_BUILTIN_NAMES = frozenset(dir(builtins))


def _is_bare_mock(value: Any) -> bool:
    return type(value) is MockValue and not is_seeded(value)


class ExecutionContext(dict[str, Any]):
    """Globals for one template execution.

    Args:
        locals: Explicitly supplied values, bound first.
        mock_values: Permutation bindings (see ``build_bindings``), bound
            second so they win over locals of the same name. A bare unseeded
            mock (a root forced True) does not replace a truthy local.

    Attributes:
        accessed_mocks: Names that fell through to a mock, first-seen order.
    """

    def __init__(
        self,
        locals: Mapping[str, Any] | None = None,
        mock_values: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(STATIC_NAMESPACE)
        if locals:
            self.update(locals)
        if mock_values:
            for name, value in mock_values.items():
                if _is_bare_mock(value) and locals and name in locals and locals[name]:
                    continue
                self[name] = value
        self.accessed_mocks: list[str] = []

    def __missing__(self, name: str) -> Any:
        if name.startswith("__") or name in _BUILTIN_NAMES:
            raise KeyError(name)
        if name not in self.accessed_mocks:
            self.accessed_mocks.append(name)
        return MockValue(name)

    def __repr__(self) -> str:
        names = sorted(key for key in self if not key.startswith("__"))
        return f"<ExecutionContext bound={names!r} mocked={self.accessed_mocks!r}>"
