"""Runtime helpers bound into every execution namespace.

Generated code refers to these under reserved names (``__ap_escape``,
``__ap_str``); see ``autopreview.constants``.
"""

from __future__ import annotations

import builtins
from typing import Any

from autopreview.constants import ESCAPE_NAME, STR_NAME

# str.translate table: single pass over the string
_ESCAPE_TABLE = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#39;",
    }
)


def escape(value: Any) -> str:
    """HTML-escape ``str(value)``; objects exposing ``__html__`` are trusted.

    Example:
        >>> escape("<b>")
        '&lt;b&gt;'
    """
    html = getattr(value, "__html__", None)
    if callable(html):
        return str(html())
    return str(value).translate(_ESCAPE_TABLE)


def to_str(value: Any) -> str:
    return str(value)


STATIC_NAMESPACE: dict[str, Any] = {
    "__builtins__": builtins,
    ESCAPE_NAME: escape,
    STR_NAME: to_str,
}
