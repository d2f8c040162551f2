"""Names shared by generated code, the runtime, and the analyzers."""

from __future__ import annotations

# Every name the compiler generates starts with this prefix. Analyzers
# ignore such names; templates must not use them.
RESERVED_PREFIX = "__ap_"

BUFFER_NAME = "__ap_buf"
EMIT_NAME = "__ap_emit"
ESCAPE_NAME = "__ap_escape"
STR_NAME = "__ap_str"
LOOP_FLAG_PREFIX = "__ap_loop_"
WHEN_NAME = "__ap_when"

# Trailing comment on the ``if not (...)`` line of a compiled {% unless %}
UNLESS_MARKER = "# unless"

# Permutation key segment standing for "the single item of an iterator mock":
# ``products.__block_item__.in_stock``
BLOCK_ITEM = "__block_item__"

# Forced values that can never equal a recorded literal
UNMATCHED = "__unmatched__"
NO_MATCH = "__no_match__"


def is_reserved(name: str) -> bool:
    return name.startswith(RESERVED_PREFIX)
