"""Fact records produced by the analyzers.

All facts are frozen, slotted dataclasses with tuple fields, so two
analysis passes over identical input compare equal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from autopreview.constants import BLOCK_ITEM


@dataclass(frozen=True, slots=True)
class ConditionalBranch:
    """One ``if``/``unless``/``case`` site in compiled source.

    Attributes:
        kind: ``"if"``, ``"unless"`` or ``"case"``.
        condition: Source text of the condition (the subject for ``case``).
        identifiers: Names and paths the condition reads, first-seen order.
        lineno: Compiled line of the branch statement.
    """

    kind: str
    condition: str
    identifiers: tuple[str, ...]
    lineno: int


@dataclass(frozen=True, slots=True)
class BranchSite:
    """A compiled line with more than one possible successor.

    ``taken`` is the first line of the guarded body; any other destination
    is the fall-through. ``owner`` is the line of the statement the site
    belongs to (the ``match`` line for ``case`` arms). ``values`` holds the
    literal values of a ``case`` arm.
    """

    lineno: int
    kind: str
    taken: int
    taken_label: str
    other_label: str
    owner: int
    values: tuple[Any, ...] = ()

    def label(self, target: int) -> str:
        return self.taken_label if target == self.taken else self.other_label


@dataclass(frozen=True, slots=True)
class CaseFact:
    """Literal values of every ``when`` clause of one ``case`` subject."""

    subject: str
    values: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class BlockConditionalFact:
    """Conditions on a loop variable inside ``{% for variable in iterator %}``."""

    iterator: str
    variable: str
    conditions: tuple[str, ...]

    def variable_paths(self) -> tuple[str, ...]:
        """Identifiers the branch extractor reports for these conditions."""
        return tuple(f"{self.variable}.{condition}" for condition in self.conditions)

    def item_paths(self) -> tuple[str, ...]:
        """Permutation keys forcing the iterator's single item."""
        return tuple(f"{self.iterator}.{BLOCK_ITEM}.{condition}" for condition in self.conditions)


@dataclass(frozen=True, slots=True)
class ComputedVariableFact:
    """A variable assigned from a non-trivial expression."""

    name: str
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StringComparisonFact:
    """String literals an identifier is compared against with ``==``."""

    subject: str
    values: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class TemplateFacts:
    """Everything the structural analyzer found in one template."""

    case_facts: tuple[CaseFact, ...] = ()
    block_conditionals: tuple[BlockConditionalFact, ...] = ()
    computed_variables: tuple[ComputedVariableFact, ...] = ()
    string_comparisons: tuple[StringComparisonFact, ...] = ()
