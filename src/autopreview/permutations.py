"""Permutations and the bounded covering-set synthesizer.

A Permutation forces values onto identifier paths for one execution. The
synthesizer combines the branch extractor's conditional variables with the
structural analyzer's facts into a short list of permutations that drives
both directions of every conditional, growing polynomially (singles, pairs,
triples over capped prefixes) rather than exponentially.

Example:
    >>> synth = PermutationSynthesizer()
    >>> perms = synth.synthesize(["flag"])
    >>> sorted(p["flag"] for p in perms)
    [False, True]

"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from autopreview.config import DEFAULT_CONFIG, PreviewConfig
from autopreview.constants import BLOCK_ITEM, NO_MATCH, UNMATCHED

logger = logging.getLogger(__name__)


class Permutation(Mapping[str, Any]):
    """Immutable identifier -> forced value mapping.

    Equality is by content (as for any Mapping), insertion order is kept for
    display, and instances are hashable so lists of them de-duplicate
    cheaply.
    """

    __slots__ = ("_hash", "_values")

    def __init__(self, values: Mapping[str, Any] | Iterable[tuple[str, Any]] = ()) -> None:
        self._values: dict[str, Any] = dict(values)
        self._hash: int | None = None

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._values.items()))
        return self._hash

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return self._values == dict(other.items())
        return NotImplemented

    def __repr__(self) -> str:
        return f"Permutation({self._values!r})"

    def merge(self, changes: Mapping[str, Any]) -> Permutation:
        """New permutation with ``changes`` applied over this one."""
        values = dict(self._values)
        values.update(changes)
        return Permutation(values)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


def dedupe(permutations: Iterable[Permutation]) -> list[Permutation]:
    """Drop repeated permutations, keeping first occurrences in order."""
    seen: set[Permutation] = set()
    unique: list[Permutation] = []
    for permutation in permutations:
        if permutation not in seen:
            seen.add(permutation)
            unique.append(permutation)
    return unique


def block_item_key(iterator: str, condition: str) -> str:
    return f"{iterator}.{BLOCK_ITEM}.{condition}"


class PermutationSynthesizer:
    """Build a bounded list of permutations covering every branch.

    Inputs use plain mappings so callers need not hold analyzer objects:

    - ``case_values``: subject -> ordered ``when`` values
    - ``block_conditionals``: ``(iterator, variable, conditions)`` triples
    - ``string_comparisons``: subject -> ordered literals
    - ``computed_variables``: names never forced directly
    - ``computed_dependencies``: computed name -> predicate paths to force
    """

    def __init__(self, config: PreviewConfig | None = None) -> None:
        self._config = config or DEFAULT_CONFIG

    def boolean_variables(
        self,
        conditional_variables: Sequence[str],
        *,
        case_values: Mapping[str, Sequence[str]] | None = None,
        block_conditionals: Sequence[tuple[str, str, Sequence[str]]] = (),
        string_comparisons: Mapping[str, Sequence[str]] | None = None,
        computed_variables: Iterable[str] = (),
        computed_dependencies: Mapping[str, Sequence[str]] | None = None,
    ) -> list[str]:
        """Variables forced to plain True/False.

        Anything a more precise channel already covers is excluded: case
        subjects, loop-variable conditions, computed variables and
        string-comparison subjects. Computed-variable dependencies are then
        added back so forcing them steers the computation.
        """
        case_values = case_values or {}
        string_comparisons = string_comparisons or {}
        computed = set(computed_variables)
        block_paths = {
            f"{variable}.{condition}"
            for _, variable, conditions in block_conditionals
            for condition in conditions
        }

        variables = [
            name
            for name in conditional_variables
            if name not in case_values
            and name not in block_paths
            and name not in computed
            and name not in string_comparisons
        ]
        for dependencies in (computed_dependencies or {}).values():
            for dependency in dependencies:
                if dependency not in variables and dependency not in string_comparisons:
                    variables.append(dependency)
        return variables

    def synthesize(
        self,
        conditional_variables: Sequence[str],
        *,
        case_values: Mapping[str, Sequence[str]] | None = None,
        block_conditionals: Sequence[tuple[str, str, Sequence[str]]] = (),
        string_comparisons: Mapping[str, Sequence[str]] | None = None,
        computed_variables: Iterable[str] = (),
        computed_dependencies: Mapping[str, Sequence[str]] | None = None,
    ) -> list[Permutation]:
        computed = set(computed_variables)
        # Computed names are never forced, whichever channel reports them
        cases = {k: list(v) for k, v in (case_values or {}).items() if k not in computed}
        strings = {k: list(v) for k, v in (string_comparisons or {}).items() if k not in computed}

        variables = self.boolean_variables(
            conditional_variables,
            case_values=cases,
            block_conditionals=block_conditionals,
            string_comparisons=strings,
            computed_variables=computed,
            computed_dependencies=computed_dependencies,
        )
        block_keys = [
            block_item_key(iterator, condition)
            for iterator, _, conditions in block_conditionals
            for condition in conditions
        ]

        all_true = self.all_true(variables, cases, strings, block_keys)
        all_false = self.all_false(variables, cases, strings, block_keys)
        permutations = [all_true, all_false]

        # Single flips from the permissive seed
        for name in variables:
            permutations.append(all_true.merge({name: not all_true[name]}))

        for subject, values in cases.items():
            for value in values[1:]:
                permutations.append(all_true.merge({subject: value}))

        for subject, values in strings.items():
            for value in values:
                permutations.append(all_true.merge({subject: value}))

        for key in block_keys:
            permutations.append(all_true.merge({key: False}))

        permutations.extend(self._pairs(variables, all_true))
        permutations.extend(self._triples(variables, all_true))

        result = dedupe(permutations)
        logger.debug(
            "Synthesized %d permutations from %d boolean variables", len(result), len(variables)
        )
        return result

    def all_true(
        self,
        variables: Sequence[str],
        case_values: Mapping[str, Sequence[str]],
        string_comparisons: Mapping[str, Sequence[str]],
        block_keys: Sequence[str],
    ) -> Permutation:
        """Permissive seed: guards open, first case value, first literal."""
        values: dict[str, Any] = {
            name: not self._config.is_negative_guard(name) for name in variables
        }
        for subject, options in case_values.items():
            if options:
                values[subject] = options[0]
        for subject, options in string_comparisons.items():
            if options:
                values[subject] = options[0]
        for key in block_keys:
            values[key] = True
        return Permutation(values)

    def all_false(
        self,
        variables: Sequence[str],
        case_values: Mapping[str, Sequence[str]],
        string_comparisons: Mapping[str, Sequence[str]],
        block_keys: Sequence[str],
    ) -> Permutation:
        """Mirror seed: everything False or matching nothing."""
        values: dict[str, Any] = dict.fromkeys(variables, False)
        for subject in case_values:
            values[subject] = UNMATCHED
        for subject in string_comparisons:
            values[subject] = NO_MATCH
        for key in block_keys:
            values[key] = False
        return Permutation(values)

    def _pairs(self, variables: Sequence[str], base: Permutation) -> Iterator[Permutation]:
        guard = self._config.is_negative_guard
        for first, second in itertools.combinations(variables[: self._config.pair_limit], 2):
            # Two guards flipped together rarely expose anything new
            if guard(first) and guard(second):
                continue
            yield base.merge({first: not base[first], second: not base[second]})

    def _triples(self, variables: Sequence[str], base: Permutation) -> Iterator[Permutation]:
        for combo in itertools.combinations(variables[: self._config.triple_limit], 3):
            yield base.merge({name: not base[name] for name in combo})
