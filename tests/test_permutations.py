"""Tests for Permutation and the permutation synthesizer."""

from __future__ import annotations

from math import comb

import pytest

from autopreview.constants import NO_MATCH, UNMATCHED
from autopreview.permutations import Permutation, PermutationSynthesizer, block_item_key, dedupe


def _dicts(permutations) -> list[dict]:
    return [dict(p) for p in permutations]


class TestPermutation:
    """Immutable, hashable, content-equal mapping."""

    def test_mapping_behaviour(self):
        perm = Permutation({"a": True, "b": "x"})
        assert perm["a"] is True
        assert list(perm) == ["a", "b"]
        assert len(perm) == 2
        assert perm == {"a": True, "b": "x"}

    def test_equal_content_hashes_equal(self):
        first = Permutation({"a": True, "b": False})
        second = Permutation([("b", False), ("a", True)])
        assert first == second
        assert hash(first) == hash(second)
        assert len({first, second}) == 1

    def test_merge_returns_new_permutation(self):
        base = Permutation({"a": True})
        merged = base.merge({"a": False, "b": True})
        assert dict(base) == {"a": True}
        assert dict(merged) == {"a": False, "b": True}

    def test_to_dict_is_a_copy(self):
        perm = Permutation({"a": True})
        values = perm.to_dict()
        values["a"] = False
        assert perm["a"] is True

    def test_not_equal_to_non_mapping(self):
        assert Permutation() != [("a", True)]

    def test_dedupe_keeps_first_occurrence(self):
        a, b = Permutation({"x": 1}), Permutation({"x": 2})
        assert dedupe([a, b, Permutation({"x": 1}), b]) == [a, b]

    def test_block_item_key(self):
        assert block_item_key("products", "in_stock") == "products.__block_item__.in_stock"


class TestSeeds:
    """all-true / all-false seeds and single flips."""

    def test_single_flag(self):
        perms = PermutationSynthesizer().synthesize(["flag"])
        assert _dicts(perms) == [{"flag": True}, {"flag": False}]

    def test_no_variables(self):
        perms = PermutationSynthesizer().synthesize([])
        assert _dicts(perms) == [{}]

    def test_two_variables_cover_every_combination(self):
        perms = PermutationSynthesizer().synthesize(["user.is_active", "user.is_premium"])
        combos = {(p["user.is_active"], p["user.is_premium"]) for p in perms}
        assert combos == {(True, True), (False, False), (True, False), (False, True)}
        assert len(perms) == 4

    def test_negative_guards_start_closed(self):
        perms = PermutationSynthesizer().synthesize(["hide_actions", "flag"])
        assert _dicts(perms)[0] == {"hide_actions": False, "flag": True}
        assert _dicts(perms)[1] == {"hide_actions": False, "flag": False}
        assert {"hide_actions": True, "flag": True} in _dicts(perms)

    def test_blocked_marker_is_a_guard(self):
        perms = PermutationSynthesizer().synthesize(["user_blocked"])
        assert perms[0]["user_blocked"] is False

    def test_guard_pairs_are_skipped(self):
        perms = PermutationSynthesizer().synthesize(["hide_a", "hide_b"])
        # seeds + two single flips; the guard/guard pair adds nothing
        assert {"hide_a": True, "hide_b": True} not in _dicts(perms)


class TestChannels:
    """Case values, string comparisons, block items, computed variables."""

    def test_case_values(self):
        perms = PermutationSynthesizer().synthesize(["kind"], case_values={"kind": ["a", "b"]})
        assert [p["kind"] for p in perms] == ["a", UNMATCHED, "b"]

    def test_case_subject_is_not_boolean(self):
        perms = PermutationSynthesizer().synthesize(["kind", "flag"], case_values={"kind": ["a"]})
        assert all(p["kind"] in ("a", UNMATCHED) for p in perms)

    def test_string_comparisons(self):
        perms = PermutationSynthesizer().synthesize(
            ["status"], string_comparisons={"status": ["active", "pending"]}
        )
        assert [p["status"] for p in perms] == ["active", NO_MATCH, "pending"]

    def test_block_conditionals(self):
        perms = PermutationSynthesizer().synthesize(
            ["products", "product.in_stock"],
            block_conditionals=[("products", "product", ("in_stock",))],
        )
        key = "products.__block_item__.in_stock"
        assert {p[key] for p in perms} == {True, False}
        assert all("product.in_stock" not in p for p in perms)

    def test_computed_variables_are_never_forced(self):
        perms = PermutationSynthesizer().synthesize(
            ["can_edit", "other"],
            computed_variables=["can_edit"],
            computed_dependencies={"can_edit": ["user.is_admin", "post.is_draft"]},
        )
        assert all("can_edit" not in p for p in perms)
        assert {p["user.is_admin"] for p in perms} == {True, False}
        assert {p["post.is_draft"] for p in perms} == {True, False}

    def test_computed_names_leave_case_and_string_channels(self):
        perms = PermutationSynthesizer().synthesize(
            ["total", "label"],
            case_values={"total": ["1"]},
            string_comparisons={"label": ["x"]},
            computed_variables=["total", "label"],
        )
        assert _dicts(perms) == [{}]

    def test_dependency_compared_to_string_stays_in_string_channel(self):
        synth = PermutationSynthesizer()
        variables = synth.boolean_variables(
            [],
            string_comparisons={"is_mode": ["dark"]},
            computed_dependencies={"x": ["is_mode"]},
        )
        assert variables == []


class TestBounds:
    """Pairs and triples over capped prefixes."""

    @pytest.mark.parametrize("count", [1, 3, 5, 8])
    def test_count_is_polynomial(self, count):
        variables = [f"v{i}" for i in range(count)]
        perms = PermutationSynthesizer().synthesize(variables)
        assert len(perms) <= 2 + count + comb(count, 2) + comb(count, 3)
        assert len(set(perms)) == len(perms)

    def test_caps_come_from_config(self, config):
        variables = [f"v{i}" for i in range(6)]
        synth = PermutationSynthesizer(config.replace(pair_limit=2, triple_limit=0))
        perms = synth.synthesize(variables)
        # seeds + 6 single flips + the v0/v1 pair
        assert len(perms) == 2 + 6 + 1

    def test_boolean_variables_exclusions(self):
        variables = PermutationSynthesizer().boolean_variables(
            ["a", "kind", "p.ok", "total", "status"],
            case_values={"kind": ["x"]},
            block_conditionals=[("items", "p", ("ok",))],
            string_comparisons={"status": ["s"]},
            computed_variables=["total"],
        )
        assert variables == ["a"]
