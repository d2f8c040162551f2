"""End-to-end tests for the coverage runner.

These spawn real sandbox processes and require ``coverage``.
"""

from __future__ import annotations

import logging
import subprocess

import pytest

from autopreview import verify_coverage_string
from autopreview.coverage import CoverageRunner
from autopreview.exceptions import ErrorCode


def _outputs(result) -> list[str | None]:
    return [output.output for output in result.outputs]


class TestScenarios:
    """Representative templates measured through the sandbox."""

    def test_single_if_is_fully_covered(self, compile_unit, config):
        result = CoverageRunner(compile_unit("{% if flag %}on{% end %}"), config).run()
        assert result.branch_coverage == 100.0
        assert result.fully_covered
        assert result.permutations_run == 2
        assert _outputs(result) == ["on", ""]
        assert result.uncovered_branches == ()

    def test_if_else(self, compile_unit, config):
        result = CoverageRunner(
            compile_unit("{% if flag %}on{% else %}off{% end %}"), config
        ).run()
        assert result.fully_covered
        assert result.line_coverage == 100.0
        assert _outputs(result) == ["on", "off"]

    def test_case_values(self, compile_unit, config):
        unit = compile_unit('{% case kind %}{% when "a" %}A{% when "b" %}B{% end %}')
        result = CoverageRunner(unit, config).run()
        assert _outputs(result) == ["A", "", "B"]
        assert result.branch_coverage == 100.0

    def test_case_on_builtin_call_keeps_the_builtin(self, compile_unit, config):
        unit = compile_unit("{% case len(items) %}{% when 0 %}none{% else %}some{% end %}")
        runner = CoverageRunner(unit, config)
        _, _, permutations = runner.permutations()
        assert all("len" not in permutation for permutation in permutations)
        result = runner.run()
        assert not result.failures
        assert set(_outputs(result)) == {"none"}

    def test_pairwise_conditions(self, compile_unit, config):
        unit = compile_unit("{% if user.is_active and user.is_premium %}premium{% end %}")
        result = CoverageRunner(unit, config).run()
        assert result.permutations_run == 4
        assert _outputs(result).count("premium") == 1
        assert result.fully_covered

    def test_unless_takes_body_under_default_mock(self, compile_unit, config):
        result = CoverageRunner(compile_unit("{% unless any(items) %}none{% end %}"), config).run()
        # items forced False still iterates, as an empty collection
        assert not result.failures
        assert set(_outputs(result)) == {"none"}

    def test_collection_forced_false_takes_empty_paths(self, compile_unit, config):
        unit = compile_unit(
            "{% if items %}{{ len(items) }}{% end %}"
            "{% for item in items %}{{ item }}{% empty %}no items{% end %}"
        )
        result = CoverageRunner(unit, config).run()
        assert not result.failures
        assert "no items" in _outputs(result)

    def test_block_item_conditions(self, compile_unit, config):
        unit = compile_unit(
            "{% for product in products %}"
            "{% if product.in_stock %}in{% else %}out{% end %}"
            "{% end %}"
        )
        result = CoverageRunner(unit, config).run()
        assert {"in", "out"} <= set(_outputs(result))
        assert result.fully_covered
        assert result.facts.block_conditionals[0].iterator == "products"

    def test_hash_access_resolves_once(self, compile_unit, config):
        unit = compile_unit('{% if flash.get("notice", "default") %}{{ flash["notice"] }}{% end %}')
        result = CoverageRunner(unit, config).run()
        assert [branch.identifiers for branch in result.branches] == [("flash['notice']",)]
        assert result.fully_covered

    def test_static_template(self, compile_unit, config):
        result = CoverageRunner(compile_unit("Just text"), config).run()
        assert result.branch_coverage == 100.0
        assert result.total_branches == 0
        assert _outputs(result) == ["Just text"]


class TestRunnerBehaviour:
    """Locals, failures, extras, hit counts and concurrency."""

    def test_locals_cross_the_process_boundary(self, compile_unit, config):
        result = CoverageRunner(compile_unit("{{ title }}"), config, {"title": "Hello"}).run()
        assert _outputs(result) == ["Hello"]
        assert result.outputs[0].accessed_mocks == ()

    def test_forced_true_keeps_supplied_local(self, compile_unit, config):
        result = CoverageRunner(compile_unit("{% if user %}{{ user }}{% end %}"), config, {"user": "Ann"}).run()
        assert _outputs(result)[0] == "Ann"
        assert result.fully_covered

    def test_same_file_name_in_two_directories(self, compile_unit, config, tmp_path):
        admin = compile_unit("{% if flag %}A{% end %}", tmp_path / "admin" / "card.html")
        compile_unit("B only", tmp_path / "public" / "card.html")
        result = CoverageRunner(admin, config).run()
        assert _outputs(result) == ["A", ""]
        assert result.fully_covered

    def test_replaced_unit_file_is_rewritten_before_running(self, compile_unit, config):
        unit = compile_unit("{% if flag %}A{% end %}")
        unit.compiled_path.write_text("__ap_buf = ['stale']\n", encoding="utf-8")
        result = CoverageRunner(unit, config).run()
        assert _outputs(result) == ["A", ""]

    def test_accessed_mocks_are_reported(self, compile_unit, config):
        result = CoverageRunner(compile_unit("{{ user.name }}"), config).run()
        assert result.outputs[0].output == "[mock:user.name]"
        assert result.outputs[0].accessed_mocks == ("user",)

    def test_template_error_is_recorded_and_run_continues(self, compile_unit, config):
        result = CoverageRunner(compile_unit("{% if flag %}{{ 1 // 0 }}{% end %}"), config).run()
        assert not result.degraded
        assert result.permutations_run == 2
        (failure,) = result.failures
        assert failure.error.startswith("ZeroDivisionError")
        assert 0 < len(failure.traceback) <= 5
        assert result.outputs[1].success

    def test_extra_permutations_are_deduplicated(self, compile_unit, config):
        runner = CoverageRunner(compile_unit("{% if flag %}on{% end %}"), config)
        result = runner.run([{"flag": True}, {"flag": "yes"}])
        assert [dict(output.permutation) for output in result.outputs] == [
            {"flag": True},
            {"flag": False},
            {"flag": "yes"},
        ]

    def test_hit_counts(self, compile_unit, config):
        result = CoverageRunner(compile_unit("{% if flag %}on{% end %}"), config).run()
        # line 3 is the buffer setup after the two header comments
        assert result.line_hits[3] == 2
        assert result.line_hits[6] == 1
        assert sum(result.branch_hits.values()) == 2

    def test_workers_keep_input_order(self, compile_unit, config):
        unit = compile_unit('{% case kind %}{% when "a" %}A{% when "b" %}B{% end %}')
        result = CoverageRunner(unit, config.replace(max_workers=3)).run()
        assert _outputs(result) == ["A", "", "B"]

    def test_uncovered_branch_is_reported(self, compile_unit, config):
        unit = compile_unit("{% set shown = items.count() > 2 %}{% if shown %}many{% end %}")
        result = CoverageRunner(unit, config).run()
        assert not result.fully_covered
        (miss,) = result.uncovered_branches
        assert (miss.kind, miss.label) == ("if", "else")
        assert miss.template_line == 1
        assert miss.site_id == f"{miss.lineno}->{miss.target}"


class TestTargetedRun:
    """The targeted second pass never lowers branch coverage."""

    @pytest.mark.parametrize(
        "source",
        [
            "{% if flag %}on{% end %}",
            "{% set shown = items.count() > 2 %}{% if shown %}many{% end %}",
            '{% case mode %}{% when "x" %}X{% else %}?{% end %}{% if a or b %}ab{% end %}',
        ],
    )
    def test_round_trip(self, source, config):
        plain = verify_coverage_string(source, config=config)
        targeted = verify_coverage_string(source, config=config, targeted=True)
        assert targeted.branch_coverage >= plain.branch_coverage


class TestIsolationFailures:
    """A sandbox that cannot answer degrades the run."""

    @pytest.fixture
    def unit(self, compile_unit):
        return compile_unit("{% if flag %}on{% end %}")

    def _assert_degraded(self, result):
        assert result.degraded
        assert not result.fully_covered
        assert result.branch_coverage == 0.0
        assert result.line_coverage == 0.0
        assert result.permutations_run == 0
        (output,) = result.outputs
        assert not output.success
        return output

    def test_timeout(self, unit, config, monkeypatch, caplog):
        def fake_run(args, **kwargs):
            raise subprocess.TimeoutExpired(args, kwargs["timeout"], stderr=b"slow")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with caplog.at_level(logging.WARNING, logger="autopreview.coverage.runner"):
            result = CoverageRunner(unit, config).run()
        output = self._assert_degraded(result)
        assert output.error == "Sandbox timed out after 60.0s"
        assert output.traceback == ("slow",)
        assert "Sandbox failed" in caplog.text

    def test_nonzero_exit(self, unit, config, monkeypatch):
        def fake_run(args, **kwargs):
            return subprocess.CompletedProcess(args, 1, stdout="", stderr="Traceback\nboom")

        monkeypatch.setattr(subprocess, "run", fake_run)
        output = self._assert_degraded(CoverageRunner(unit, config).run())
        assert output.error == "Sandbox exited with status 1"
        assert output.traceback == ("Traceback", "boom")

    def test_unreadable_output(self, unit, config, monkeypatch):
        def fake_run(args, **kwargs):
            return subprocess.CompletedProcess(args, 0, stdout="not json", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        output = self._assert_degraded(CoverageRunner(unit, config).run())
        assert output.error == "Sandbox returned unreadable output"

    def test_spawn_failure(self, unit, config, monkeypatch):
        def fake_run(args, **kwargs):
            raise FileNotFoundError("no interpreter")

        monkeypatch.setattr(subprocess, "run", fake_run)
        output = self._assert_degraded(CoverageRunner(unit, config).run())
        assert output.error.startswith("Cannot start sandbox")

    def test_degraded_result_keeps_analysis(self, unit, config, monkeypatch):
        def fake_run(args, **kwargs):
            return subprocess.CompletedProcess(args, 2, stdout="", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        result = CoverageRunner(unit, config).run()
        assert [branch.condition for branch in result.branches] == ["flag"]
        assert result.targeted_permutations() == []


def test_timeout_error_code():
    assert ErrorCode.SANDBOX_TIMEOUT.value == "AP-RUN-002"
