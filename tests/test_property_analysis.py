"""Property-based tests for analysis, synthesis and bindings.

- Branch extraction and structural analysis are idempotent
- Synthesized permutations are pairwise distinct and start from the seeds
- Binding any permutation never raises
- Rendering a generated template with nothing bound never raises
"""

from __future__ import annotations

from hypothesis import given, settings

from autopreview.analysis import BranchExtractor, TemplateStructureAnalyzer
from autopreview.permutations import PermutationSynthesizer
from autopreview.runtime import build_bindings, render_preview
from autopreview.template import CodeGenerator, Parser, tokenize

from .strategies import conditional_variables, permutation_values, template_source


def _compiled(source: str) -> str:
    tree = Parser(tokenize(source), source=source, validate=True).parse()
    return CodeGenerator().generate(tree)[0]


class TestAnalysisProperties:
    @given(source=template_source)
    @settings(max_examples=150)
    def test_extractor_is_idempotent(self, source: str) -> None:
        python_source = _compiled(source)
        extractor = BranchExtractor(python_source)
        first = extractor.analyze()
        assert extractor.analyze() == first
        assert BranchExtractor(python_source).analyze() == first

    @given(source=template_source)
    @settings(max_examples=150)
    def test_conditional_variables_are_unique(self, source: str) -> None:
        variables = BranchExtractor(_compiled(source)).conditional_variables()
        assert len(variables) == len(set(variables))
        assert not any(name.startswith("__ap_") for name in variables)

    @given(source=template_source)
    @settings(max_examples=150)
    def test_structure_analysis_is_idempotent(self, source: str) -> None:
        analyzer = TemplateStructureAnalyzer(source)
        assert analyzer.analyze() == TemplateStructureAnalyzer(source).analyze()


class TestSynthesisProperties:
    @given(variables=conditional_variables)
    @settings(max_examples=200)
    def test_permutations_are_pairwise_distinct(self, variables: list[str]) -> None:
        permutations = PermutationSynthesizer().synthesize(variables)
        assert len(set(permutations)) == len(permutations)
        assert all(set(p) == set(variables) for p in permutations)

    @given(variables=conditional_variables)
    @settings(max_examples=200)
    def test_every_variable_takes_both_values(self, variables: list[str]) -> None:
        permutations = PermutationSynthesizer().synthesize(variables)
        for name in variables:
            assert {p[name] for p in permutations} == {True, False}


class TestRuntimeProperties:
    @given(values=permutation_values)
    @settings(max_examples=200)
    def test_bindings_never_raise(self, values: dict) -> None:
        bindings = build_bindings(values)
        roots = {path.split(".")[0] for path in values}
        assert set(bindings) == roots

    @given(source=template_source)
    @settings(max_examples=100)
    def test_preview_renders_with_nothing_bound(self, source: str) -> None:
        result = render_preview(source)
        assert isinstance(result.output, str)
