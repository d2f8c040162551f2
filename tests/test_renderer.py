"""Tests for in-process rendering."""

from __future__ import annotations

import pytest

from autopreview.exceptions import TemplateSyntaxError
from autopreview.runtime import ExecutionContext, RenderResult, execute, render_permutation, render_preview
from autopreview.template import CodeGenerator
from autopreview.template.lexer import tokenize
from autopreview.template.parser import Parser


def _code(template: str):
    tree = Parser(tokenize(template), source=template, validate=True).parse()
    python_source, _ = CodeGenerator().generate(tree)
    return compile(python_source, "<test>", "exec")


class TestRenderPreview:
    """render_preview with locals, mock values and mocks."""

    def test_plain_text(self):
        assert render_preview("Hello").output == "Hello"

    def test_unbound_names_render_as_mocks(self):
        result = render_preview("Hi {{ user.name }}")
        assert result == RenderResult("Hi [mock:user.name]", ("user",))

    def test_locals_are_used(self):
        result = render_preview("Hi {{ name }}", locals={"name": "Ada"})
        assert result.output == "Hi Ada"
        assert result.accessed_mocks == ()

    def test_output_is_escaped(self):
        assert render_preview("{{ v }}", locals={"v": "<b>"}).output == "&lt;b&gt;"

    def test_autoescape_off(self):
        assert render_preview("{{ v }}", locals={"v": "<b>"}, autoescape=False).output == "<b>"

    def test_mock_values_override_locals(self):
        result = render_preview(
            "{% if flag %}on{% else %}off{% end %}",
            locals={"flag": True},
            mock_values={"flag": False},
        )
        assert result.output == "off"

    def test_unmocked_conditions_take_the_truthy_branch(self):
        assert render_preview("{% if user.is_admin %}admin{% end %}").output == "admin"

    def test_unless_with_empty_mock_iterable(self):
        assert render_preview("{% unless any(items) %}none{% end %}").output == "none"

    def test_for_empty_over_mock(self):
        source = "{% for p in products %}{{ p }}{% empty %}no products{% end %}"
        assert render_preview(source).output == "no products"

    def test_case_with_local(self):
        source = '{% case kind %}{% when "a" %}A{% when "b" %}B{% else %}?{% end %}'
        assert render_preview(source, locals={"kind": "b"}).output == "B"
        assert render_preview(source).output == "?"

    def test_set_and_reuse(self):
        result = render_preview("{% set total = price * 2 %}{{ total }}", locals={"price": 4})
        assert result.output == "8"

    def test_invalid_template_raises(self):
        with pytest.raises(TemplateSyntaxError):
            render_preview("{% if a %}never closed")


class TestRenderPermutation:
    """Rendering compiled code with permutation bindings."""

    def test_forced_false_takes_else(self):
        code = _code("{% if user.is_active %}active{% else %}inactive{% end %}")
        assert render_permutation(code, {"user.is_active": False}).output == "inactive"
        assert render_permutation(code, {"user.is_active": True}).output == "active"

    def test_block_item_condition(self):
        code = _code("{% for p in products %}{% if p.in_stock %}in{% else %}out{% end %}{% end %}")
        result = render_permutation(code, {"products.__block_item__.in_stock": False})
        assert result.output == "out"
        assert result.accessed_mocks == ()

    def test_hash_key(self):
        code = _code("{% if flash.get('notice') %}{{ flash['notice'] }}{% end %}")
        assert render_permutation(code, {"flash['notice']": "Saved"}).output == "Saved"

    def test_without_permutation(self):
        code = _code("{{ title }}")
        assert render_permutation(code, locals={"title": "T"}).output == "T"


def test_execute_returns_joined_buffer():
    context = ExecutionContext({"n": 3})
    assert execute(_code("{% for i in range(n) %}{{ i }}{% end %}"), context) == "012"
