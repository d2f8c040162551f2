"""Tests for template compilation to Python source on disk."""

from __future__ import annotations

import ast

import pytest

from autopreview.exceptions import TemplateSyntaxError
from autopreview.runtime import ExecutionContext, execute
from autopreview.template import CodeGenerator, TemplateCompiler, unit_id_for
from autopreview.template.lexer import tokenize
from autopreview.template.parser import Parser

from .conftest import compiled_lines


def _generate(source: str, autoescape: bool = True) -> list[str]:
    tree = Parser(tokenize(source), source=source, validate=True).parse()
    python_source, _ = CodeGenerator(autoescape).generate(tree)
    return python_source.splitlines()[2:]


class TestCodeGeneration:
    """Shape of the generated statements."""

    def test_buffer_prologue(self):
        tree = Parser(tokenize("x")).parse()
        python_source, _ = CodeGenerator().generate(tree)
        assert python_source.splitlines()[:2] == ["__ap_buf = []", "__ap_emit = __ap_buf.append"]

    def test_data_and_escaped_output(self):
        assert _generate("Hi {{ user.name }}") == [
            "__ap_emit('Hi ')",
            "__ap_emit(__ap_escape(user.name))",
        ]

    def test_output_without_autoescape(self):
        assert _generate("{{ total }}", autoescape=False) == ["__ap_emit(__ap_str(total))"]

    def test_if_elif_else(self):
        assert _generate("{% if a %}A{% elif b %}B{% else %}C{% end %}") == [
            "if a:",
            "    __ap_emit('A')",
            "elif b:",
            "    __ap_emit('B')",
            "else:",
            "    __ap_emit('C')",
        ]

    def test_empty_body_gets_pass(self):
        assert _generate("{% if flag %}{% end %}") == ["if flag:", "    pass"]

    def test_unless_is_negated_if(self):
        assert _generate("{% unless any(items) %}none{% end %}") == [
            "if not (any(items)):  # unless",
            "    __ap_emit('none')",
        ]

    def test_case_compiles_to_match(self):
        source = '{% case kind %}{% when "a" %}A{% when "b", "c" %}BC{% else %}?{% end %}'
        assert _generate(source) == [
            "match kind:",
            "    case 'a':",
            "        __ap_emit('A')",
            "    case 'b' | 'c':",
            "        __ap_emit('BC')",
            "    case _:",
            "        __ap_emit('?')",
        ]

    def test_case_with_non_pattern_value_uses_guard(self):
        lines = _generate("{% case size %}{% when limits.max, default_size() %}big{% end %}")
        assert lines[1] == "    case __ap_when if __ap_when in (limits.max, default_size(),):"

    def test_case_without_arms_emits_nothing(self):
        assert _generate("{% case kind %}{% end %}") == []

    def test_for_without_empty(self):
        assert _generate("{% for p in products %}{{ p.name }}{% end %}") == [
            "for p in products:",
            "    __ap_emit(__ap_escape(p.name))",
        ]

    def test_for_with_empty_uses_flag(self):
        assert _generate("{% for p in products %}{{ p.name }}{% empty %}none{% end %}") == [
            "__ap_loop_1 = False",
            "for p in products:",
            "    __ap_loop_1 = True",
            "    __ap_emit(__ap_escape(p.name))",
            "if not __ap_loop_1:",
            "    __ap_emit('none')",
        ]

    def test_loop_header_is_normalised(self):
        assert _generate("{% for  p  in shop.products( ) %}{{ p }}{% end %}")[0] == "for p in shop.products():"

    def test_invalid_loop_header_raises(self, compiler):
        with pytest.raises(TemplateSyntaxError):
            compiler.compile("{% for p in %}x{% end %}")

    def test_set_is_normalised(self):
        assert _generate("{% set total=a+b %}") == ["total = a + b"]

    def test_multiline_expression_fits_one_line(self):
        lines = _generate("{{ (user.name\n   if user else 'anon') }}")
        assert lines == ["__ap_emit(__ap_escape(user.name if user else 'anon'))"]

    def test_generated_source_is_valid_python(self):
        source = (
            "{% set label = item.title() %}"
            "{% for item in items %}{% case item.kind %}{% when 1, None %}x{% end %}"
            "{% empty %}{% unless hide_empty %}empty{% end %}{% end %}"
        )
        ast.parse("\n".join(_generate(source)))


class TestLineMap:
    """Compiled lines map back to template lines."""

    def test_each_statement_records_its_template_line(self, compile_unit):
        unit = compile_unit("a\n{% if x %}\nyes\n{% end %}")
        lines = unit.python_source.splitlines()
        emit_a = lines.index("__ap_emit('a\\n')") + 1
        if_line = lines.index("if x:") + 1
        assert unit.template_line(emit_a) == 1
        assert unit.template_line(if_line) == 2

    def test_prologue_has_no_template_line(self, compile_unit):
        unit = compile_unit("text")
        assert unit.template_line(1) is None
        assert unit.template_line(3) is None


class TestTemplateCompiler:
    """Artifacts on disk and CompiledUnit metadata."""

    def test_unit_written_to_artifact_dir(self, compile_unit, config):
        unit = compile_unit("{% if flag %}on{% end %}")
        assert unit.compiled_path.parent == config.artifact_dir.resolve()
        assert unit.compiled_path.read_text(encoding="utf-8") == unit.python_source
        assert unit.source_path is None
        assert unit.template_source == "{% if flag %}on{% end %}"

    def test_header_names_source(self, compile_unit):
        unit = compile_unit("x", "views/card.html")
        assert unit.python_source.startswith("# Generated by autopreview from views/card.html")

    def test_compile_file(self, compiler, template_file):
        path = template_file("{{ title }}", name="user-card.html")
        unit = compiler.compile_file(path)
        assert unit.unit_id.startswith("user_card_")
        assert unit.source_path == str(path)

    def test_code_executes_in_context(self, compile_unit):
        unit = compile_unit("{% if flag %}on{% else %}off{% end %}")
        assert execute(unit.code(), ExecutionContext({"flag": False})) == "off"
        assert compiled_lines(unit)[2] == "if flag:"

    def test_invalid_template_raises(self, compiler):
        with pytest.raises(TemplateSyntaxError):
            compiler.compile("{% if user. %}x{% end %}")

    def test_autoescape_follows_config(self, config):
        unit = TemplateCompiler(config.replace(autoescape=False)).compile("{{ x }}")
        assert "__ap_emit(__ap_str(x))" in unit.python_source


class TestUnitId:
    """Stable identifiers for compiled units."""

    def test_string_units_hash_content(self):
        first = unit_id_for("abc", None)
        assert first.startswith("string_")
        assert len(first) == len("string_") + 12
        assert first == unit_id_for("abc", None)
        assert first != unit_id_for("abd", None)

    def test_path_units_use_sanitised_stem(self):
        unit_id = unit_id_for("", "a/b/order.summary.html")
        assert unit_id.startswith("order_summary_")
        assert len(unit_id) == len("order_summary_") + 8

    def test_path_units_ignore_content(self):
        assert unit_id_for("one", "card.html") == unit_id_for("two", "card.html")

    def test_same_stem_in_different_directories(self, tmp_path):
        admin = unit_id_for("", tmp_path / "admin" / "card.html")
        public = unit_id_for("", tmp_path / "public" / "card.html")
        assert admin != public
        assert admin.startswith("card_") and public.startswith("card_")

    def test_same_stem_units_do_not_share_a_file(self, compiler, tmp_path):
        admin = compiler.compile("{% if flag %}A{% end %}", tmp_path / "admin" / "card.html")
        public = compiler.compile("B only", tmp_path / "public" / "card.html")
        assert admin.compiled_path != public.compiled_path
        assert admin.compiled_path.read_text(encoding="utf-8") == admin.python_source

    def test_write_restores_a_replaced_file(self, compile_unit):
        unit = compile_unit("{% if flag %}A{% end %}")
        unit.compiled_path.write_text("x = 1\n", encoding="utf-8")
        unit.write()
        assert unit.compiled_path.read_text(encoding="utf-8") == unit.python_source
