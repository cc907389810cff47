"""Tests for replconfig.template.builder: two-pass rendering and provider merging."""

from __future__ import annotations

import pytest

from replconfig.template.builder import Builder
from replconfig.template.static_ctx import StaticCtx
from replconfig.template.syntax import TemplateError, TemplateParseError


class _Fixed:
    """Provider exposing one niladic function returning a fixed value."""

    def __init__(self, name, value):
        self.name = name
        self.value = value

    def func_map(self):
        return {self.name: lambda: self.value}


class _Options:
    def __init__(self, **values):
        self.values = values

    def func_map(self):
        return {"ConfigOption": lambda name: self.values.get(name, "")}


def _static_builder() -> Builder:
    return Builder([StaticCtx()])


# ── Passes ───────────────────────────────────────────────────────────


class TestRenderPasses:
    def test_post_delimiters(self):
        b = _static_builder()
        assert b.render_template("t", 'repl{{ ToUpper "hello, world" }}') == "HELLO, WORLD"

    def test_pre_delimiters(self):
        b = _static_builder()
        assert b.render_template("t", '{{repl ToLower "ABC" }}') == "abc"

    def test_plain_text_is_untouched(self):
        b = _static_builder()
        text = "image: {{ .Values.image }}\nname: web\n"
        assert b.render_template("t", text) == text

    def test_second_pass_sees_first_pass_output(self):
        b = Builder([StaticCtx(), _Options(inner='repl{{ ToUpper "nested" }}')])
        assert b.render_template("t", '{{repl ConfigOption "inner" }}') == "NESTED"

    def test_render_is_idempotent(self):
        b = _static_builder()
        once = b.render_template("t", 'value: repl{{ ToUpper "x" }}\n')
        assert once == "value: X\n"
        assert b.render_template("t", once) == once

    def test_trailing_newline_kept(self):
        b = _static_builder()
        assert b.render_template("t", 'repl{{ ToUpper "a" }}\n') == "A\n"

    def test_mixed_passes_in_one_text(self):
        b = _static_builder()
        out = b.render_template("t", '{{repl ToUpper "a" }}-repl{{ ToLower "B" }}')
        assert out == "A-b"

    def test_crlf_line_endings_survive(self):
        b = _static_builder()
        assert b.render_template("t", 'a: 1\r\nb: {{repl ToUpper "x" }}\r\n') == "a: 1\r\nb: X\r\n"

    def test_crlf_line_endings_survive_both_passes(self):
        b = _static_builder()
        out = b.render_template("t", '{{repl ToUpper "a" }}\r\nrepl{{ ToLower "B" }}\r\n')
        assert out == "A\r\nb\r\n"


# ── Actions ──────────────────────────────────────────────────────────


class TestActions:
    def test_pipeline(self):
        b = _static_builder()
        assert b.render_template("t", '{{repl "abc" | ToUpper }}') == "ABC"

    def test_parenthesized_argument(self):
        b = _static_builder()
        assert b.render_template("t", '{{repl ToUpper (Trim "  ab  ") }}') == "AB"

    def test_if_else(self):
        b = Builder([_Options(mode="fast")])
        text = '{{repl if eq (ConfigOption "mode") "fast" }}yes{{repl else }}no{{repl end }}'
        assert b.render_template("t", text) == "yes"

    def test_else_if(self):
        b = Builder([_Options(mode="slow")])
        text = (
            '{{repl if eq (ConfigOption "mode") "fast" }}F'
            '{{repl else if eq (ConfigOption "mode") "slow" }}S'
            "{{repl else }}?{{repl end }}"
        )
        assert b.render_template("t", text) == "S"

    def test_variables(self):
        b = _static_builder()
        assert b.render_template("t", '{{repl $x := "hi" }}{{repl $x }}!') == "hi!"

    def test_assignment_inside_if(self):
        b = _static_builder()
        text = '{{repl $x := "a" }}{{repl if true }}{{repl $x = "b" }}{{repl end }}{{repl $x }}'
        assert b.render_template("t", text) == "b"

    def test_range_over_list(self):
        b = _static_builder()
        text = '{{repl range $i, $v := list "a" "b" }}{{repl $i }}={{repl $v }};{{repl end }}'
        assert b.render_template("t", text) == "0=a;1=b;"

    def test_range_over_dict_is_sorted(self):
        b = _static_builder()
        text = '{{repl range $k, $v := dict "b" 2 "a" 1 }}{{repl $k }}{{repl $v }}{{repl end }}'
        assert b.render_template("t", text) == "a1b2"

    def test_range_break(self):
        b = _static_builder()
        text = "{{repl range $i, $v := list 1 2 3 }}{{repl if eq $v 2 }}{{repl break }}{{repl end }}{{repl $v }}{{repl end }}"
        assert b.render_template("t", text) == "1"

    def test_with_else(self):
        b = Builder([_Options()])
        text = '{{repl with ConfigOption "x" }}got {{repl . }}{{repl else }}none{{repl end }}'
        assert b.render_template("t", text) == "none"

    def test_with_binds_dot(self):
        b = Builder([_Options(x="val")])
        text = '{{repl with ConfigOption "x" }}got {{repl . }}{{repl end }}'
        assert b.render_template("t", text) == "got val"

    def test_printf(self):
        b = _static_builder()
        assert b.render_template("t", '{{repl printf "%s-%d" "a" 3 }}') == "a-3"

    def test_fields_on_data(self):
        b = _static_builder()
        out = b.render_template("t", "{{repl .Spec.Name }}", data={"Spec": {"Name": "web"}})
        assert out == "web"

    def test_values_print_like_go(self):
        b = _static_builder()
        assert b.render_template("t", "{{repl true }} {{repl 2.5 }} {{repl nil }}") == "true 2.5 "


# ── Providers ────────────────────────────────────────────────────────


class TestProviders:
    def test_later_provider_shadows_earlier(self):
        b = Builder([_Fixed("Who", "first")])
        b.add_ctx(_Fixed("Who", "second"))
        assert b.render_template("t", "{{repl Who }}") == "second"

    def test_explicit_functions_override_providers(self):
        b = Builder([_Fixed("Who", "provider")], functions={"Who": lambda: "explicit"})
        assert b.render_template("t", "{{repl Who }}") == "explicit"

    def test_builtins_available_without_providers(self):
        b = Builder()
        assert b.render_template("t", '{{repl len (list 1 2 3) }}') == "3"

    def test_func_map_contains_provider_names(self):
        func_map = Builder([StaticCtx()]).build_func_map()
        for name in ("ToUpper", "TLSCert", "KubeSeal", "printf", "default"):
            assert name in func_map


# ── Errors ───────────────────────────────────────────────────────────


class TestErrors:
    def test_unknown_function_is_parse_error(self):
        b = _static_builder()
        with pytest.raises(TemplateParseError, match='function "ConfigOption" not defined'):
            b.render_template("item", 'repl{{ ConfigOption "a" }}')

    def test_error_names_the_template(self):
        b = _static_builder()
        with pytest.raises(TemplateError, match="template myitem"):
            b.render_template("myitem", "{{repl Nope }}")

    def test_function_failure_is_execution_error(self):
        b = _static_builder()
        with pytest.raises(TemplateError, match="failed to execute"):
            b.render_template("t", "{{repl Div 1 0 }}")

    def test_undefined_variable(self):
        b = _static_builder()
        with pytest.raises(TemplateError):
            b.render_template("t", "{{repl $missing }}")

    def test_assignment_to_outer_variable_in_range_is_rejected(self):
        b = _static_builder()
        text = '{{repl $x := "a" }}{{repl range (list 1 2) }}{{repl $x = "b" }}{{repl end }}{{repl $x }}'
        with pytest.raises(TemplateParseError, match="inside range or with"):
            b.render_template("t", text)


# ── Typed wrappers ───────────────────────────────────────────────────


class TestTypedRenders:
    def test_render_bool(self):
        b = _static_builder()
        assert b.render_bool('repl{{ ParseBool "true" }}', False) is True
        assert b.render_bool("0", True) is False

    def test_render_bool_default_on_empty_or_garbage(self):
        b = _static_builder()
        assert b.render_bool("", True) is True
        assert b.render_bool("maybe", False) is False

    def test_render_int(self):
        b = _static_builder()
        assert b.render_int("repl{{ Add 40 2 }}", 0) == 42
        assert b.render_int("abc", 7) == 7

    def test_render_uint_rejects_negative(self):
        b = _static_builder()
        assert b.render_uint("-1", 5) == 5
        assert b.render_uint("12", 5) == 12

    def test_render_float(self):
        b = _static_builder()
        assert b.render_float("1.5", 0.0) == 1.5
        assert b.render_float("", 2.0) == 2.0

    def test_render_errors_propagate(self):
        b = _static_builder()
        with pytest.raises(TemplateError):
            b.render_bool("{{repl Nope }}", True)
