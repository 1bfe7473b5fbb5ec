"""Tests for $__conditionalAll macro expansion."""

import pytest

from dashquery.templating.macros import (
    TAUTOLOGY,
    MacroExpander,
    MacroSyntaxError,
    expand_conditional_all,
    find_macro_starts,
    scan_arguments,
    variable_name_from_ref,
)
from dashquery.templating.models import TemplateVariable, VariableSet

QUERY = "SELECT * FROM t WHERE $__conditionalAll(region = 'EU', $region)"


def variables(**values):
    return [TemplateVariable.of(name, value) for name, value in values.items()]


class TestScanArguments:
    """Tests for the balanced argument scanner."""

    def test_two_arguments(self):
        """Test splitting a simple argument list."""
        text = "f(a, b)"
        assert scan_arguments(text, 1) == (["a", " b"], 6)

    def test_nested_parentheses_stay_in_argument(self):
        """Test that commas inside nested calls do not split arguments."""
        text = "m(f(x,y) = 1, $v)"
        args, close = scan_arguments(text, 1)
        assert args == ["f(x,y) = 1", " $v"]
        assert close == len(text) - 1

    def test_unbalanced_returns_none(self):
        """Test that an unclosed list yields None."""
        assert scan_arguments("m(a, (b", 1) is None

    def test_stops_at_matching_parenthesis(self):
        """Test that text after the closing parenthesis is ignored."""
        args, close = scan_arguments("m(a, b) AND (c, d)", 1)
        assert args == ["a", " b"]
        assert close == 6


class TestVariableNameFromRef:
    """Tests for variable reference normalization."""

    @pytest.mark.parametrize(
        "ref,expected",
        [
            ("$region", "region"),
            ("  $region ", "region"),
            ("${region}", "region"),
            ("region", "region"),
        ],
    )
    def test_sigil_and_whitespace_removed(self, ref, expected):
        """Test that whitespace, sigil and braces are stripped."""
        assert variable_name_from_ref(ref) == expected


class TestParse:
    """Tests for MacroExpander.parse."""

    def test_finds_all_starts(self):
        """Test that every macro token is located."""
        text = "$__conditionalAll(a, $a) OR $__conditionalAll(b, $b)"
        assert find_macro_starts(text) == [0, 28]

    def test_parse_single(self):
        """Test parsing one macro call."""
        invocations = MacroExpander().parse(QUERY)
        assert len(invocations) == 1
        invocation = invocations[0]
        assert invocation.expression == "region = 'EU'"
        assert invocation.variable_ref == " $region"
        assert invocation.variable_name == "region"
        assert QUERY[invocation.start : invocation.end] == invocation.source

    def test_parse_nested_function_call(self):
        """Test that a function call in the expression is one argument."""
        invocation = MacroExpander().parse("$__conditionalAll(f(x,y) = 1, $v)")[0]
        assert invocation.expression == "f(x,y) = 1"
        assert invocation.variable_name == "v"

    def test_parse_no_macros(self):
        """Test that text without macros parses to an empty list."""
        assert MacroExpander().parse("SELECT 1") == []

    def test_parse_malformed_raises(self):
        """Test that a call with one argument raises MacroSyntaxError."""
        with pytest.raises(MacroSyntaxError) as exc_info:
            MacroExpander().parse("$__conditionalAll(a = 1)")
        assert exc_info.value.position == 0

    def test_macro_syntax_error_is_value_error(self):
        """Test that MacroSyntaxError is a ValueError."""
        assert issubclass(MacroSyntaxError, ValueError)


class TestExpand:
    """Tests for MacroExpander.expand."""

    def test_all_selected_gives_tautology(self):
        """Test that the $__all sentinel collapses the macro."""
        result = expand_conditional_all(QUERY, variables(region="$__all"))
        assert result == "SELECT * FROM t WHERE 1=1"

    def test_value_keeps_expression(self):
        """Test that a concrete value keeps the expression."""
        result = expand_conditional_all(QUERY, variables(region="EU"))
        assert result == "SELECT * FROM t WHERE region = 'EU'"

    def test_empty_value_gives_tautology(self):
        """Test that an empty selection collapses the macro."""
        result = expand_conditional_all(QUERY, variables(region=""))
        assert result == "SELECT * FROM t WHERE 1=1"

    def test_missing_variable_keeps_expression(self):
        """Test that an unknown variable keeps the expression."""
        result = expand_conditional_all(QUERY, variables(other="$__all"))
        assert result == "SELECT * FROM t WHERE region = 'EU'"

    def test_unset_variable_keeps_expression(self):
        """Test that a variable without a value keeps the expression."""
        result = expand_conditional_all(QUERY, variables(region=None))
        assert result == "SELECT * FROM t WHERE region = 'EU'"

    def test_multi_value_all(self):
        """Test that a multi-value selection of only $__all collapses."""
        result = expand_conditional_all(QUERY, variables(region=["$__all"]))
        assert result == "SELECT * FROM t WHERE 1=1"

    def test_multi_value_keeps_expression(self):
        """Test that a multi-value selection keeps the expression."""
        result = expand_conditional_all(QUERY, variables(region=["EU", "US"]))
        assert result == "SELECT * FROM t WHERE region = 'EU'"

    def test_nested_parentheses_in_expression(self):
        """Test that the expression keeps its inner commas."""
        text = "SELECT 1 WHERE $__conditionalAll(f(x,y) = 1, $v)"
        assert expand_conditional_all(text, variables(v="a")) == "SELECT 1 WHERE f(x,y) = 1"
        assert expand_conditional_all(text, variables(v="$__all")) == "SELECT 1 WHERE 1=1"

    def test_multiple_macros(self):
        """Test that every macro is expanded independently."""
        text = "WHERE $__conditionalAll(a = 1, $a) AND $__conditionalAll(b = 2, $b)"
        result = expand_conditional_all(text, variables(a="$__all", b="x"))
        assert result == "WHERE 1=1 AND b = 2"

    def test_identical_macros(self):
        """Test that repeated identical calls are all expanded."""
        text = "$__conditionalAll(a = 1, $a) OR $__conditionalAll(a = 1, $a)"
        assert expand_conditional_all(text, variables(a="$__all")) == "1=1 OR 1=1"

    def test_nested_macros_resolve_inner_first(self):
        """Test that a macro inside another macro's expression is expanded."""
        text = "WHERE $__conditionalAll(a = 1 AND $__conditionalAll(b = 2, $b), $a)"
        assert (
            expand_conditional_all(text, variables(a="x", b="$__all"))
            == "WHERE a = 1 AND 1=1"
        )
        assert expand_conditional_all(text, variables(a="$__all", b="y")) == "WHERE 1=1"

    def test_whitespace_preserved_in_expression(self):
        """Test that the expression text is kept exactly."""
        text = "WHERE $__conditionalAll( a = 1 ,  $a )"
        assert expand_conditional_all(text, variables(a="x")) == "WHERE  a = 1 "

    def test_braced_variable_reference(self):
        """Test that ${name} references resolve."""
        text = "WHERE $__conditionalAll(a = 1, ${a})"
        assert expand_conditional_all(text, variables(a="$__all")) == "WHERE 1=1"

    def test_accepts_variable_set(self):
        """Test that a VariableSet can be passed directly."""
        variable_set = VariableSet(variables(region="$__all"))
        assert MacroExpander().expand(QUERY, variable_set).endswith(TAUTOLOGY)

    def test_no_macro_is_identity(self):
        """Test that text without macros is returned unchanged."""
        text = "SELECT * FROM t WHERE x = '$__all'"
        assert expand_conditional_all(text, variables(x="$__all")) == text

    def test_empty_text(self):
        """Test that empty text is returned unchanged."""
        assert expand_conditional_all("", []) == ""

    def test_idempotent_after_expansion(self):
        """Test that expanding an expanded query changes nothing."""
        once = expand_conditional_all(QUERY, variables(region="EU"))
        assert expand_conditional_all(once, variables(region="EU")) == once


class TestMalformedMacros:
    """Malformed macro calls leave the query unchanged."""

    @pytest.mark.parametrize(
        "text",
        [
            "WHERE $__conditionalAll(a = 1, $a",
            "WHERE $__conditionalAll(a = (1, $a)",
            "WHERE $__conditionalAll(a = 1)",
            "WHERE $__conditionalAll(a, b, $c)",
            "WHERE $__conditionalAll()",
        ],
    )
    def test_malformed_is_identity(self, text):
        """Test that malformed calls are not rewritten."""
        assert expand_conditional_all(text, variables(a="$__all", c="$__all")) == text

    def test_one_malformed_call_blocks_all(self):
        """Test that a malformed call leaves well-formed calls untouched too."""
        text = "$__conditionalAll(a = 1, $a) AND $__conditionalAll(b = 2 $b)"
        assert expand_conditional_all(text, variables(a="$__all", b="$__all")) == text
