"""Tests for ad-hoc filter injection."""

from io import StringIO

import pytest
from rich.console import Console

from dashquery.adhoc.filter import (
    AdHocFilterApplier,
    ExtractionError,
    build_filter_clause,
    escape_quoted,
    references_table,
    render_value,
)
from dashquery.adhoc.models import Filter, FilterContext


@pytest.fixture
def quiet_console():
    """A console that discards output."""
    return Console(file=StringIO(), force_terminal=False)


@pytest.fixture
def applier(quiet_console):
    return AdHocFilterApplier(console=quiet_console)


class TestRenderValue:
    """Tests for render_value."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("42", "42"),
            ("-7", "-7"),
            ("042", "42"),
            ("3.5", "3.5"),
            ("1.50", "1.5"),
            ("1e3", "1000"),
            (" 42 ", "42"),
            (".5", "0.5"),
        ],
    )
    def test_numbers_are_bare(self, value, expected):
        """Test that numeric literals render unquoted."""
        assert render_value(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("shipped", "'shipped'"),
            ("", "''"),
            ("42abc", "'42abc'"),
            ("0x10", "'0x10'"),
            ("1e999", "'1e999'"),
            ("nan", "'nan'"),
        ],
    )
    def test_strings_are_quoted(self, value, expected):
        """Test that anything else renders as a string literal."""
        assert render_value(value) == expected

    def test_quotes_escaped(self):
        """Test that quotes and backslashes inside a value are escaped."""
        assert render_value("O'Brien") == "'O\\'Brien'"
        assert render_value("a\\b") == "'a\\\\b'"


class TestBuildFilterClause:
    """Tests for build_filter_clause."""

    def test_single_filter_has_no_condition(self):
        """Test that the last filter carries no join condition."""
        clause = build_filter_clause([Filter(key="orders.status", operator="=", value="shipped")])
        assert clause == " status = 'shipped' "

    def test_default_condition_is_and(self):
        """Test that filters are joined with AND by default."""
        clause = build_filter_clause(
            [
                Filter(key="a", operator="=", value="1"),
                Filter(key="b", operator="!=", value="x"),
            ]
        )
        assert clause == " a = 1 AND b != 'x' "

    def test_filter_condition_used(self):
        """Test that each filter's own condition joins it to the next."""
        clause = build_filter_clause(
            [
                Filter(key="a", operator="=", value="1", condition="OR"),
                Filter(key="b", operator="=", value="2", condition="OR"),
                Filter(key="c", operator="=", value="3", condition="OR"),
            ]
        )
        assert clause == " a = 1 OR b = 2 OR c = 3 "


class TestReferencesTable:
    """Tests for references_table."""

    def test_whole_word_case_insensitive(self):
        """Test matching a table name regardless of case."""
        assert references_table("SELECT * FROM Orders", "orders")

    def test_partial_word_does_not_match(self):
        """Test that a table name inside another word does not match."""
        assert not references_table("SELECT * FROM orders_archive", "orders")

    def test_regex_characters_escaped(self):
        """Test that table names are matched literally."""
        assert references_table("SELECT * FROM db.orders", "db.orders")
        assert not references_table("SELECT * FROM dbxorders", "db.orders")


class TestTargetTable:
    """Tests for target table assignment."""

    def test_set_target_table(self, applier):
        """Test explicit assignment."""
        applier.set_target_table("orders")
        assert applier.target_table == "orders"
        assert applier.context.target_table == "orders"

    def test_set_target_table_from_query(self, applier):
        """Test deriving the target from a query."""
        applier.set_target_table_from_query("SELECT * FROM events WHERE x = 1")
        assert applier.target_table == "events"

    def test_set_target_table_from_query_fails(self, quiet_console):
        """Test that an undeterminable table raises ExtractionError."""
        applier = AdHocFilterApplier(table_extractor=lambda query: "", console=quiet_console)
        with pytest.raises(ExtractionError):
            applier.set_target_table_from_query("SELECT 1")

    def test_set_target_table_from_query_without_table(self, applier):
        """Test that a parsed query with no table raises and stores no target."""
        with pytest.raises(ExtractionError):
            applier.set_target_table_from_query("SELECT EXTRACT(YEAR FROM now())")
        assert applier.target_table == ""

    def test_extractor_is_used(self, quiet_console, mocker):
        """Test that the injected extractor receives the query."""
        extractor = mocker.Mock(return_value="custom")
        applier = AdHocFilterApplier(table_extractor=extractor, console=quiet_console)
        applier.set_target_table_from_query("SELECT 1")
        extractor.assert_called_once_with("SELECT 1")
        assert applier.target_table == "custom"

    def test_shared_context(self, quiet_console):
        """Test that the target table lives in the caller's context."""
        context = FilterContext()
        AdHocFilterApplier(context, console=quiet_console).set_target_table("orders")
        assert AdHocFilterApplier(context, console=quiet_console).target_table == "orders"


class TestApply:
    """Tests for AdHocFilterApplier.apply."""

    def test_qualified_key(self, applier):
        """Test a filter with a table-qualified key."""
        result = applier.apply(
            "SELECT * FROM orders",
            [Filter(key="orders.status", operator="=", value="shipped", condition="AND")],
        )
        assert result == (
            "SELECT * FROM orders settings additional_table_filters="
            "{'orders' : ' status = \\'shipped\\' '}"
        )

    def test_empty_filters_identity(self, applier):
        """Test that no filters leave the query unchanged."""
        assert applier.apply("SELECT * FROM orders", []) == "SELECT * FROM orders"
        assert applier.apply("SELECT * FROM orders", None) == "SELECT * FROM orders"

    def test_empty_sql_identity(self, applier):
        """Test that an empty query is returned unchanged."""
        assert applier.apply("", [Filter(key="orders.status", value="x")]) == ""

    def test_numeric_value_unquoted(self, applier):
        """Test that numeric values are rendered bare."""
        result = applier.apply(
            "SELECT * FROM t",
            [Filter(key="t.id", operator="=", value="42", condition="AND")],
        )
        assert result == "SELECT * FROM t settings additional_table_filters={'t' : ' id = 42 '}"

    def test_unknown_target_identity(self, applier):
        """Test that bare keys without a target table do nothing."""
        sql = "SELECT * FROM orders"
        assert applier.apply(sql, [Filter(key="status", value="x")]) == sql

    def test_bare_key_uses_stored_target(self, applier):
        """Test that bare keys apply to an explicitly set table."""
        applier.set_target_table("orders")
        result = applier.apply("SELECT * FROM orders", [Filter(key="status", value="x")])
        assert result.endswith("{'orders' : ' status = \\'x\\' '}")

    def test_table_not_in_query_identity(self, applier):
        """Test that queries not referencing the table are untouched."""
        sql = "SELECT * FROM customers"
        assert applier.apply(sql, [Filter(key="orders.status", value="x")]) == sql

    def test_first_filter_overrides_target(self, applier):
        """Test that the first qualified key replaces the stored target."""
        applier.set_target_table("customers")
        result = applier.apply(
            "SELECT * FROM orders",
            [Filter(key="orders.status", value="x"), Filter(key="customers.id", value="1")],
        )
        assert applier.target_table == "orders"
        assert "{'orders' : ' status = \\'x\\' AND id = 1 '}" in result

    def test_inferred_target_persists(self, applier):
        """Test that an inferred target is kept for later calls."""
        applier.apply("SELECT * FROM orders", [Filter(key="orders.status", value="x")])
        result = applier.apply("SELECT * FROM orders", [Filter(key="total", operator=">", value="5")])
        assert result.endswith("{'orders' : ' total > 5 '}")

    def test_trailing_semicolon_stripped(self, applier):
        """Test that a single trailing semicolon is removed."""
        result = applier.apply("SELECT * FROM t;\n", [Filter(key="t.id", value="1")])
        assert result == "SELECT * FROM t settings additional_table_filters={'t' : ' id = 1 '}"

    def test_inner_semicolons_kept(self, applier):
        """Test that semicolons inside the query are not touched."""
        sql = "SELECT * FROM t WHERE s = ';'"
        result = applier.apply(sql, [Filter(key="t.id", value="1")])
        assert result.startswith(sql + " settings ")

    def test_original_text_preserved(self, applier):
        """Test that the result starts with the original query text."""
        sql = "SELECT a, b\nFROM   orders\nWHERE x IN (1, 2)"
        result = applier.apply(sql, [Filter(key="orders.a", value="1")])
        assert result.startswith(sql)
        assert result[len(sql) :].startswith(" settings additional_table_filters=")

    def test_input_not_mutated(self, applier):
        """Test that the input filter list is left as is."""
        filters = [Filter(key="orders.status", value="x")]
        applier.apply("SELECT * FROM orders", filters)
        assert filters == [Filter(key="orders.status", value="x")]

    def test_value_quote_double_escaped(self, applier):
        """Test that a quote in a value survives both quoting levels."""
        result = applier.apply("SELECT * FROM t", [Filter(key="t.name", value="O'Brien")])
        assert result.endswith("{'t' : ' name = \\'O\\\\\\'Brien\\' '}")


class TestEscapeQuoted:
    """Tests for escape_quoted."""

    def test_escapes(self):
        """Test that backslashes are escaped before quotes."""
        assert escape_quoted("a'b\\c") == "a\\'b\\\\c"
