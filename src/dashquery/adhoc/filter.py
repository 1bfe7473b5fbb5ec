"""Ad-hoc filter injection.

Ad-hoc filters are appended to a query as a backend settings directive
rather than spliced into its WHERE clause, so the original SQL text is
never rewritten:

    SELECT * FROM orders settings additional_table_filters={'orders' : ' status = \\'shipped\\' '}

Filtering is best-effort. Any input the applier cannot handle (empty query,
no filters, unknown target table, table not referenced by the query) is
passed through unchanged.
"""

import math
import re
from typing import Callable, Optional, Sequence

from rich.console import Console

from dashquery.adhoc.models import Filter, FilterContext
from dashquery.adhoc.tables import extract_table

TableExtractor = Callable[[str], str]

DEFAULT_CONDITION = "AND"

_NUMERIC_LITERAL = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_INTEGER_LITERAL = re.compile(r"^[+-]?\d+$")
_TRAILING_SEMICOLON = re.compile(r";\s*\Z")


class ExtractionError(Exception):
    """Raised when the target table cannot be determined from a query."""

    pass


def escape_quoted(text: str) -> str:
    """Escape backslashes and single quotes for a single-quoted literal."""
    return text.replace("\\", "\\\\").replace("'", "\\'")


def render_value(value: str) -> str:
    """Render a filter value as a bare number or a quoted string literal.

    Numeric literals are normalized the way a number parser would print
    them back (`042` becomes `42`, `1e3` becomes `1000`).
    """
    text = value.strip()
    if _NUMERIC_LITERAL.match(text):
        if _INTEGER_LITERAL.match(text):
            return str(int(text))
        number = float(text)
        if math.isfinite(number):
            if number.is_integer() and abs(number) < 1e21:
                return str(int(number))
            return repr(number)
    return f"'{escape_quoted(value)}'"


def build_filter_clause(filters: Sequence[Filter]) -> str:
    """Join filters into one condition string.

    Each filter renders as `" <column> <operator> <value> <condition>"`.
    The last filter carries no join condition.
    """
    parts = []
    last = len(filters) - 1
    for index, f in enumerate(filters):
        condition = (f.condition or DEFAULT_CONDITION) if index != last else ""
        parts.append(f" {f.column} {f.operator} {render_value(f.value)} {condition}")
    return "".join(parts)


def references_table(sql: str, table: str) -> bool:
    """True if `table` occurs in `sql` as a case-insensitive whole word."""
    return re.search(rf"\b{re.escape(table)}\b", sql, re.IGNORECASE) is not None


class AdHocFilterApplier:
    """Appends ad-hoc filters to queries against the target table.

    The target table lives in a FilterContext supplied by the caller. It is
    set explicitly, derived from a query, or inferred from the first
    filter's qualified key, and persists until reassigned.

    Example:
        >>> applier = AdHocFilterApplier()
        >>> applier.apply(
        ...     "SELECT * FROM orders",
        ...     [Filter(key="orders.status", operator="=", value="shipped")],
        ... )
    """

    def __init__(
        self,
        context: Optional[FilterContext] = None,
        table_extractor: Optional[TableExtractor] = None,
        console: Optional[Console] = None,
    ):
        """
        Initialize the applier.

        Args:
            context: Request-scoped filtering state. A fresh one is created
                     if not provided.
            table_extractor: Returns the primary table of a query, or an
                             empty string. Defaults to `extract_table`.
            console: Rich console for diagnostics. Uses stderr if not provided.
        """
        self.context = context if context is not None else FilterContext()
        self.table_extractor = table_extractor or extract_table
        self.console = console or Console(stderr=True)

    @property
    def target_table(self) -> str:
        return self.context.target_table

    def set_target_table(self, table: str) -> None:
        self.context.target_table = table

    def set_target_table_from_query(self, query: str) -> None:
        """Derive the target table from a query.

        Args:
            query: SQL query whose primary table becomes the target.

        Raises:
            ExtractionError: If no table can be extracted from the query.
        """
        table = self.table_extractor(query)
        self.context.target_table = table
        if table == "":
            self.console.print(
                "[red]Error:[/red] Failed to get table from ad-hoc query."
            )
            raise ExtractionError("Failed to get table from ad-hoc query.")

    def apply(self, sql: str, filters: Optional[Sequence[Filter]]) -> str:
        """Append a filter directive for `filters` to `sql`.

        Args:
            sql: Raw query text.
            filters: Ordered ad-hoc filters.

        Returns:
            The query with a settings directive appended, or `sql` unchanged
            when the filters do not apply to it.
        """
        if sql == "" or not filters:
            return sql

        first = filters[0]
        if first.is_qualified:
            self.context.target_table = first.table

        table = self.context.target_table
        if table == "" or not references_table(sql, table):
            return sql

        clause = build_filter_clause(filters)
        sql = _TRAILING_SEMICOLON.sub("", sql, count=1)
        return (
            f"{sql} settings additional_table_filters="
            f"{{'{escape_quoted(table)}' : '{escape_quoted(clause)}'}}"
        )
