"""Primary table extraction for ad-hoc filter targeting."""

import re
from typing import Optional, Set

from sqlglot import exp, parse
from sqlglot.errors import SqlglotError

# Dashboard queries often contain macros sqlglot cannot parse
_FROM_PATTERN = re.compile(r"\bFROM\s+([`\"]?[\w.]+[`\"]?)", re.IGNORECASE)


def qualified_table_name(table: exp.Table) -> str:
    """Return `catalog.db.table` with the missing parts left out."""
    parts = []
    if table.catalog:
        parts.append(table.catalog)
    if table.db:
        parts.append(table.db)
    parts.append(table.name)
    return ".".join(parts)


def _first_table(expression: exp.Expression) -> Optional[str]:
    cte_names: Set[str] = {
        cte.alias_or_name.lower() for cte in expression.find_all(exp.CTE)
    }

    # Breadth-first, so the outermost FROM is seen before nested queries
    for table in expression.find_all(exp.Table):
        if not table.name or table.name.lower() in cte_names:
            continue
        return qualified_table_name(table)

    return None


def _first_table_from_text(query: str) -> Optional[str]:
    match = _FROM_PATTERN.search(query)
    if match is None:
        return None
    name = match.group(1).strip("`\"")
    return name or None


def extract_table(query: str, dialect: str = "clickhouse") -> str:
    """Return the primary table a query reads from.

    The `FROM <name>` pattern is only consulted when sqlglot cannot parse
    the query. A parsed query without a physical table has no target.

    Args:
        query: SQL query text.
        dialect: sqlglot dialect used to parse the query.

    Returns:
        The first physical table in the query (CTE names excluded), qualified
        as written, or an empty string if none can be determined.
    """
    if not query or not query.strip():
        return ""

    try:
        expressions = [e for e in parse(query, dialect=dialect) if e is not None]
    except SqlglotError:
        return _first_table_from_text(query) or ""

    for expression in expressions:
        table = _first_table(expression)
        if table:
            return table

    return ""
