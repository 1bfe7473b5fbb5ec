"""Ad-hoc filter injection for dashboard queries.

Example:
    >>> from dashquery.adhoc import AdHocFilterApplier, Filter
    >>> applier = AdHocFilterApplier()
    >>> print(applier.apply(
    ...     "SELECT * FROM t WHERE x > 1",
    ...     [Filter(key="t.id", operator="=", value="42")],
    ... ))
    SELECT * FROM t WHERE x > 1 settings additional_table_filters={'t' : ' id = 42 '}
"""

from dashquery.adhoc.filter import (
    AdHocFilterApplier,
    ExtractionError,
    build_filter_clause,
    render_value,
)
from dashquery.adhoc.models import Filter, FilterContext
from dashquery.adhoc.tables import extract_table

__all__ = [
    "AdHocFilterApplier",
    "ExtractionError",
    "Filter",
    "FilterContext",
    "build_filter_clause",
    "extract_table",
    "render_value",
]
