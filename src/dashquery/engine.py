"""Query interpolation pipeline.

Raw query text goes through three rewriting steps, always in this order:

1. ad-hoc filter injection (skipped for filter-source queries)
2. `$__conditionalAll` macro expansion
3. host variable substitution by the configured templater

The pipeline is a pure function of the query text, the host's current
variables and filters, and the caller's FilterContext.
"""

from functools import partial
from typing import Dict, List, Optional, Protocol, Sequence, Union

from rich.console import Console
from rich.markup import escape

from dashquery.adhoc.filter import AdHocFilterApplier, TableExtractor
from dashquery.adhoc.models import Filter, FilterContext
from dashquery.adhoc.tables import extract_table
from dashquery.global_models import AdHocFilterMode, DataSourceQuery
from dashquery.templating.base import Templater
from dashquery.templating.macros import MacroExpander
from dashquery.templating.models import TemplateVariable, VariableSet
from dashquery.templating.registry import get_templater


class FilterApplicationDisallowed(Exception):
    """Raised when ad-hoc filters are supplied but disabled for the data source."""

    pass


class VariableStore(Protocol):
    """Read access to the host's dashboard state."""

    def get_variables(self) -> Sequence[TemplateVariable]: ...

    def get_adhoc_filters(self, datasource_name: str) -> Sequence[Filter]: ...


class StaticVariableStore:
    """In-memory VariableStore.

    Filters are either one list shared by every data source, or a mapping
    of data source name to its filter list.
    """

    def __init__(
        self,
        variables: Optional[Sequence[TemplateVariable]] = None,
        filters: Union[Sequence[Filter], Dict[str, Sequence[Filter]], None] = None,
    ):
        self.variables: List[TemplateVariable] = list(variables or [])
        self.filters = filters if filters is not None else []

    def get_variables(self) -> Sequence[TemplateVariable]:
        return list(self.variables)

    def get_adhoc_filters(self, datasource_name: str) -> Sequence[Filter]:
        if isinstance(self.filters, dict):
            return list(self.filters.get(datasource_name, []))
        return list(self.filters)


class QueryTemplateEngine:
    """Interpolates dashboard queries before they reach the backend."""

    def __init__(
        self,
        store: VariableStore,
        datasource_name: str = "",
        ad_hoc_mode: AdHocFilterMode = AdHocFilterMode.UNSET,
        templater: Union[str, Templater] = "dollar",
        dialect: str = "clickhouse",
        table_extractor: Optional[TableExtractor] = None,
        console: Optional[Console] = None,
        verbose: bool = False,
    ):
        """
        Initialize the engine.

        Args:
            store: Source of template variables and ad-hoc filters.
            datasource_name: Name the store's filters are keyed by.
            ad_hoc_mode: Whether ad-hoc filtering is allowed.
            templater: Templater instance or registered name for the final
                       substitution step.
            dialect: SQL dialect used to extract target tables.
            table_extractor: Override for target table extraction.
            console: Rich console for diagnostics. Uses stderr if not provided.
            verbose: Trace every pipeline step to the console.

        Raises:
            TemplaterError: If the templater name is not registered.
        """
        self.store = store
        self.datasource_name = datasource_name
        self.ad_hoc_mode = AdHocFilterMode(ad_hoc_mode)
        self.templater = (
            get_templater(templater) if isinstance(templater, str) else templater
        )
        self.table_extractor = table_extractor or partial(extract_table, dialect=dialect)
        self.console = console or Console(stderr=True)
        self.verbose = verbose
        self.expander = MacroExpander()

    def _trace(self, step: str, sql: str) -> None:
        if self.verbose:
            self.console.print(f"[dim]{step}:[/dim] {escape(sql)}", highlight=False)

    def filter_applier(self, context: FilterContext) -> AdHocFilterApplier:
        """Return an ad-hoc filter applier bound to `context`."""
        return AdHocFilterApplier(
            context, table_extractor=self.table_extractor, console=self.console
        )

    def interpolate(self, query_text: str, context: Optional[FilterContext] = None) -> str:
        """Run the full pipeline over a query.

        Args:
            query_text: Raw query text.
            context: Request-scoped filtering state. A fresh one is used if
                     not provided.

        Returns:
            The query ready for the backend.

        Raises:
            FilterApplicationDisallowed: If ad-hoc filtering is disabled but
                the host supplies filters.
            TemplaterError: If variable substitution fails.
        """
        if context is None:
            context = FilterContext()

        variables = VariableSet(self.store.get_variables())
        sql = query_text
        self._trace("raw query", sql)

        if not context.skip_ad_hoc_filter:
            filters = list(self.store.get_adhoc_filters(self.datasource_name))
            if self.ad_hoc_mode == AdHocFilterMode.DISABLED and filters:
                raise FilterApplicationDisallowed(
                    "Unable to apply ad-hoc filters: ad-hoc filtering is disabled "
                    f"for data source '{self.datasource_name}'. "
                    "Remove the ad-hoc filters from the dashboard."
                )
            sql = self.filter_applier(context).apply(sql, filters)
            self._trace("ad-hoc filters", sql)

        sql = self.expander.expand(sql, variables)
        self._trace("macros", sql)

        sql = self.templater.render(sql, variables)
        self._trace(f"templater {self.templater.name}", sql)

        return sql

    def apply_template_variables(
        self, query: DataSourceQuery, context: Optional[FilterContext] = None
    ) -> DataSourceQuery:
        """Return a copy of `query` with its text interpolated."""
        return query.model_copy(
            update={"query_text": self.interpolate(query.query_text, context)}
        )

    @staticmethod
    def filter_query(query: DataSourceQuery) -> bool:
        """True if the query should be sent to the backend."""
        return query.query_text != "" and not query.hide

    @staticmethod
    def metric_find_query_target(query_text: str) -> Optional[DataSourceQuery]:
        """Build the query target used to fetch variable values.

        Returns:
            The target, or None when there is nothing to run.
        """
        if not query_text:
            return None
        return DataSourceQuery(
            ref_id="search",
            query_text=query_text,
            query_type="table",
            time_columns=["time"],
        )
