"""CLI entry point for dashquery."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dashquery.adhoc.filter import ExtractionError
from dashquery.adhoc.models import Filter, FilterContext
from dashquery.adhoc.tables import extract_table
from dashquery.engine import (
    FilterApplicationDisallowed,
    QueryTemplateEngine,
    StaticVariableStore,
)
from dashquery.global_models import AdHocFilterMode
from dashquery.templating import (
    MacroExpander,
    MacroSyntaxError,
    TemplaterError,
    VariableSet,
    list_templaters,
    load_all_variables,
    load_filters_file,
    load_variables_file,
    parse_cli_filters,
)
from dashquery.utils.config import ConfigSettings, load_config
from dashquery.utils.file_utils import read_query_file, write_output

app = typer.Typer(
    name="dashquery",
    help="Interpolate dashboard queries: ad-hoc filters, query macros and template variables.",
    invoke_without_command=False,
)
console = Console()
err_console = Console(stderr=True)


def _load_variables(
    config: ConfigSettings,
    cli_vars: Optional[List[str]],
    vars_file: Optional[Path],
):
    """Load template variables from CLI, files, config and environment."""
    config_vars_file = None
    config_vars = None
    if config.templating:
        if config.templating.variables_file and not vars_file:
            config_vars_file = Path(config.templating.variables_file)
            if not config_vars_file.exists():
                err_console.print(
                    f"[yellow]Warning:[/yellow] Variables file from config "
                    f"not found: {config_vars_file}"
                )
                config_vars_file = None
        config_vars = config.templating.variables

    if vars_file:
        # An explicitly named file must load; config sources only warn
        load_variables_file(vars_file)

    return load_all_variables(
        cli_vars=cli_vars,
        vars_file=vars_file or config_vars_file,
        config_vars=config_vars,
        use_env=True,
    )


def _load_filters(
    config: ConfigSettings,
    cli_filters: Optional[List[str]],
    filters_file: Optional[Path],
) -> List[Filter]:
    """Load ad-hoc filters; file filters come before CLI filters."""
    if filters_file is None and config.adhoc and config.adhoc.filters_file:
        filters_file = Path(config.adhoc.filters_file)

    filters: List[Filter] = []
    if filters_file is not None:
        filters.extend(load_filters_file(filters_file))
    filters.extend(parse_cli_filters(cli_filters))
    return filters


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(1)


@app.callback()
def main():
    """dashquery - dashboard query templating."""
    pass


@app.command()
def render(
    query_file: Path = typer.Argument(
        ...,
        help="Path to the query file to interpolate ('-' reads stdin)",
    ),
    var: Optional[List[str]] = typer.Option(
        None,
        "--var",
        "-v",
        help="Template variable in name=value format (repeat a name for multi-value)",
    ),
    vars_file: Optional[Path] = typer.Option(
        None,
        "--vars-file",
        exists=True,
        help="Path to variables file (JSON, YAML or TOML)",
    ),
    filter_: Optional[List[str]] = typer.Option(
        None,
        "--filter",
        "-F",
        help="Ad-hoc filter in key<operator>value format, e.g. orders.status=shipped",
    ),
    filters_file: Optional[Path] = typer.Option(
        None,
        "--filters-file",
        exists=True,
        help="Path to ad-hoc filters file (JSON, YAML or TOML)",
    ),
    target_table: Optional[str] = typer.Option(
        None,
        "--target-table",
        help="Table ad-hoc filters apply to (default: inferred from filter keys)",
    ),
    target_from_query: bool = typer.Option(
        False,
        "--target-from-query",
        help="Use the query's primary table as the ad-hoc filter target",
    ),
    ad_hoc: Optional[AdHocFilterMode] = typer.Option(
        None,
        "--ad-hoc",
        help="Ad-hoc filtering mode for the data source (default: unset, or from config)",
    ),
    skip_ad_hoc: bool = typer.Option(
        False,
        "--skip-ad-hoc",
        help="Do not apply ad-hoc filters (for queries that feed filter values)",
    ),
    datasource: Optional[str] = typer.Option(
        None,
        "--datasource",
        help="Data source name (default: from config)",
    ),
    templater: Optional[str] = typer.Option(
        None,
        "--templater",
        "-t",
        help="Templater for variable substitution (default: dollar, or from config)",
    ),
    dialect: Optional[str] = typer.Option(
        None,
        "--dialect",
        "-d",
        help="SQL dialect for table extraction (default: clickhouse, or from config)",
    ),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output-file",
        "-o",
        help="Write output to file instead of stdout",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Trace each interpolation step on stderr",
    ),
) -> None:
    """
    Interpolate a query the way the data source does before execution.

    Applies ad-hoc filters, expands $__conditionalAll macros, then
    substitutes template variables.

    Configuration can be set in dashquery.toml in the current directory.
    CLI arguments override configuration file values.

    Examples:

        # Substitute variables
        dashquery render query.sql --var region=EU

        # Collapse $__conditionalAll when "All" is selected
        dashquery render query.sql --var 'region=$__all'

        # Apply ad-hoc filters
        dashquery render query.sql --filter orders.status=shipped --filter 'orders.total>=100'

        # Variables and filters from files
        dashquery render query.sql --vars-file vars.yaml --filters-file filters.json
    """
    config = load_config()

    adhoc_config = config.adhoc
    templater = templater or config.templater or "dollar"
    dialect = dialect or config.dialect or "clickhouse"
    datasource = datasource or config.datasource or ""
    ad_hoc = ad_hoc or (adhoc_config.mode if adhoc_config else None) or AdHocFilterMode.UNSET
    target_table = target_table or (adhoc_config.target_table if adhoc_config else None)
    verbose = verbose or bool(config.verbose)

    try:
        sql = read_query_file(query_file)
        variables = _load_variables(config, var, vars_file)
        filters = _load_filters(config, filter_, filters_file)

        engine = QueryTemplateEngine(
            StaticVariableStore(variables, filters),
            datasource_name=datasource,
            ad_hoc_mode=ad_hoc,
            templater=templater,
            dialect=dialect,
            console=err_console,
            verbose=verbose,
        )

        context = FilterContext(skip_ad_hoc_filter=skip_ad_hoc)
        if target_from_query:
            engine.filter_applier(context).set_target_table_from_query(sql)
        elif target_table:
            engine.filter_applier(context).set_target_table(target_table)

        rendered = engine.interpolate(sql, context)
        write_output(rendered, output_file)
        if output_file:
            console.print(f"[green]Success:[/green] Query written to {output_file}")

    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))

    except ExtractionError:
        # Already reported by the filter applier
        raise typer.Exit(1)

    except FilterApplicationDisallowed as e:
        _fail(str(e))

    except TemplaterError as e:
        _fail(str(e))


@app.command()
def expand(
    query_file: Path = typer.Argument(
        ...,
        help="Path to the query file ('-' reads stdin)",
    ),
    var: Optional[List[str]] = typer.Option(
        None,
        "--var",
        "-v",
        help="Template variable in name=value format (repeatable)",
    ),
    vars_file: Optional[Path] = typer.Option(
        None,
        "--vars-file",
        exists=True,
        help="Path to variables file (JSON, YAML or TOML)",
    ),
    show: bool = typer.Option(
        False,
        "--show",
        help="List the macro calls found instead of expanding them",
    ),
) -> None:
    """
    Expand $__conditionalAll macros only.

    Examples:

        dashquery expand query.sql --var 'region=$__all'

        dashquery expand query.sql --show
    """
    config = load_config()

    try:
        sql = read_query_file(query_file)
        variables = VariableSet(_load_variables(config, var, vars_file))
        expander = MacroExpander()

        if not show:
            print(expander.expand(sql, variables))
            return

        invocations = expander.parse(sql)
        if not invocations:
            console.print("[yellow]No $__conditionalAll macros found[/yellow]")
            return

        table = Table(title="$__conditionalAll calls")
        table.add_column("Offset", justify="right")
        table.add_column("Variable")
        table.add_column("Selection")
        table.add_column("Expands to")
        for invocation in invocations:
            resolution = variables.resolve(invocation.variable_name)
            table.add_row(
                str(invocation.start),
                escape(invocation.variable_name),
                escape(resolution.text if resolution.text is not None else resolution.kind.value),
                escape(expander.resolve(invocation, variables).strip()),
            )
        console.print(table)

    except MacroSyntaxError as e:
        _fail(f"Malformed macro: {e}")

    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))


@app.command("table")
def table_command(
    query_file: Path = typer.Argument(
        ...,
        help="Path to the query file ('-' reads stdin)",
    ),
    dialect: Optional[str] = typer.Option(
        None,
        "--dialect",
        "-d",
        help="SQL dialect (default: clickhouse, or from config)",
    ),
) -> None:
    """
    Print the primary table of a query, the default ad-hoc filter target.
    """
    config = load_config()
    dialect = dialect or config.dialect or "clickhouse"

    try:
        sql = read_query_file(query_file)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))

    name = extract_table(sql, dialect=dialect)
    if not name:
        _fail("Failed to get table from query.")
    print(name)


@app.command()
def templaters() -> None:
    """List available templaters."""
    available = list_templaters()
    if not available:
        console.print("[yellow]No templaters available[/yellow]")
        return
    console.print("[bold]Available templaters:[/bold]")
    for name in available:
        console.print(f"  - {name}")


if __name__ == "__main__":
    app()
