"""Loading template variables and ad-hoc filters outside a dashboard host.

Variables are merged from several sources with a defined priority order:
1. CLI arguments (highest priority)
2. Variables file (JSON/YAML/TOML)
3. Config file inline variables
4. Environment variables (lowest priority)

A variables file is either a mapping of names to values or a list of
host-style variable objects:

    {"region": "EU", "hosts": ["a", "b"]}
    [{"name": "region", "current": {"value": "$__all"}}]

A filters file is a list of filter objects, or a mapping with a `filters`
list (the only form TOML can express):

    [{"key": "orders.status", "operator": "=", "value": "shipped"}]
"""

import json
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError
from rich.console import Console

from dashquery.adhoc.models import Filter
from dashquery.templating.models import TemplateVariable, VariableValue

console = Console(stderr=True)

# Longest first so "!=" is not read as "=" with a "!" in the key
FILTER_OPERATORS = ["!=", ">=", "<=", "=~", "!~", "=", ">", "<"]


def _load_document(path: Path) -> Any:
    """Load a JSON, YAML or TOML document.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the format is not supported or cannot be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()

    if suffix == ".json":
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e

    elif suffix in (".yaml", ".yml"):
        try:
            with open(path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    elif suffix == ".toml":
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e

    raise ValueError(
        f"Unsupported file format: {suffix}. Use .json, .yaml, .yml, or .toml"
    )


def _to_variable_value(value: Any) -> VariableValue:
    """Coerce a loaded value into the string form hosts use."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (list, tuple)):
        return [str(_to_variable_value(item)) for item in value]
    return str(value)


def load_variables_file(path: Path) -> Dict[str, VariableValue]:
    """Load variables from a JSON, YAML, or TOML file.

    Args:
        path: Path to the variables file.

    Returns:
        A mapping of variable names to current values.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file format is not supported or cannot be parsed.
    """
    data = _load_document(path)

    if data is None:
        return {}

    if isinstance(data, dict):
        return {str(name): _to_variable_value(value) for name, value in data.items()}

    if isinstance(data, list):
        variables: Dict[str, VariableValue] = {}
        for item in data:
            if not isinstance(item, dict) or "name" not in item:
                raise ValueError(
                    f"Variables file {path} must contain objects with a 'name' key"
                )
            current = item.get("current") or {}
            value = current.get("value") if isinstance(current, dict) else None
            variables[str(item["name"])] = _to_variable_value(value)
        return variables

    raise ValueError(
        f"Variables file {path} must contain a mapping or a list, "
        f"got {type(data).__name__}"
    )


def load_filters_file(path: Path) -> List[Filter]:
    """Load ad-hoc filters from a JSON, YAML, or TOML file.

    Args:
        path: Path to the filters file.

    Returns:
        The filters in file order.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file cannot be parsed or a filter is invalid.
    """
    data = _load_document(path)

    if data is None:
        return []

    if isinstance(data, dict):
        data = data.get("filters", [])

    if not isinstance(data, list):
        raise ValueError(
            f"Filters file {path} must contain a list of filters, "
            f"got {type(data).__name__}"
        )

    try:
        return [Filter(**item) for item in data]
    except (TypeError, ValidationError) as e:
        raise ValueError(f"Invalid filter in {path}: {e}") from e


def parse_cli_variables(var_args: Optional[List[str]]) -> Dict[str, VariableValue]:
    """Parse CLI variable arguments in name=value format.

    Repeating a name builds a multi-value selection.

    Args:
        var_args: List of variable strings in "name=value" format.

    Returns:
        A mapping of variable names to current values.

    Raises:
        ValueError: If a variable string is not in name=value format.
    """
    if not var_args:
        return {}

    variables: Dict[str, VariableValue] = {}

    for var_str in var_args:
        if "=" not in var_str:
            raise ValueError(
                f"Invalid variable format: '{var_str}'. Expected 'name=value'"
            )

        name, value = var_str.split("=", 1)
        name = name.strip()

        if not name:
            raise ValueError(f"Empty variable name in: '{var_str}'")

        if name in variables:
            previous = variables[name]
            if isinstance(previous, list):
                previous.append(value)
            else:
                variables[name] = [previous, value]
        else:
            variables[name] = value

    return variables


def parse_cli_filters(filter_args: Optional[List[str]]) -> List[Filter]:
    """Parse CLI filter arguments in `key<operator>value` format.

    Example:
        >>> parse_cli_filters(["orders.status=shipped", "orders.total>=100"])

    Raises:
        ValueError: If a filter has no known operator or an empty key.
    """
    if not filter_args:
        return []

    filters: List[Filter] = []

    for filter_str in filter_args:
        # Split on the leftmost operator; at equal offsets the longer one wins
        found = None
        for op in FILTER_OPERATORS:
            index = filter_str.find(op)
            if index == -1:
                continue
            if found is None or index < found[0]:
                found = (index, op)

        if found is None:
            raise ValueError(
                f"Invalid filter format: '{filter_str}'. "
                f"Expected 'key<operator>value' with one of: {' '.join(FILTER_OPERATORS)}"
            )

        index, op = found
        key = filter_str[:index].strip()
        value = filter_str[index + len(op) :].strip()

        if not key:
            raise ValueError(f"Empty filter key in: '{filter_str}'")

        filters.append(Filter(key=key, operator=op, value=value))

    return filters


def load_env_variables(prefix: str = "DASHQUERY_VAR_") -> Dict[str, VariableValue]:
    """Load variables from environment variables.

    The prefix is stripped and the rest lowercased, so DASHQUERY_VAR_REGION
    becomes the variable "region".
    """
    variables: Dict[str, VariableValue] = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            var_name = key[len(prefix) :].lower()
            if var_name:
                variables[var_name] = value

    return variables


def merge_variables(
    *sources: Optional[Dict[str, VariableValue]],
) -> Dict[str, VariableValue]:
    """Merge variables from multiple sources, later sources winning."""
    result: Dict[str, VariableValue] = {}

    for source in sources:
        if source is not None:
            result.update(source)

    return result


def load_all_variables(
    cli_vars: Optional[List[str]] = None,
    vars_file: Optional[Path] = None,
    config_vars: Optional[Dict[str, Any]] = None,
    use_env: bool = True,
) -> List[TemplateVariable]:
    """Load and merge variables from all sources.

    Problems with the variables file or CLI arguments are reported as
    warnings and that source is skipped.

    Args:
        cli_vars: List of CLI variable strings in "name=value" format.
        vars_file: Path to a variables file (JSON, YAML, or TOML).
        config_vars: Inline variables from the configuration file.
        use_env: Whether to load environment variables.

    Returns:
        The merged template variables.
    """
    sources: List[Optional[Dict[str, VariableValue]]] = []

    if use_env:
        sources.append(load_env_variables())

    if config_vars:
        sources.append(
            {str(name): _to_variable_value(value) for name, value in config_vars.items()}
        )

    if vars_file:
        try:
            sources.append(load_variables_file(vars_file))
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[yellow]Warning:[/yellow] {e}")

    if cli_vars:
        try:
            sources.append(parse_cli_variables(cli_vars))
        except ValueError as e:
            console.print(f"[yellow]Warning:[/yellow] {e}")

    merged = merge_variables(*sources)
    return [TemplateVariable.of(name, value) for name, value in merged.items()]
