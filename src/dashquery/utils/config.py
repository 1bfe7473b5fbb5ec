"""Configuration management for dashquery.

Loads configuration from dashquery.toml in the current working directory:

    [dashquery]
    templater = "dollar"
    dialect = "clickhouse"
    datasource = "clickhouse-prod"

    [dashquery.templating]
    variables_file = "vars.yaml"
    variables = { region = "EU" }

    [dashquery.adhoc]
    mode = "enabled"
    target_table = "orders"
    filters_file = "filters.json"
"""

import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel
from rich.console import Console

from dashquery.global_models import AdHocFilterMode

CONFIG_FILE_NAME = "dashquery.toml"

console = Console(stderr=True)


class TemplatingConfig(BaseModel):
    """Configuration for template variables.

    All fields are optional.
    """

    variables_file: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None


class AdHocConfig(BaseModel):
    """Configuration for ad-hoc filtering.

    All fields are optional.
    """

    mode: Optional[AdHocFilterMode] = None
    target_table: Optional[str] = None
    filters_file: Optional[str] = None


class ConfigSettings(BaseModel):
    """Configuration settings for dashquery.

    All fields are optional. None values indicate the setting was not
    specified in the config file.
    """

    templater: Optional[str] = None
    dialect: Optional[str] = None
    datasource: Optional[str] = None
    verbose: Optional[bool] = None
    templating: Optional[TemplatingConfig] = None
    adhoc: Optional[AdHocConfig] = None


def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """Find dashquery.toml in a directory.

    Args:
        start_path: Directory to look in. Defaults to the current working
                    directory.

    Returns:
        Path to config file if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()

    config_path = start_path / CONFIG_FILE_NAME

    if config_path.exists() and config_path.is_file():
        return config_path

    return None


def _warn_defaults(message: str) -> ConfigSettings:
    console.print(f"[yellow]Warning:[/yellow] {message}")
    console.print("[yellow]Using default settings[/yellow]")
    return ConfigSettings()


def load_config(config_path: Optional[Path] = None) -> ConfigSettings:
    """Load configuration from dashquery.toml.

    Priority order:
    1. Explicit config_path parameter
    2. dashquery.toml in current working directory
    3. Empty ConfigSettings (all None)

    Error Handling:
        - Missing file: Returns empty ConfigSettings (silent)
        - Malformed TOML or invalid values: Warns and returns empty ConfigSettings
        - Unknown keys: Ignored (forward compatibility)
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None:
        return ConfigSettings()

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        return _warn_defaults(f"Failed to parse {config_path}: {e}")
    except OSError as e:
        return _warn_defaults(f"Could not read {config_path}: {e}")

    section = toml_data.get("dashquery", {})
    if not isinstance(section, dict):
        return _warn_defaults(f"The dashquery section in {config_path} must be a table")

    try:
        return ConfigSettings(**section)
    except Exception as e:
        return _warn_defaults(f"Invalid configuration in {config_path}: {e}")
