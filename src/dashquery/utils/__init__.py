"""Utility functions for dashquery."""

from dashquery.utils.config import ConfigSettings, find_config_file, load_config
from dashquery.utils.file_utils import read_query_file, write_output

__all__ = [
    "ConfigSettings",
    "find_config_file",
    "load_config",
    "read_query_file",
    "write_output",
]
