"""File utility functions for dashquery."""

import sys
from pathlib import Path
from typing import Optional


def read_query_file(file_path: Path) -> str:
    """
    Read a query file, or standard input when the path is "-".

    Args:
        file_path: Path to the query file

    Returns:
        The query text with any UTF-8 byte order mark removed

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the path is not a regular file or not valid UTF-8
    """
    if str(file_path) == "-":
        return sys.stdin.read()

    if not file_path.exists():
        raise FileNotFoundError(f"Query file not found: {file_path}")

    if not file_path.is_file():
        raise ValueError(f"Path is not a file: {file_path}")

    try:
        return file_path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValueError(f"File {file_path} is not valid UTF-8: {e.reason}") from e


def write_output(text: str, output_file: Optional[Path] = None) -> None:
    """Write text to a file, or to stdout when no file is given."""
    if output_file is None:
        print(text)
        return
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(text, encoding="utf-8")
