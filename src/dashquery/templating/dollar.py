"""Dashboard-style variable substitution.

Replaces the variable syntaxes understood by dashboard hosts:

- `$name`
- `${name}` and `${name:format}`
- `[[name]]` and `[[name:format]]`

References whose name starts with `__` are query macros (`$__timeFilter`,
`$__conditionalAll`, ...) and are never touched. References to unknown
variables, or to variables without a current value, are left as they are.
"""

import re
from typing import Callable, Dict, List, Optional

from dashquery.templating.base import Templater, TemplaterError, Variables
from dashquery.templating.models import TemplateVariable, as_variable_set

_NAME = r"[A-Za-z0-9_]+"

_VARIABLE_PATTERN = re.compile(
    rf"\$\{{(?P<braced>{_NAME})(?::(?P<braced_format>{_NAME}))?\}}"
    rf"|\[\[(?P<bracketed>{_NAME})(?::(?P<bracketed_format>{_NAME}))?\]\]"
    rf"|\$(?P<bare>{_NAME})"
)


def _quote(item: str, quote: str) -> str:
    return quote + item.replace(quote, quote + quote) + quote


FORMATTERS: Dict[str, Callable[[List[str]], str]] = {
    "raw": lambda items: ",".join(items),
    "csv": lambda items: ",".join(items),
    "pipe": lambda items: "|".join(items),
    "sqlstring": lambda items: ",".join(_quote(item, "'") for item in items),
    "singlequote": lambda items: ",".join(_quote(item, "'") for item in items),
    "doublequote": lambda items: ",".join(_quote(item, '"') for item in items),
}


def format_value(variable: TemplateVariable, fmt: Optional[str] = None) -> Optional[str]:
    """Render a variable's current value using a named format.

    Args:
        variable: The variable to render.
        fmt: Format name, or None for the default comma-joined form.

    Returns:
        The rendered value, or None if the variable has no current value.

    Raises:
        TemplaterError: If the format name is unknown.
    """
    value = variable.current.value
    if value is None:
        return None

    items = value if isinstance(value, list) else [value]
    formatter = FORMATTERS.get(fmt or "raw")
    if formatter is None:
        available = ", ".join(sorted(FORMATTERS))
        raise TemplaterError(
            f"Unknown format '{fmt}' for variable '{variable.name}'. "
            f"Available formats: {available}"
        )
    return formatter(items)


class DollarTemplater(Templater):
    """Substitutes `$var`, `${var}` and `[[var]]` references.

    Example:
        >>> templater = DollarTemplater()
        >>> templater.render(
        ...     "SELECT * FROM logs WHERE host IN (${hosts:sqlstring})",
        ...     [TemplateVariable.of("hosts", ["a", "b"])],
        ... )
        "SELECT * FROM logs WHERE host IN ('a','b')"
    """

    @property
    def name(self) -> str:
        return "dollar"

    def render(self, sql: str, variables: Optional[Variables] = None) -> str:
        variable_set = as_variable_set(variables)
        if not sql or not len(variable_set):
            return sql

        def replace(match: re.Match) -> str:
            name = match.group("braced") or match.group("bracketed") or match.group("bare")
            fmt = match.group("braced_format") or match.group("bracketed_format")

            if name.startswith("__"):
                return match.group(0)

            variable = variable_set.lookup(name)
            if variable is None:
                return match.group(0)

            rendered = format_value(variable, fmt)
            return match.group(0) if rendered is None else rendered

        return _VARIABLE_PATTERN.sub(replace, sql)
