"""Query templating for dashboard queries.

This package covers the text rewriting steps that run after ad-hoc filter
injection:

- `$__conditionalAll(<expr>, $var)` macro expansion
- host variable substitution through pluggable templaters

Built-in templaters:
- `none`: passes the query through unchanged
- `dollar`: `$var`, `${var:format}` and `[[var]]` substitution
- `jinja`: Jinja2 rendering with variables' current values

Example:
    >>> from dashquery.templating import TemplateVariable, get_templater
    >>> templater = get_templater("dollar")
    >>> print(templater.render(
    ...     "SELECT * FROM $table", [TemplateVariable.of("table", "users")]
    ... ))
    SELECT * FROM users
"""

from dashquery.templating.base import NoOpTemplater, Templater, TemplaterError
from dashquery.templating.macros import (
    MacroExpander,
    MacroInvocation,
    MacroSyntaxError,
    expand_conditional_all,
)
from dashquery.templating.models import (
    ALL_VALUE,
    CurrentValue,
    TemplateVariable,
    VariableResolution,
    VariableSet,
)
from dashquery.templating.registry import (
    clear_registry,
    get_templater,
    list_templaters,
    register_templater,
)
from dashquery.templating.variables import (
    load_all_variables,
    load_env_variables,
    load_filters_file,
    load_variables_file,
    merge_variables,
    parse_cli_filters,
    parse_cli_variables,
)

__all__ = [
    # Base classes
    "Templater",
    "TemplaterError",
    "NoOpTemplater",
    # Variables
    "ALL_VALUE",
    "CurrentValue",
    "TemplateVariable",
    "VariableResolution",
    "VariableSet",
    # Macros
    "MacroExpander",
    "MacroInvocation",
    "MacroSyntaxError",
    "expand_conditional_all",
    # Registry functions
    "get_templater",
    "list_templaters",
    "register_templater",
    "clear_registry",
    # Variable and filter loading
    "load_all_variables",
    "load_variables_file",
    "load_filters_file",
    "parse_cli_variables",
    "parse_cli_filters",
    "load_env_variables",
    "merge_variables",
]
