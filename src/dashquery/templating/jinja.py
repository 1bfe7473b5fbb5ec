"""Jinja2-based variable substitution.

Exposes each template variable's current value to a Jinja2 template, so
queries can use `{{ region }}`, `{% if region %}...{% endif %}` or
`{{ hosts | join("','") }}` for multi-value selections.
"""

from typing import Optional

from jinja2 import Environment, StrictUndefined, TemplateError, UndefinedError

from dashquery.templating.base import Templater, TemplaterError, Variables
from dashquery.templating.models import as_variable_set


class JinjaTemplater(Templater):
    """Jinja2-based templater.

    Undefined names raise a TemplaterError rather than rendering as empty
    text, which would silently change the query's meaning.
    """

    def __init__(self) -> None:
        self._env = Environment(
            # Keep whitespace to preserve SQL formatting
            trim_blocks=False,
            lstrip_blocks=False,
            autoescape=False,
            undefined=StrictUndefined,
        )

    @property
    def name(self) -> str:
        return "jinja"

    def render(self, sql: str, variables: Optional[Variables] = None) -> str:
        context = as_variable_set(variables).values()

        try:
            return self._env.from_string(sql).render(**context)

        except UndefinedError as e:
            raise TemplaterError(f"Undefined variable in template: {e}") from e

        except TemplateError as e:
            raise TemplaterError(f"Template error: {e}") from e
