"""Base classes for host variable substitution.

Substitution is the last step of query interpolation: after ad-hoc filters
and query macros have been applied, a templater replaces variable
references with the variables' current values.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Union

from dashquery.templating.models import TemplateVariable, VariableSet

Variables = Union[VariableSet, Iterable[TemplateVariable]]


class TemplaterError(Exception):
    """Exception raised when variable substitution fails."""

    pass


class Templater(ABC):
    """Abstract base class for variable substitution templaters.

    Implementations are discovered via the `dashquery.templaters` entry
    point group or registered with `register_templater`.

    Example:
        >>> class UpperTemplater(Templater):
        ...     @property
        ...     def name(self) -> str:
        ...         return "upper"
        ...
        ...     def render(self, sql, variables=None):
        ...         return sql.upper()
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the templater name used in configuration and CLI options."""
        pass

    @abstractmethod
    def render(self, sql: str, variables: Optional[Variables] = None) -> str:
        """Substitute variable references in a query.

        Args:
            sql: The query text.
            variables: Current template variables.

        Returns:
            The query with variable references replaced.

        Raises:
            TemplaterError: If substitution fails.
        """
        pass


class NoOpTemplater(Templater):
    """A templater that passes the query through unchanged."""

    @property
    def name(self) -> str:
        return "none"

    def render(self, sql: str, variables: Optional[Variables] = None) -> str:
        return sql
