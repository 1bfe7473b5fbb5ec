"""Template variable models and typed lookup.

Template variables are supplied by the host's variable store as a read-only
snapshot for each interpolation pass. A variable's current selection can be
a single value, a multi-value selection or missing altogether.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

# Sentinel the host stores as the current value when "All" is selected
ALL_VALUE = "$__all"

VariableValue = Union[str, List[str], None]


class CurrentValue(BaseModel):
    """The current selection of a template variable."""

    value: VariableValue = None

    def as_text(self) -> Optional[str]:
        """Return the string form of the selection.

        Multi-value selections are joined with commas.

        Returns:
            The selection as text, or None when nothing is selected.
        """
        if self.value is None:
            return None
        if isinstance(self.value, list):
            return ",".join(self.value)
        return str(self.value)


class TemplateVariable(BaseModel):
    """A named, host-managed dashboard variable."""

    name: str
    current: CurrentValue = Field(default_factory=CurrentValue)

    @classmethod
    def of(cls, name: str, value: VariableValue) -> "TemplateVariable":
        """Build a variable from a bare name/value pair."""
        return cls(name=name, current=CurrentValue(value=value))


class ResolutionKind(str, Enum):
    """Outcome of resolving a variable reference by name."""

    NOT_FOUND = "not_found"
    UNSET = "unset"
    EMPTY = "empty"
    ALL = "all"
    VALUE = "value"


class VariableResolution(BaseModel):
    """Typed result of a variable lookup.

    Keeps "variable missing", "no value" and "empty value" apart so callers
    decide explicitly how each one behaves.
    """

    name: str
    kind: ResolutionKind
    text: Optional[str] = None

    @property
    def selects_all(self) -> bool:
        """True when the selection means "do not filter"."""
        return self.kind in (ResolutionKind.EMPTY, ResolutionKind.ALL)


class VariableSet:
    """Lookup by name over a snapshot of template variables."""

    def __init__(self, variables: Optional[Iterable[TemplateVariable]] = None):
        self._by_name: Dict[str, TemplateVariable] = {}
        for variable in variables or []:
            # First definition wins, like a linear find over the snapshot
            self._by_name.setdefault(variable.name, variable)

    def __len__(self) -> int:
        return len(self._by_name)

    def __iter__(self):
        return iter(self._by_name.values())

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def lookup(self, name: str) -> Optional[TemplateVariable]:
        return self._by_name.get(name)

    def resolve(self, name: str) -> VariableResolution:
        """Resolve a variable name into a typed result.

        Args:
            name: Variable name without its sigil.

        Returns:
            A VariableResolution describing what was found.
        """
        variable = self.lookup(name)
        if variable is None:
            return VariableResolution(name=name, kind=ResolutionKind.NOT_FOUND)

        text = variable.current.as_text()
        if text is None:
            kind = ResolutionKind.UNSET
        elif text == "":
            kind = ResolutionKind.EMPTY
        elif text == ALL_VALUE:
            kind = ResolutionKind.ALL
        else:
            kind = ResolutionKind.VALUE
        return VariableResolution(name=name, kind=kind, text=text)

    def values(self) -> Dict[str, VariableValue]:
        """Return a plain name -> current value mapping."""
        return {name: var.current.value for name, var in self._by_name.items()}

    @classmethod
    def from_mapping(cls, mapping: Dict[str, VariableValue]) -> "VariableSet":
        return cls(TemplateVariable.of(name, value) for name, value in mapping.items())


def as_variable_set(
    variables: Union[VariableSet, Iterable[TemplateVariable], None],
) -> VariableSet:
    """Wrap a variable sequence in a VariableSet unless it already is one."""
    if isinstance(variables, VariableSet):
        return variables
    return VariableSet(variables)
