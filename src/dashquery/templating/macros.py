"""Expansion of the `$__conditionalAll` query macro.

`$__conditionalAll(<expr>, $var)` collapses to the tautology `1=1` when the
variable `var` currently selects all values (the `$__all` sentinel or an
empty selection), and to `<expr>` otherwise:

    >>> variables = VariableSet([TemplateVariable.of("region", "$__all")])
    >>> print(expand_conditional_all(
    ...     "SELECT * FROM t WHERE $__conditionalAll(region = 'EU', $region)",
    ...     variables,
    ... ))
    SELECT * FROM t WHERE 1=1
"""

from typing import Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel

from dashquery.templating.models import (
    ResolutionKind,
    TemplateVariable,
    VariableSet,
    as_variable_set,
)

MACRO_TOKEN = "$__conditionalAll("
TAUTOLOGY = "1=1"

Variables = Union[VariableSet, Iterable[TemplateVariable]]


class MacroSyntaxError(ValueError):
    """Raised when a macro call does not have exactly two balanced arguments."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} at offset {position}")
        self.position = position


class MacroInvocation(BaseModel):
    """One parsed `$__conditionalAll(...)` call."""

    expression: str
    variable_ref: str
    start: int
    end: int

    @property
    def source(self) -> str:
        """The call exactly as it appears in the query."""
        return f"{MACRO_TOKEN}{self.expression},{self.variable_ref})"

    @property
    def variable_name(self) -> str:
        """Variable name with whitespace, the `$` sigil and braces removed."""
        return variable_name_from_ref(self.variable_ref)


def variable_name_from_ref(ref: str) -> str:
    name = ref.strip()
    if name.startswith("$"):
        name = name[1:]
    if name.startswith("{") and name.endswith("}"):
        name = name[1:-1]
    return name


def scan_arguments(text: str, open_index: int) -> Optional[Tuple[List[str], int]]:
    """Split the argument list that opens at `open_index`.

    Parentheses are tracked by depth so nested calls inside an argument stay
    intact; only commas at depth 1 separate arguments.

    Args:
        text: The text containing the call.
        open_index: Offset of the opening parenthesis.

    Returns:
        A tuple of (raw argument texts, offset of the closing parenthesis),
        or None when the parentheses never balance.
    """
    depth = 0
    args: List[str] = []
    arg_start = open_index + 1

    for index in range(open_index, len(text)):
        char = text[index]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                args.append(text[arg_start:index])
                return args, index
        elif char == "," and depth == 1:
            args.append(text[arg_start:index])
            arg_start = index + 1

    return None


def find_macro_starts(text: str) -> List[int]:
    """Return the offsets of every macro token, left to right."""
    starts: List[int] = []
    index = text.find(MACRO_TOKEN)
    while index != -1:
        starts.append(index)
        index = text.find(MACRO_TOKEN, index + 1)
    return starts


class MacroExpander:
    """Rewrites `$__conditionalAll` calls based on variable selections.

    Calls are resolved from the rightmost to the leftmost so that the
    offsets of calls not yet processed never shift, and a call nested in
    another call's expression is resolved before its parent.
    """

    def parse_at(self, text: str, start: int) -> MacroInvocation:
        """Parse the call whose token starts at `start`.

        Raises:
            MacroSyntaxError: If the call is unbalanced or does not have
                exactly two arguments.
        """
        open_index = start + len(MACRO_TOKEN) - 1
        scanned = scan_arguments(text, open_index)
        if scanned is None:
            raise MacroSyntaxError("Unbalanced parentheses in macro", start)

        args, close_index = scanned
        if len(args) != 2:
            raise MacroSyntaxError(
                f"Expected 2 macro arguments, got {len(args)}", start
            )

        return MacroInvocation(
            expression=args[0],
            variable_ref=args[1],
            start=start,
            end=close_index + 1,
        )

    def parse(self, text: str) -> List[MacroInvocation]:
        """Parse every call in `text`, in order of appearance.

        Offsets refer to `text` as given. A nested call appears both on its
        own and inside its parent's expression.

        Raises:
            MacroSyntaxError: If any call is malformed.
        """
        return [self.parse_at(text, start) for start in find_macro_starts(text)]

    def resolve(self, invocation: MacroInvocation, variables: VariableSet) -> str:
        """Return the replacement text for one call."""
        resolution = variables.resolve(invocation.variable_name)
        # A missing or unset variable keeps the expression
        if resolution.kind in (ResolutionKind.NOT_FOUND, ResolutionKind.UNSET):
            return invocation.expression
        if resolution.selects_all:
            return TAUTOLOGY
        return invocation.expression

    def expand(self, text: str, variables: Variables) -> str:
        """Expand every call in `text`.

        A malformed call anywhere leaves the whole text unchanged.

        Args:
            text: Query text.
            variables: Current template variables.

        Returns:
            The rewritten query text.
        """
        if not text:
            return text

        starts = find_macro_starts(text)
        if not starts:
            return text

        variables = as_variable_set(variables)

        result = text
        for start in reversed(starts):
            try:
                invocation = self.parse_at(result, start)
            except MacroSyntaxError:
                return text
            phrase = self.resolve(invocation, variables)
            result = result[: invocation.start] + phrase + result[invocation.end :]

        return result


def expand_conditional_all(text: str, variables: Variables) -> str:
    """Expand all `$__conditionalAll` calls in `text`."""
    return MacroExpander().expand(text, variables)
