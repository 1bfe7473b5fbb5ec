"""Models for ad-hoc filtering."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Filter(BaseModel):
    """A user-added key/operator/value constraint.

    `key` is either `table.column` or a bare `column`. `condition` joins
    this filter to the next one and defaults to AND when left empty.
    """

    key: str
    operator: str = "="
    value: str = ""
    condition: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _value_to_text(cls, value: Any) -> Any:
        # Filter files may carry numbers or booleans
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @property
    def is_qualified(self) -> bool:
        return "." in self.key

    @property
    def table(self) -> str:
        """Table prefix of a qualified key, or an empty string."""
        return self.key.split(".", 1)[0] if self.is_qualified else ""

    @property
    def column(self) -> str:
        """The key without its table prefix."""
        return self.key.split(".", 1)[1] if self.is_qualified else self.key


class FilterContext(BaseModel):
    """Request-scoped ad-hoc filtering state.

    Owned by the caller and passed explicitly to the filter applier, so one
    engine can serve several requests without sharing a target table.
    """

    target_table: str = Field(default="", description="Table filters apply to")
    skip_ad_hoc_filter: bool = Field(
        default=False,
        description="Set for queries that are themselves a source of filter values",
    )
