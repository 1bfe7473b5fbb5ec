"""Shared models and enums used across dashquery modules."""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class AdHocFilterMode(str, Enum):
    """Whether ad-hoc filtering is allowed for a data source."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    UNSET = "unset"


class DataSourceQuery(BaseModel):
    """A query target as the dashboard sends it to the data source."""

    ref_id: str = "A"
    query_text: str = ""
    query_type: str = "table"
    time_columns: List[str] = Field(default_factory=lambda: ["time"])
    hide: bool = False
