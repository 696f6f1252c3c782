"""
History Schemas
===============

Persisted snapshot payloads for the moisture history and the safety
shutdown log. Both are timestamp-keyed records of bounded size.
"""

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MoistureHistoryPayload(BaseModel):
    """Serialized moisture history (timestamp → per-pot dry flags)."""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = Field(default=1, ge=1)
    saved_at: datetime
    capacity: int = Field(..., ge=1)
    pot_count: int = Field(..., ge=1)
    entries: Dict[datetime, List[bool]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_entries(self) -> "MoistureHistoryPayload":
        for timestamp, readings in self.entries.items():
            if len(readings) != self.pot_count:
                raise ValueError(
                    f"entry {timestamp.isoformat()} has {len(readings)} readings, expected {self.pot_count}"
                )
        return self


class ShutdownLogPayload(BaseModel):
    """Serialized safety shutdown log (timestamp → shutdown occurred)."""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = Field(default=1, ge=1)
    saved_at: datetime
    capacity: int = Field(..., ge=1)
    entries: Dict[datetime, bool] = Field(default_factory=dict)
