"""Snapshot: the reconstructed tracked values of one item at one instant.

This is a derived, never-persisted structure.  Warnings record every place
where the reconstruction had to fall back or may be inaccurate, so callers
can tell a clean answer from a best-effort one.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from catalog_history.domain.enums import TrackedField
from catalog_history.domain.item import TrackedValues


class DataQualityWarning(BaseModel):
    """A recoverable problem met while reconstructing one field."""

    field: TrackedField
    raw_value: str | None = None
    message: str

    model_config = {"frozen": True}


class Snapshot(BaseModel):
    """Tracked field values of *subject_id* as they stood at *as_of*."""

    subject_id: str
    as_of: datetime
    values: TrackedValues
    warnings: list[DataQualityWarning] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def clean(self) -> bool:
        return not self.warnings
