"""CatalogItem: the current state of one catalog entry.

The item only ever carries "now".  History lives exclusively in the audit
log and is derived on demand by the temporal reconstructor.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from catalog_history.domain.enums import ItemStatus, TrackedField
from catalog_history.foundation.clock import ensure_utc


class TrackedValues(BaseModel):
    """The value tuple of the tracked fields at one instant.

    Produced from an item's current state or from a reconstruction.
    Status is kept as its raw string so reconstructed values never fail on
    a legacy label.
    """

    status: str
    owner: str
    holder: str
    read_count: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def get(self, field: TrackedField) -> str | int:
        return getattr(self, field.value)


class CatalogItem(BaseModel):
    """Current state of a catalog item as owned by the catalog layer."""

    id: str = Field(..., min_length=1, max_length=256)
    label: str = Field(..., min_length=1, description="Display label, e.g. the book title")
    added_at: datetime = Field(..., description="When the item entered the catalog (UTC-aware)")
    status: ItemStatus = ItemStatus.IN_LIBRARY
    owner: str = Field(..., min_length=1)
    holder: str = Field(..., min_length=1, description="Who currently has the item")
    read_count: int = Field(0, ge=0)

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("added_at")
    @classmethod
    def added_at_must_be_aware(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def tracked_values(self) -> TrackedValues:
        return TrackedValues(
            status=self.status.value,
            owner=self.owner,
            holder=self.holder,
            read_count=self.read_count,
        )
