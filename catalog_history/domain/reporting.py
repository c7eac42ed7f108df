"""Reporting models: catalog filters, aggregates and weekly trend points.

TrendPoint is all-or-nothing: a point is only ever built once every eligible
item for its checkpoint has been classified or explicitly excluded.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from catalog_history.domain.enums import ItemStatus
from catalog_history.domain.item import CatalogItem

# Sent by the reporting UI to mean "every owner".
ALL_OWNERS = "all"


class CatalogFilter(BaseModel):
    """Restricts which catalog items take part in an aggregate (AND semantics)."""

    owner: str | None = None
    holder: str | None = None
    status: ItemStatus | None = None

    model_config = {"frozen": True}

    @field_validator("owner")
    @classmethod
    def all_means_no_owner_filter(cls, v: str | None) -> str | None:
        if v is None or v == ALL_OWNERS or not v.strip():
            return None
        return v

    def matches(self, item: CatalogItem) -> bool:
        if self.owner is not None and item.owner != self.owner:
            return False
        if self.holder is not None and item.holder != self.holder:
            return False
        if self.status is not None and item.status != self.status:
            return False
        return True


def percentage_of(matching: int, total: int) -> int:
    """Half-up rounded percentage; 0 when *total* is 0."""
    if total <= 0:
        return 0
    return (matching * 200 + total) // (total * 2)


class AggregateCounts(BaseModel):
    """How many items match the predicate out of how many were evaluated."""

    matching_count: int = Field(..., ge=0)
    total_count: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)

    model_config = {"frozen": True}

    @classmethod
    def of(cls, matching: int, total: int) -> AggregateCounts:
        return cls(
            matching_count=matching,
            total_count=total,
            percentage=percentage_of(matching, total),
        )


class TrendPoint(BaseModel):
    """Aggregate state of the catalog at one weekly checkpoint."""

    bucket_label: str = Field(..., description="Chart label, e.g. 'Mar 07'")
    as_of: datetime
    matching_count: int = Field(..., ge=0)
    total_count: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    excluded_count: int = Field(0, ge=0, description="Eligible items dropped after a per-item error")
    warning_count: int = Field(0, ge=0, description="Items classified from a best-effort snapshot")

    model_config = {"frozen": True}


class TrendReport(BaseModel):
    """Weekly trend (oldest first) plus the current baseline."""

    current: AggregateCounts
    points: list[TrendPoint] = Field(default_factory=list)
    requested_weeks: int
    complete: bool = True

    model_config = {"frozen": True}
