"""AuditEvent: one immutable field-level change record.

Events are append-only.  They are created only when a tracked field's
canonical value actually changes, and they are never edited or deleted.
The total order over events is ``(occurred_at, id)``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from catalog_history.domain.enums import TrackedField
from catalog_history.foundation.clock import ensure_utc


class AuditEventDraft(BaseModel):
    """An audit event before the store has assigned its id."""

    subject_id: str = Field(..., min_length=1)
    subject_label: str = Field("", description="Display label of the subject at event time")
    field: TrackedField
    old_value: str
    new_value: str
    changed_by: str = Field(..., min_length=1)
    occurred_at: datetime
    change_set_id: str = Field(..., description="Shared by every event of one logical update")

    model_config = {"frozen": True}

    @field_validator("occurred_at")
    @classmethod
    def occurred_at_must_be_aware(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class AuditEvent(AuditEventDraft):
    """A persisted audit event."""

    id: int = Field(..., ge=1, description="Store-assigned, increasing in creation order")

    @classmethod
    def from_draft(cls, draft: AuditEventDraft, event_id: int) -> AuditEvent:
        return cls(id=event_id, **draft.model_dump())

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.occurred_at, self.id)
