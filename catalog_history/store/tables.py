"""SQLAlchemy table definitions for the relational durable store."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

from catalog_history.domain.enums import ItemStatus, TrackedField

Base = declarative_base()

ItemStatusEnum = Enum(
    *[status.value for status in ItemStatus],
    name="item_status",
    native_enum=False,
)
TrackedFieldEnum = Enum(
    *[field.value for field in TrackedField],
    name="tracked_field",
    native_enum=False,
)


class CatalogItemRow(Base):
    """Current state of a catalog item."""

    __tablename__ = "catalog_items"

    id = Column(String(256), primary_key=True)
    label = Column(Text, nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(ItemStatusEnum, nullable=False)
    owner = Column(String(256), nullable=False, index=True)
    holder = Column(String(256), nullable=False)
    read_count = Column(Integer, nullable=False, default=0)


class AuditEventRow(Base):
    """Append-only field-level change record."""

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_subject_field_time", "subject_id", "field", "occurred_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject_id = Column(String(256), nullable=False)
    subject_label = Column(Text, nullable=False, default="")
    field = Column(TrackedFieldEnum, nullable=False)
    old_value = Column(Text, nullable=False)
    new_value = Column(Text, nullable=False)
    changed_by = Column(String(256), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    change_set_id = Column(String(64), nullable=False)
