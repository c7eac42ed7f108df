"""Relational durable store backed by SQLAlchemy.

Design notes:
    - Blocking session work runs in worker threads via asyncio.to_thread so
      the async read path can fan out queries concurrently.
    - Timestamps are normalised to UTC before they are written and tagged
      UTC again when read, because some backends (SQLite) drop the offset.
    - Connectivity failures become StoreUnavailableError; nothing partial is
      returned.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from contextlib import closing
from typing import Any, Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from catalog_history.domain.audit import AuditEvent, AuditEventDraft
from catalog_history.domain.enums import ItemStatus, TrackedField
from catalog_history.domain.errors import NotFound, StoreUnavailableError
from catalog_history.domain.item import CatalogItem
from catalog_history.domain.reporting import CatalogFilter
from catalog_history.foundation.clock import ensure_utc
from catalog_history.store.tables import AuditEventRow, Base, CatalogItemRow

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _item_from_row(row: CatalogItemRow) -> CatalogItem:
    return CatalogItem(
        id=row.id,
        label=row.label,
        added_at=ensure_utc(row.added_at),
        status=ItemStatus(row.status),
        owner=row.owner,
        holder=row.holder,
        read_count=row.read_count,
    )


def _event_from_row(row: AuditEventRow) -> AuditEvent:
    return AuditEvent(
        id=row.id,
        subject_id=row.subject_id,
        subject_label=row.subject_label or "",
        field=TrackedField(row.field),
        old_value=row.old_value,
        new_value=row.new_value,
        changed_by=row.changed_by,
        occurred_at=ensure_utc(row.occurred_at),
        change_set_id=row.change_set_id,
    )


class SqlCatalogStore:
    """SQLAlchemy implementation of the DurableStore protocol."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """Initialize store with a SQLAlchemy session factory."""
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, create_schema: bool = True) -> SqlCatalogStore:
        """Build a store for *database_url*, creating tables when asked."""
        engine = create_engine(database_url, future=True)
        if create_schema:
            Base.metadata.create_all(engine)
        logger.info("SQL catalog store bound to %s", engine.url.render_as_string(hide_password=True))
        return cls(sessionmaker(bind=engine, future=True))

    # ── Audit log ────────────────────────────────────────────────────────

    async def insert_event(self, draft: AuditEventDraft) -> AuditEvent:
        def handler(session: Session) -> AuditEvent:
            row = AuditEventRow(
                subject_id=draft.subject_id,
                subject_label=draft.subject_label,
                field=draft.field.value,
                old_value=draft.old_value,
                new_value=draft.new_value,
                changed_by=draft.changed_by,
                occurred_at=ensure_utc(draft.occurred_at),
                change_set_id=draft.change_set_id,
            )
            session.add(row)
            session.flush()
            return _event_from_row(row)

        return await self._run(handler)

    async def query_events(
        self,
        subject_id: str | None = None,
        field: TrackedField | None = None,
        limit: int = 50,
    ) -> list[AuditEvent]:
        def handler(session: Session) -> list[AuditEvent]:
            query = session.query(AuditEventRow)
            if subject_id is not None:
                query = query.filter(AuditEventRow.subject_id == subject_id)
            if field is not None:
                query = query.filter(AuditEventRow.field == field.value)
            query = query.order_by(
                AuditEventRow.occurred_at.desc(),
                AuditEventRow.id.desc(),
            ).limit(limit)
            return [_event_from_row(row) for row in query.all()]

        return await self._run(handler)

    # ── Catalog items ────────────────────────────────────────────────────

    async def get_current_item(self, subject_id: str) -> CatalogItem | None:
        def handler(session: Session) -> CatalogItem | None:
            row = session.get(CatalogItemRow, subject_id)
            return _item_from_row(row) if row is not None else None

        return await self._run(handler)

    async def list_items(self, item_filter: CatalogFilter | None = None) -> list[CatalogItem]:
        def handler(session: Session) -> list[CatalogItem]:
            query = session.query(CatalogItemRow)
            if item_filter is not None:
                if item_filter.owner is not None:
                    query = query.filter(CatalogItemRow.owner == item_filter.owner)
                if item_filter.holder is not None:
                    query = query.filter(CatalogItemRow.holder == item_filter.holder)
                if item_filter.status is not None:
                    query = query.filter(CatalogItemRow.status == item_filter.status.value)
            return [_item_from_row(row) for row in query.order_by(CatalogItemRow.added_at).all()]

        return await self._run(handler)

    async def insert_item(self, item: CatalogItem) -> CatalogItem:
        def handler(session: Session) -> CatalogItem:
            row = CatalogItemRow(
                id=item.id,
                label=item.label,
                added_at=ensure_utc(item.added_at),
                status=item.status.value,
                owner=item.owner,
                holder=item.holder,
                read_count=item.read_count,
            )
            session.add(row)
            session.flush()
            return _item_from_row(row)

        return await self._run(handler)

    async def update_item(self, subject_id: str, changes: Mapping[str, Any]) -> CatalogItem:
        def handler(session: Session) -> CatalogItem:
            row = session.get(CatalogItemRow, subject_id)
            if row is None:
                raise NotFound(subject_id)
            merged = CatalogItem.model_validate({**_item_from_row(row).model_dump(), **changes})
            row.label = merged.label
            row.added_at = ensure_utc(merged.added_at)
            row.status = merged.status.value
            row.owner = merged.owner
            row.holder = merged.holder
            row.read_count = merged.read_count
            session.flush()
            return merged

        return await self._run(handler)

    # ── Internals ────────────────────────────────────────────────────────

    async def _run(self, handler: Callable[[Session], T]) -> T:
        try:
            return await asyncio.to_thread(self._execute, handler)
        except (OperationalError, InterfaceError) as exc:
            logger.error("Durable store unavailable: %s", exc)
            raise StoreUnavailableError(str(exc)) from exc

    def _execute(self, handler: Callable[[Session], T]) -> T:
        """Execute store work inside a managed session."""
        with closing(self._session_factory()) as session:
            session.expire_on_commit = False
            try:
                result = handler(session)
                session.commit()
            except Exception:
                session.rollback()
                raise
        return result
