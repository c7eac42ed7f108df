"""In-memory durable store with async-safe access.

Design notes:
    - An asyncio.Lock guards all mutations so concurrent writers never
      corrupt state.
    - Events live in an append-only list.  A secondary index keyed by
      (subject_id, field) keeps each per-field history sorted by
      (occurred_at, id), which is exactly the access path reconstruction
      needs.
    - Event ids come from a monotonic counter, so id order is creation order.
"""

from __future__ import annotations

import asyncio
import bisect
import itertools
import logging
from collections.abc import Mapping
from typing import Any

from catalog_history.domain.audit import AuditEvent, AuditEventDraft
from catalog_history.domain.enums import TrackedField
from catalog_history.domain.errors import NotFound
from catalog_history.domain.item import CatalogItem
from catalog_history.domain.reporting import CatalogFilter

logger = logging.getLogger(__name__)

IndexKey = tuple[str, TrackedField]


class InMemoryCatalogStore:
    """Dict-backed implementation of the DurableStore protocol."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._items: dict[str, CatalogItem] = {}
        self._events: list[AuditEvent] = []
        self._index: dict[IndexKey, list[AuditEvent]] = {}
        self._ids = itertools.count(1)

    # ── Audit log ────────────────────────────────────────────────────────

    async def insert_event(self, draft: AuditEventDraft) -> AuditEvent:
        async with self._lock:
            event = AuditEvent.from_draft(draft, next(self._ids))
            self._events.append(event)
            history = self._index.setdefault((event.subject_id, event.field), [])
            bisect.insort(history, event, key=lambda e: e.sort_key)
            logger.debug(
                "Appended audit event %d (%s.%s: %r → %r)",
                event.id,
                event.subject_id,
                event.field.value,
                event.old_value,
                event.new_value,
            )
            return event

    async def query_events(
        self,
        subject_id: str | None = None,
        field: TrackedField | None = None,
        limit: int = 50,
    ) -> list[AuditEvent]:
        async with self._lock:
            if subject_id is not None and field is not None:
                history = self._index.get((subject_id, field), [])
                return list(reversed(history[-limit:])) if limit > 0 else []

            matching = [
                e for e in self._events
                if (subject_id is None or e.subject_id == subject_id)
                and (field is None or e.field == field)
            ]
            matching.sort(key=lambda e: e.sort_key, reverse=True)
            return matching[:limit]

    # ── Catalog items ────────────────────────────────────────────────────

    async def get_current_item(self, subject_id: str) -> CatalogItem | None:
        async with self._lock:
            return self._items.get(subject_id)

    async def list_items(self, item_filter: CatalogFilter | None = None) -> list[CatalogItem]:
        async with self._lock:
            items = list(self._items.values())
        if item_filter is None:
            return items
        return [item for item in items if item_filter.matches(item)]

    async def insert_item(self, item: CatalogItem) -> CatalogItem:
        async with self._lock:
            self._items[item.id] = item
            return item

    async def update_item(self, subject_id: str, changes: Mapping[str, Any]) -> CatalogItem:
        async with self._lock:
            current = self._items.get(subject_id)
            if current is None:
                raise NotFound(subject_id)
            updated = CatalogItem.model_validate({**current.model_dump(), **changes})
            self._items[subject_id] = updated
            return updated

    # ── Introspection ────────────────────────────────────────────────────

    async def event_count(self) -> int:
        async with self._lock:
            return len(self._events)
