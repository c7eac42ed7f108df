"""Durable store protocol.

The reconstruction engine depends on this protocol only.  The catalog layer
owns the items; this package only reads them and appends audit events.
Implementations raise StoreUnavailableError when the backend cannot be
reached and must never return partial results in that case.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from catalog_history.domain.audit import AuditEvent, AuditEventDraft
from catalog_history.domain.enums import TrackedField
from catalog_history.domain.item import CatalogItem
from catalog_history.domain.reporting import CatalogFilter


class DurableStore(Protocol):
    """Persistence for catalog items and the append-only audit log."""

    async def insert_event(self, draft: AuditEventDraft) -> AuditEvent:
        """Append *draft* and return it with its assigned id."""
        ...

    async def query_events(
        self,
        subject_id: str | None = None,
        field: TrackedField | None = None,
        limit: int = 50,
    ) -> list[AuditEvent]:
        """Return matching events ordered by ``(occurred_at, id)`` descending."""
        ...

    async def get_current_item(self, subject_id: str) -> CatalogItem | None:
        ...

    async def list_items(self, item_filter: CatalogFilter | None = None) -> list[CatalogItem]:
        ...

    async def insert_item(self, item: CatalogItem) -> CatalogItem:
        ...

    async def update_item(self, subject_id: str, changes: Mapping[str, Any]) -> CatalogItem:
        """Apply *changes* to the stored item and return the new state."""
        ...
