"""TemporalReconstructor: what did an item look like at a past instant?

Backward replay from the present:

    For each tracked field F, independently:
      1. fetch F's events for the item, newest first, bounded by the
         event limit;
      2. keep only events with occurred_at > as_of (the ones to undo);
      3. none left        → the value at as_of is the current value;
         otherwise        → take the earliest kept event by
                            (occurred_at, id) and use its old_value.

    The earliest event after as_of is the first change that happened after
    the checkpoint, so its old_value held from the previous change up to
    that event, which covers as_of.  Later events are never consulted.

Known bound:
    Only the newest ``event_limit`` events per field are seen.  When that
    window is full and even its oldest event lies after as_of, the true
    earliest-after event may be older than the window.  The snapshot then
    carries a warning instead of silently presenting a possibly wrong value.

Decoding:
    read_count must decode to a non-negative integer.  In lenient mode a
    malformed value falls back to 0 and a warning is attached and logged.
    In strict mode DataQualityError is raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from catalog_history.core.audit_query import AuditQuery
from catalog_history.domain.audit import AuditEvent
from catalog_history.domain.codec import decode_value, fallback_value
from catalog_history.domain.enums import TrackedField
from catalog_history.domain.errors import DataQualityError, NotFound
from catalog_history.domain.item import CatalogItem, TrackedValues
from catalog_history.domain.snapshot import DataQualityWarning, Snapshot
from catalog_history.foundation.clock import ensure_utc
from catalog_history.store.base import DurableStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _FieldOutcome:
    field: TrackedField
    value: str | int
    warnings: tuple[DataQualityWarning, ...] = ()


def earliest_after(events: list[AuditEvent], as_of: datetime) -> AuditEvent | None:
    """Return the first event strictly after *as_of* in ``(occurred_at, id)`` order."""
    after = [e for e in events if e.occurred_at > as_of]
    if not after:
        return None
    return min(after, key=lambda e: e.sort_key)


class TemporalReconstructor:
    """Reconstructs tracked field values of catalog items at past instants.

    Stateless between calls: every reconstruction reads the store afresh.

    Args:
        store: Durable store used to resolve current items.
        audit_query: The only path used to read audit events.
        event_limit: Events fetched per field per reconstruction.
        strict_decoding: Raise instead of falling back on malformed values.
    """

    def __init__(
        self,
        store: DurableStore,
        audit_query: AuditQuery,
        event_limit: int = 1000,
        strict_decoding: bool = False,
    ) -> None:
        if event_limit > audit_query.max_limit:
            raise ValueError("event_limit exceeds the audit query max_limit")
        self._store = store
        self._audit_query = audit_query
        self._event_limit = event_limit
        self._strict = strict_decoding

    # ── Public API ───────────────────────────────────────────────────────

    async def reconstruct(self, subject_id: str, as_of: datetime) -> Snapshot:
        """Reconstruct the item *subject_id* as of *as_of*.

        Raises:
            NotFound: If the item does not exist.
            DataQualityError: In strict mode, on a malformed stored value.
            StoreUnavailableError: If the store cannot be reached.
        """
        item = await self._store.get_current_item(subject_id)
        if item is None:
            raise NotFound(subject_id)
        return await self.reconstruct_item(item, as_of)

    async def reconstruct_item(self, item: CatalogItem, as_of: datetime) -> Snapshot:
        """Reconstruct an already-loaded *item* as of *as_of*."""
        as_of = ensure_utc(as_of)
        current = item.tracked_values()

        tasks = [
            asyncio.create_task(
                self._reconstruct_field(item.id, tracked, current.get(tracked), as_of)
            )
            for tracked in TrackedField
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        values = TrackedValues(**{o.field.value: o.value for o in outcomes})
        warnings = [w for o in outcomes for w in o.warnings]
        return Snapshot(subject_id=item.id, as_of=as_of, values=values, warnings=warnings)

    # ── Per-field replay ─────────────────────────────────────────────────

    async def _reconstruct_field(
        self,
        subject_id: str,
        tracked: TrackedField,
        current_value: str | int,
        as_of: datetime,
    ) -> _FieldOutcome:
        events = await self._audit_query.query(
            subject_id=subject_id,
            field=tracked,
            limit=self._event_limit,
        )
        step = earliest_after(events, as_of)
        if step is None:
            return _FieldOutcome(tracked, current_value)

        warnings: list[DataQualityWarning] = []
        if len(events) >= self._event_limit and events[-1].occurred_at > as_of:
            logger.warning(
                "History of %s.%s exceeds %d events; value at %s may be inaccurate",
                subject_id,
                tracked.value,
                self._event_limit,
                as_of.isoformat(),
            )
            warnings.append(DataQualityWarning(
                field=tracked,
                message=(
                    f"more than {self._event_limit} changes after the checkpoint; "
                    "older history was not consulted"
                ),
            ))

        try:
            value = decode_value(tracked, step.old_value)
        except DataQualityError as exc:
            if self._strict:
                raise
            value = fallback_value(tracked)
            logger.warning(
                "Audit event %d for %s: %s; using %r",
                step.id,
                subject_id,
                exc,
                value,
            )
            warnings.append(DataQualityWarning(
                field=tracked,
                raw_value=step.old_value,
                message=f"{exc.reason}; defaulted to {value!r}",
            ))

        return _FieldOutcome(tracked, value, tuple(warnings))
