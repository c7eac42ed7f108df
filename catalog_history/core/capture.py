"""Change capture: turns accepted item mutations into audit events.

Design principles:
    1. One event per tracked field whose canonical value changed.  Untracked
       fields and no-op updates produce nothing.
    2. Every event of one logical update shares a single occurred_at and
       change_set_id, so a multi-field change replays as one step.
    3. The item mutation is the transaction boundary.  Audit appends run
       strictly after it, are retried a bounded number of times, and a
       final failure is logged and reported, never raised.  The log is
       at-least-once best effort, not exactly-once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from catalog_history.domain.audit import AuditEvent, AuditEventDraft
from catalog_history.domain.codec import encode_value
from catalog_history.domain.enums import TrackedField
from catalog_history.domain.errors import NotFound, StoreUnavailableError, ValidationFailure
from catalog_history.domain.item import CatalogItem
from catalog_history.foundation.clock import ensure_utc, utc_now
from catalog_history.foundation.identifiers import new_id
from catalog_history.store.base import DurableStore

logger = logging.getLogger(__name__)

# Keys the catalog layer may change through apply_update.
_MUTABLE_KEYS = frozenset({"label", "status", "owner", "holder", "read_count"})


@dataclass(frozen=True)
class FieldChange:
    """A tracked field whose canonical value differs before and after."""

    field: TrackedField
    old_value: str
    new_value: str


@dataclass
class CaptureResult:
    """Outcome of recording the audit events for one logical update."""

    change_set_id: str
    recorded: list[AuditEvent] = field(default_factory=list)
    failed: list[FieldChange] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def diff_tracked_fields(prior: CatalogItem, updates: Mapping[str, Any]) -> list[FieldChange]:
    """Return the tracked fields in *updates* whose value differs from *prior*.

    Fields are compared by their canonical string encoding.  Keys that are
    not tracked fields are ignored.  Results follow TrackedField order.
    """
    changes: list[FieldChange] = []
    for tracked in TrackedField:
        if tracked.value not in updates:
            continue
        new_raw = updates[tracked.value]
        if new_raw is None:
            continue
        old_value = encode_value(tracked, getattr(prior, tracked.value))
        new_value = encode_value(tracked, new_raw)
        if old_value != new_value:
            changes.append(FieldChange(tracked, old_value, new_value))
    return changes


class ChangeCapture:
    """Appends audit events for accepted catalog item mutations.

    Args:
        store: Durable store receiving the events.
        system_actor: Attribution used when the caller supplies no actor.
        retry_attempts: Total append attempts per event before giving up.
        retry_delay: Seconds to wait between attempts.
    """

    def __init__(
        self,
        store: DurableStore,
        system_actor: str = "system",
        retry_attempts: int = 3,
        retry_delay: float = 0.05,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self._store = store
        self._system_actor = system_actor
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay

    # ── Public API ───────────────────────────────────────────────────────

    async def record(
        self,
        prior: CatalogItem,
        updates: Mapping[str, Any],
        changed_by: str | None = None,
        subject_label: str | None = None,
        now: datetime | None = None,
    ) -> CaptureResult:
        """Append one audit event per changed tracked field.

        Must only be called once the item update is durably applied.
        """
        occurred_at = ensure_utc(now) if now is not None else utc_now()
        actor = changed_by or self._system_actor
        label = subject_label if subject_label is not None else prior.label
        result = CaptureResult(change_set_id=new_id())

        for change in diff_tracked_fields(prior, updates):
            draft = AuditEventDraft(
                subject_id=prior.id,
                subject_label=label,
                field=change.field,
                old_value=change.old_value,
                new_value=change.new_value,
                changed_by=actor,
                occurred_at=occurred_at,
                change_set_id=result.change_set_id,
            )
            event = await self._append(draft)
            if event is None:
                result.failed.append(change)
            else:
                result.recorded.append(event)

        if result.recorded:
            logger.info(
                "Captured %d change(s) for item %s (change set %s)",
                len(result.recorded),
                prior.id,
                result.change_set_id,
            )
        return result

    async def apply_update(
        self,
        subject_id: str,
        updates: Mapping[str, Any],
        changed_by: str | None = None,
        now: datetime | None = None,
    ) -> tuple[CatalogItem, CaptureResult]:
        """Apply *updates* to an item, then capture the resulting changes.

        Raises:
            ValidationFailure: If *updates* is empty, names unknown keys, or
                would produce an invalid item.  Nothing is written.
            NotFound: If *subject_id* does not exist.
            StoreUnavailableError: If the item update itself cannot be applied.
        """
        changes = {k: v for k, v in updates.items() if v is not None}
        if not changes:
            raise ValidationFailure("No fields to update")
        unknown = sorted(set(changes) - _MUTABLE_KEYS)
        if unknown:
            raise ValidationFailure(f"Unknown or immutable fields: {', '.join(unknown)}")

        prior = await self._store.get_current_item(subject_id)
        if prior is None:
            raise NotFound(subject_id)

        try:
            CatalogItem.model_validate({**prior.model_dump(), **changes})
        except ValidationError as exc:
            raise ValidationFailure(str(exc)) from exc

        updated = await self._store.update_item(subject_id, changes)
        # Diff against the stored item so lax inputs ("03", 3.0) compare canonically.
        result = await self.record(
            prior,
            updated.model_dump(),
            changed_by=changed_by,
            subject_label=updated.label,
            now=now,
        )
        if not result.ok:
            logger.warning(
                "Item %s updated but %d audit event(s) could not be recorded",
                subject_id,
                len(result.failed),
            )
        return updated, result

    # ── Internals ────────────────────────────────────────────────────────

    async def _append(self, draft: AuditEventDraft) -> AuditEvent | None:
        for attempt in range(1, self._retry_attempts + 1):
            try:
                return await self._store.insert_event(draft)
            except StoreUnavailableError as exc:
                logger.warning(
                    "Audit append for %s.%s failed (attempt %d/%d): %s",
                    draft.subject_id,
                    draft.field.value,
                    attempt,
                    self._retry_attempts,
                    exc,
                )
                if attempt < self._retry_attempts:
                    await asyncio.sleep(self._retry_delay)
        logger.error(
            "Dropping audit event for %s.%s (%r → %r) after %d attempts",
            draft.subject_id,
            draft.field.value,
            draft.old_value,
            draft.new_value,
            self._retry_attempts,
        )
        return None
