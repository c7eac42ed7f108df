"""Audit query: the single read primitive over the audit log.

Results are newest first by ``(occurred_at, id)`` and always bounded, so
reporting paths never trigger an unbounded scan.  Filters combine with AND
semantics.  An empty result is a valid answer, never an error.
"""

from __future__ import annotations

import logging

from catalog_history.domain.audit import AuditEvent
from catalog_history.domain.enums import TrackedField
from catalog_history.domain.errors import ValidationFailure
from catalog_history.store.base import DurableStore

logger = logging.getLogger(__name__)

# Sent by the audit log UI to mean "every field".
ALL_FIELDS = "all"


def parse_field(field: TrackedField | str | None) -> TrackedField | None:
    """Coerce a field name into TrackedField.

    ``None``, an empty string and ``"all"`` mean no field filter.

    Raises:
        ValidationFailure: If *field* names no tracked field.
    """
    if field is None or isinstance(field, TrackedField):
        return field
    if not field or field == ALL_FIELDS:
        return None
    try:
        return TrackedField(field)
    except ValueError as exc:
        raise ValidationFailure(f"Unknown tracked field: {field!r}") from exc


class AuditQuery:
    """Bounded, filtered access to audit events.

    Args:
        store: Durable store holding the audit log.
        default_limit: Limit applied when the caller passes none.
        max_limit: Largest limit a caller may request.
    """

    def __init__(
        self,
        store: DurableStore,
        default_limit: int = 50,
        max_limit: int = 1000,
    ) -> None:
        if not 1 <= default_limit <= max_limit:
            raise ValueError("default_limit must be between 1 and max_limit")
        self._store = store
        self._default_limit = default_limit
        self._max_limit = max_limit

    @property
    def max_limit(self) -> int:
        return self._max_limit

    async def query(
        self,
        subject_id: str | None = None,
        field: TrackedField | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEvent]:
        """Return matching events, newest first, at most *limit* of them.

        Raises:
            ValidationFailure: On an unknown field or an out-of-range limit.
            StoreUnavailableError: If the store cannot be reached.
        """
        tracked = parse_field(field)
        bound = self._default_limit if limit is None else limit
        if not 1 <= bound <= self._max_limit:
            raise ValidationFailure(
                f"limit must be between 1 and {self._max_limit}, got {bound}"
            )

        events = await self._store.query_events(
            subject_id=subject_id or None,
            field=tracked,
            limit=bound,
        )
        logger.debug(
            "Audit query subject=%s field=%s limit=%d → %d event(s)",
            subject_id,
            tracked.value if tracked else None,
            bound,
            len(events),
        )
        return events
