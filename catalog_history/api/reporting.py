"""REST endpoints for audit and usage reporting.

Paths:
    GET  /api/analytics/never-used        current baseline + weekly trend
    GET  /api/audit-logs                  filtered audit log, newest first
    POST /api/items/never-used            which of the given items are unused
    GET  /api/items/{subject_id}/snapshot reconstructed values at an instant

Read-only.  Catalog CRUD lives elsewhere.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from catalog_history.core.audit_query import AuditQuery
from catalog_history.core.reconstructor import TemporalReconstructor
from catalog_history.core.trend import TrendAggregator
from catalog_history.domain.errors import (
    CatalogHistoryError,
    NotFound,
    StoreUnavailableError,
    ValidationFailure,
)
from catalog_history.domain.reporting import CatalogFilter
from catalog_history.foundation.clock import utc_now

logger = logging.getLogger(__name__)


class NeverUsedRequest(BaseModel):
    item_ids: list[str] = Field(..., max_length=10_000)


def _http_error(exc: CatalogHistoryError) -> HTTPException:
    if isinstance(exc, ValidationFailure):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=503, detail="Durable store unavailable")
    logger.error("Reporting request failed: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


def create_reporting_router(
    audit_query: AuditQuery,
    reconstructor: TemporalReconstructor,
    aggregator: TrendAggregator,
) -> APIRouter:
    """Factory that wires the reporting endpoints to the core components."""

    router = APIRouter(prefix="/api", tags=["reporting"])

    @router.get("/analytics/never-used")
    async def never_used_analytics(
        user: str | None = None,
        weeks: int | None = None,
    ) -> dict[str, Any]:
        """Current and weekly share of items that were never used.

        Query params:
            user: Restrict to items owned by this user ("all" for everyone)
            weeks: Number of weekly checkpoints
        """
        try:
            report = await aggregator.get_trend(
                weeks=weeks,
                item_filter=CatalogFilter(owner=user),
            )
        except CatalogHistoryError as exc:
            raise _http_error(exc) from exc

        return {
            "success": True,
            "complete": report.complete,
            "current": {
                "count": report.current.matching_count,
                "total": report.current.total_count,
                "percentage": report.current.percentage,
            },
            "weekly": [
                {
                    "week_label": p.bucket_label,
                    "week_end_date": p.as_of.isoformat(),
                    "never_used_count": p.matching_count,
                    "total_items": p.total_count,
                    "percentage": p.percentage,
                    "excluded_items": p.excluded_count,
                    "warnings": p.warning_count,
                }
                for p in report.points
            ],
        }

    @router.get("/audit-logs")
    async def audit_logs(
        eventType: str | None = None,
        bookId: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Audit events filtered by field (eventType) and item (bookId)."""
        try:
            events = await audit_query.query(subject_id=bookId, field=eventType, limit=limit)
        except CatalogHistoryError as exc:
            raise _http_error(exc) from exc
        return {
            "success": True,
            "logs": [e.model_dump(mode="json") for e in events],
        }

    @router.post("/items/never-used")
    async def never_used_items(body: NeverUsedRequest) -> dict[str, Any]:
        try:
            ids = await aggregator.find_unused(body.item_ids)
        except CatalogHistoryError as exc:
            raise _http_error(exc) from exc
        return {"success": True, "never_used_ids": ids}

    @router.get("/items/{subject_id}/snapshot")
    async def item_snapshot(subject_id: str, as_of: datetime | None = None) -> dict[str, Any]:
        """Tracked values of an item as of an instant (defaults to now)."""
        try:
            snapshot = await reconstructor.reconstruct(subject_id, as_of or utc_now())
        except CatalogHistoryError as exc:
            raise _http_error(exc) from exc
        return snapshot.model_dump(mode="json")

    return router
