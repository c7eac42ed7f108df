"""catalog-history: audit capture and point-in-time reporting for the catalog.

This is the application entry point.  It wires the durable store, audit
query, temporal reconstructor, trend aggregator and reporting endpoints
together.
"""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo

from fastapi import FastAPI

from catalog_history.api.reporting import create_reporting_router
from catalog_history.config import Settings, settings
from catalog_history.core.audit_query import AuditQuery
from catalog_history.core.capture import ChangeCapture
from catalog_history.core.reconstructor import TemporalReconstructor
from catalog_history.core.trend import TrendAggregator
from catalog_history.store.base import DurableStore
from catalog_history.store.memory_store import InMemoryCatalogStore
from catalog_history.store.sql_store import SqlCatalogStore

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def build_store(config: Settings) -> DurableStore:
    if config.database_url:
        return SqlCatalogStore.from_url(config.database_url)
    logger.info("No database_url configured; using the in-memory store")
    return InMemoryCatalogStore()


def create_app(config: Settings = settings, store: DurableStore | None = None) -> FastAPI:
    """Build the reporting application for *config*."""
    store = store if store is not None else build_store(config)

    audit_query = AuditQuery(
        store,
        default_limit=config.audit_query_default_limit,
        max_limit=config.audit_query_max_limit,
    )
    reconstructor = TemporalReconstructor(
        store,
        audit_query,
        event_limit=config.reconstruction_event_limit,
        strict_decoding=config.strict_decoding,
    )
    aggregator = TrendAggregator(
        store,
        reconstructor,
        concurrency=config.aggregation_concurrency,
        default_weeks=config.trend_default_weeks,
        max_weeks=config.trend_max_weeks,
        report_timezone=ZoneInfo(config.report_timezone),
        timeout=config.trend_timeout_seconds,
    )

    application = FastAPI(
        title=config.app_name,
        description="Audit capture and point-in-time catalog reporting",
        version="0.1.0",
        debug=config.debug,
    )
    # The catalog layer reaches the writer side through app.state.capture.
    application.state.store = store
    application.state.capture = ChangeCapture(
        store,
        system_actor=config.system_actor,
        retry_attempts=config.capture_retry_attempts,
        retry_delay=config.capture_retry_delay_seconds,
    )
    application.include_router(create_reporting_router(audit_query, reconstructor, aggregator))

    @application.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "store": type(store).__name__,
            "event_limit": config.reconstruction_event_limit,
            "strict_decoding": config.strict_decoding,
        }

    return application


app = create_app()
