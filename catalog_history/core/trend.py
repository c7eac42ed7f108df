"""TrendAggregator: weekly "% unused" across the catalog, walking back from now.

For each checkpoint i in 0..weeks-1:

    as_of_i   = last instant of the calendar day (now - 7i days)
    eligible  = items with added_at <= as_of_i
    matching  = eligible items whose reconstructed snapshot is unused
    percent   = round-half-up(matching / eligible * 100), 0 when empty

Points are generated newest first and emitted oldest first.  A current
baseline, computed from live values without reconstruction, is returned
alongside them.

Failure semantics:
    - Per-item errors (NotFound, DataQualityError, ...) exclude that item
      from both numerator and denominator and are counted on the point.
    - StoreUnavailableError fails the whole request.
    - On timeout, in-flight work is cancelled.  Finished checkpoints are
      returned, unfinished ones are omitted and the report is marked
      incomplete.  A point is never emitted half-computed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum

from catalog_history.core.predicate import evaluate_current, evaluate_snapshot
from catalog_history.core.reconstructor import TemporalReconstructor
from catalog_history.domain.errors import (
    CatalogHistoryError,
    StoreUnavailableError,
    ValidationFailure,
)
from catalog_history.domain.item import CatalogItem
from catalog_history.domain.reporting import (
    AggregateCounts,
    CatalogFilter,
    TrendPoint,
    TrendReport,
    percentage_of,
)
from catalog_history.foundation.clock import end_of_day, ensure_utc, utc_now
from catalog_history.store.base import DurableStore

logger = logging.getLogger(__name__)

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class _Verdict(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    EXCLUDED = "excluded"


class TrendAggregator:
    """Drives reconstruction + predicate evaluation across the catalog.

    Args:
        store: Durable store used to enumerate catalog items.
        reconstructor: Reconstructs one item at one instant.
        concurrency: Maximum in-flight item reconstructions.
        default_weeks: Checkpoints produced when the caller passes none.
        max_weeks: Largest number of checkpoints a caller may request.
        report_timezone: Zone whose calendar days define "end of day".
        timeout: Default wall-clock budget in seconds for get_trend.
    """

    def __init__(
        self,
        store: DurableStore,
        reconstructor: TemporalReconstructor,
        concurrency: int = 16,
        default_weeks: int = 12,
        max_weeks: int = 104,
        report_timezone: tzinfo = timezone.utc,
        timeout: float | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if not 1 <= default_weeks <= max_weeks:
            raise ValueError("default_weeks must be between 1 and max_weeks")
        self._store = store
        self._reconstructor = reconstructor
        self._concurrency = concurrency
        self._default_weeks = default_weeks
        self._max_weeks = max_weeks
        self._tz = report_timezone
        self._timeout = timeout

    # ── Public API ───────────────────────────────────────────────────────

    def checkpoints(self, weeks: int, now: datetime | None = None) -> list[datetime]:
        """Weekly end-of-day checkpoints, newest first."""
        self._validate_weeks(weeks)
        now = ensure_utc(now) if now is not None else utc_now()
        return [end_of_day(now - timedelta(days=7 * i), self._tz) for i in range(weeks)]

    def bucket_label(self, as_of: datetime) -> str:
        local = ensure_utc(as_of).astimezone(self._tz)
        return f"{_MONTHS[local.month - 1]} {local.day}"

    async def get_current_aggregate(
        self,
        item_filter: CatalogFilter | None = None,
    ) -> AggregateCounts:
        """Unused share of the catalog right now, from live values only."""
        items = await self._store.list_items(item_filter)
        matching = sum(1 for item in items if evaluate_current(item))
        return AggregateCounts.of(matching, len(items))

    async def get_trend(
        self,
        weeks: int | None = None,
        item_filter: CatalogFilter | None = None,
        now: datetime | None = None,
        timeout: float | None = None,
    ) -> TrendReport:
        """Weekly trend, oldest first, plus the current baseline.

        Raises:
            ValidationFailure: If *weeks* or *timeout* is out of range.
            StoreUnavailableError: If the store cannot be reached.
        """
        weeks = self._default_weeks if weeks is None else weeks
        as_of_points = self.checkpoints(weeks, now)
        budget = self._timeout if timeout is None else timeout
        if budget is not None and budget <= 0:
            raise ValidationFailure("timeout must be positive")

        items = await self._store.list_items(item_filter)
        current = AggregateCounts.of(
            sum(1 for item in items if evaluate_current(item)), len(items)
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget if budget is not None else None
        points: list[TrendPoint] = []
        complete = True

        for as_of in as_of_points:
            if deadline is None:
                points.append(await self._checkpoint(items, as_of))
                continue
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                points.append(await asyncio.wait_for(self._checkpoint(items, as_of), remaining))
            except asyncio.TimeoutError:
                complete = False
                logger.warning(
                    "Trend timed out after %d of %d checkpoint(s)",
                    len(points),
                    len(as_of_points),
                )
                break

        points.reverse()
        return TrendReport(
            current=current,
            points=points,
            requested_weeks=weeks,
            complete=complete,
        )

    async def find_unused(self, subject_ids: list[str]) -> list[str]:
        """Subset of *subject_ids* that are unused right now, in input order.

        Unknown ids are simply not unused.
        """
        if not isinstance(subject_ids, list) or not all(isinstance(s, str) for s in subject_ids):
            raise ValidationFailure("subject_ids must be a list of strings")
        items = await asyncio.gather(*(self._store.get_current_item(s) for s in subject_ids))
        return [
            subject_id
            for subject_id, item in zip(subject_ids, items)
            if item is not None and evaluate_current(item)
        ]

    # ── Per checkpoint ───────────────────────────────────────────────────

    async def _checkpoint(self, items: list[CatalogItem], as_of: datetime) -> TrendPoint:
        eligible = [item for item in items if item.added_at <= as_of]
        semaphore = asyncio.Semaphore(self._concurrency)
        tasks = [
            asyncio.create_task(self._classify(item, as_of, semaphore))
            for item in eligible
        ]
        try:
            verdicts = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        matching = sum(1 for v, _ in verdicts if v is _Verdict.MATCH)
        excluded = sum(1 for v, _ in verdicts if v is _Verdict.EXCLUDED)
        warned = sum(1 for v, w in verdicts if w and v is not _Verdict.EXCLUDED)
        total = len(eligible) - excluded

        if excluded:
            logger.warning(
                "Checkpoint %s: excluded %d of %d eligible item(s)",
                as_of.isoformat(),
                excluded,
                len(eligible),
            )
        return TrendPoint(
            bucket_label=self.bucket_label(as_of),
            as_of=as_of,
            matching_count=matching,
            total_count=total,
            percentage=percentage_of(matching, total),
            excluded_count=excluded,
            warning_count=warned,
        )

    async def _classify(
        self,
        item: CatalogItem,
        as_of: datetime,
        semaphore: asyncio.Semaphore,
    ) -> tuple[_Verdict, bool]:
        async with semaphore:
            try:
                snapshot = await self._reconstructor.reconstruct_item(item, as_of)
            except StoreUnavailableError:
                raise
            except CatalogHistoryError as exc:
                logger.warning("Excluding item %s at %s: %s", item.id, as_of.isoformat(), exc)
                return _Verdict.EXCLUDED, False
        verdict = _Verdict.MATCH if evaluate_snapshot(snapshot) else _Verdict.NO_MATCH
        return verdict, not snapshot.clean

    # ── Validation ───────────────────────────────────────────────────────

    def _validate_weeks(self, weeks: int) -> None:
        if isinstance(weeks, bool) or not isinstance(weeks, int):
            raise ValidationFailure("weeks must be an integer")
        if not 1 <= weeks <= self._max_weeks:
            raise ValidationFailure(f"weeks must be between 1 and {self._max_weeks}, got {weeks}")
