"""Tests for the weekly trend aggregator."""

import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from catalog_history.core.audit_query import AuditQuery
from catalog_history.core.capture import ChangeCapture
from catalog_history.core.reconstructor import TemporalReconstructor
from catalog_history.core.trend import TrendAggregator
from catalog_history.domain.audit import AuditEvent
from catalog_history.domain.enums import TrackedField
from catalog_history.domain.errors import StoreUnavailableError, ValidationFailure
from catalog_history.domain.reporting import CatalogFilter
from catalog_history.store.memory_store import InMemoryCatalogStore

from tests.test_models import _BASE, _draft, _item

# Day 21 of the scenario, around noon
_NOW = _BASE + timedelta(days=21, hours=3)


def _day(n: int, hours: int = 0) -> datetime:
    return _BASE + timedelta(days=n, hours=hours)


def _aggregator(store: InMemoryCatalogStore, strict: bool = False, **kw) -> TrendAggregator:
    query = AuditQuery(store)
    reconstructor = TemporalReconstructor(store, query, event_limit=1000, strict_decoding=strict)
    return TrendAggregator(store, reconstructor, **kw)


class SlowStore(InMemoryCatalogStore):
    """Answers the first *fast_calls* event queries immediately, then stalls."""

    def __init__(self, fast_calls: int, delay: float) -> None:
        super().__init__()
        self.fast_calls = fast_calls
        self.delay = delay

    async def query_events(self, subject_id=None, field=None, limit=50) -> list[AuditEvent]:
        self.fast_calls -= 1
        if self.fast_calls < 0:
            await asyncio.sleep(self.delay)
        return await super().query_events(subject_id, field, limit)


class BrokenStore(InMemoryCatalogStore):
    async def query_events(self, subject_id=None, field=None, limit=50) -> list[AuditEvent]:
        raise StoreUnavailableError("database is down")


@pytest.fixture
def store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore()


class TestCheckpoints:
    def test_end_of_day_weekly_steps(self, store: InMemoryCatalogStore) -> None:
        points = _aggregator(store).checkpoints(3, now=_NOW)
        assert points == [
            datetime(2026, 1, 26, 23, 59, 59, 999999, tzinfo=timezone.utc),
            datetime(2026, 1, 19, 23, 59, 59, 999999, tzinfo=timezone.utc),
            datetime(2026, 1, 12, 23, 59, 59, 999999, tzinfo=timezone.utc),
        ]

    def test_report_timezone_defines_the_day(self, store: InMemoryCatalogStore) -> None:
        aggregator = _aggregator(store, report_timezone=ZoneInfo("America/New_York"))
        (point,) = aggregator.checkpoints(1, now=_NOW)
        assert point == datetime(2026, 1, 27, 4, 59, 59, 999999, tzinfo=timezone.utc)
        assert aggregator.bucket_label(point) == "Jan 26"

    @pytest.mark.parametrize("weeks", [0, -1, 105, True, 2.5])
    def test_invalid_weeks(self, store: InMemoryCatalogStore, weeks) -> None:
        with pytest.raises(ValidationFailure):
            _aggregator(store, max_weeks=104).checkpoints(weeks, now=_NOW)


class TestTrend:
    async def _scenario(self, store: InMemoryCatalogStore) -> None:
        """Item A: added day 0, checked out day 10, read day 20."""
        capture = ChangeCapture(store, retry_delay=0)
        await store.insert_item(_item(id="a", added_at=_day(0)))
        await capture.apply_update("a", {"holder": "bob", "status": "Checked out"}, now=_day(10))
        await capture.apply_update("a", {"read_count": 1}, now=_day(20))

    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, store: InMemoryCatalogStore) -> None:
        await self._scenario(store)
        report = await _aggregator(store).get_trend(4, now=_NOW)

        assert report.complete
        assert [p.bucket_label for p in report.points] == ["Jan 5", "Jan 12", "Jan 19", "Jan 26"]
        assert [p.matching_count for p in report.points] == [1, 1, 0, 0]
        assert [p.percentage for p in report.points] == [100, 100, 0, 0]
        assert [p.total_count for p in report.points] == [1, 1, 1, 1]
        assert report.current.matching_count == 0
        assert report.current.total_count == 1

    @pytest.mark.asyncio
    async def test_points_are_oldest_first(self, store: InMemoryCatalogStore) -> None:
        await self._scenario(store)
        report = await _aggregator(store).get_trend(4, now=_NOW)
        as_of = [p.as_of for p in report.points]
        assert as_of == sorted(as_of)

    @pytest.mark.asyncio
    async def test_items_added_later_are_not_eligible(self, store: InMemoryCatalogStore) -> None:
        await self._scenario(store)
        await store.insert_item(_item(id="b", added_at=_day(8)))
        report = await _aggregator(store).get_trend(4, now=_NOW)
        assert [p.total_count for p in report.points] == [1, 1, 2, 2]
        assert [p.matching_count for p in report.points] == [1, 1, 1, 1]
        assert [p.percentage for p in report.points] == [100, 100, 50, 50]

    @pytest.mark.asyncio
    async def test_empty_catalog(self, store: InMemoryCatalogStore) -> None:
        report = await _aggregator(store).get_trend(3, now=_NOW)
        assert len(report.points) == 3
        assert all(p.total_count == 0 and p.percentage == 0 for p in report.points)
        assert report.current.percentage == 0

    @pytest.mark.asyncio
    async def test_percentage_bounds(self, store: InMemoryCatalogStore) -> None:
        capture = ChangeCapture(store, retry_delay=0)
        for i in range(7):
            await store.insert_item(_item(id=f"i{i}", added_at=_day(i * 3)))
            if i % 2:
                await capture.apply_update(f"i{i}", {"read_count": i}, now=_day(i * 3 + 1))
        report = await _aggregator(store).get_trend(6, now=_NOW)
        for point in report.points:
            assert 0 <= point.percentage <= 100
            assert point.matching_count <= point.total_count
            if point.total_count == 0:
                assert point.percentage == 0

    @pytest.mark.asyncio
    async def test_filter_by_owner(self, store: InMemoryCatalogStore) -> None:
        await self._scenario(store)
        await store.insert_item(_item(id="c", owner="carol", holder="carol"))
        report = await _aggregator(store).get_trend(2, CatalogFilter(owner="carol"), now=_NOW)
        assert [p.total_count for p in report.points] == [1, 1]
        assert report.current.percentage == 100

    @pytest.mark.asyncio
    async def test_malformed_item_is_excluded_not_fatal(self, store: InMemoryCatalogStore) -> None:
        await store.insert_item(_item(id="good"))
        await store.insert_item(_item(id="bad", read_count=1))
        await store.insert_event(_draft(
            subject_id="bad", field="read_count", old_value="??", new_value="1", occurred_at=_day(20),
        ))
        report = await _aggregator(store, strict=True).get_trend(2, now=_NOW)
        older, newer = report.points
        assert (older.total_count, older.excluded_count, older.matching_count) == (1, 1, 1)
        assert (newer.total_count, newer.excluded_count) == (2, 0)

    @pytest.mark.asyncio
    async def test_lenient_decoding_counts_warnings(self, store: InMemoryCatalogStore) -> None:
        await store.insert_item(_item(id="bad", read_count=1))
        await store.insert_event(_draft(
            subject_id="bad", field="read_count", old_value="??", new_value="1", occurred_at=_day(20),
        ))
        report = await _aggregator(store).get_trend(2, now=_NOW)
        older = report.points[0]
        assert older.warning_count == 1
        assert older.excluded_count == 0
        assert older.matching_count == 1

    @pytest.mark.asyncio
    async def test_store_outage_fails_request(self) -> None:
        store = BrokenStore()
        await store.insert_item(_item())
        with pytest.raises(StoreUnavailableError):
            await _aggregator(store).get_trend(2, now=_NOW)

    @pytest.mark.asyncio
    async def test_timeout_returns_finished_points_only(self) -> None:
        store = SlowStore(fast_calls=len(TrackedField), delay=5.0)
        await store.insert_item(_item())
        report = await _aggregator(store, concurrency=1).get_trend(3, now=_NOW, timeout=0.5)
        assert not report.complete
        assert len(report.points) == 1
        assert report.points[0].as_of == datetime(2026, 1, 26, 23, 59, 59, 999999, tzinfo=timezone.utc)
        assert report.requested_weeks == 3

    @pytest.mark.asyncio
    async def test_non_positive_timeout_rejected(self, store: InMemoryCatalogStore) -> None:
        with pytest.raises(ValidationFailure):
            await _aggregator(store).get_trend(2, now=_NOW, timeout=0)


class TestCurrent:
    @pytest.mark.asyncio
    async def test_current_aggregate(self, store: InMemoryCatalogStore) -> None:
        await store.insert_item(_item(id="a"))
        await store.insert_item(_item(id="b", read_count=2))
        await store.insert_item(_item(id="c", holder="bob"))
        counts = await _aggregator(store).get_current_aggregate()
        assert (counts.matching_count, counts.total_count, counts.percentage) == (1, 3, 33)

    @pytest.mark.asyncio
    async def test_find_unused(self, store: InMemoryCatalogStore) -> None:
        await store.insert_item(_item(id="a"))
        await store.insert_item(_item(id="b", read_count=2))
        unused = await _aggregator(store).find_unused(["b", "ghost", "a"])
        assert unused == ["a"]

    @pytest.mark.asyncio
    async def test_find_unused_rejects_non_strings(self, store: InMemoryCatalogStore) -> None:
        with pytest.raises(ValidationFailure):
            await _aggregator(store).find_unused(["a", 3])
