"""Tests for change capture: diffing, event appends and the writer helper."""

from datetime import timedelta

import pytest

from catalog_history.core.capture import ChangeCapture, diff_tracked_fields
from catalog_history.domain.audit import AuditEvent, AuditEventDraft
from catalog_history.domain.enums import TrackedField
from catalog_history.domain.errors import NotFound, StoreUnavailableError, ValidationFailure
from catalog_history.store.memory_store import InMemoryCatalogStore

from tests.test_models import _BASE, _item


class FlakyStore(InMemoryCatalogStore):
    """In-memory store whose first *failures* event appends raise."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def insert_event(self, draft: AuditEventDraft) -> AuditEvent:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StoreUnavailableError("connection reset")
        return await super().insert_event(draft)


@pytest.fixture
def store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore()


@pytest.fixture
def capture(store: InMemoryCatalogStore) -> ChangeCapture:
    return ChangeCapture(store, retry_delay=0)


class TestDiff:
    def test_no_op_update_has_no_changes(self) -> None:
        prior = _item(read_count=2)
        updates = {"status": "In library", "owner": "alice", "holder": "alice", "read_count": 2}
        assert diff_tracked_fields(prior, updates) == []

    def test_string_equality_of_canonical_form(self) -> None:
        assert diff_tracked_fields(_item(read_count=2), {"read_count": "2"}) == []

    def test_untracked_fields_ignored(self) -> None:
        assert diff_tracked_fields(_item(), {"label": "Dune Messiah"}) == []

    def test_one_change_per_tracked_field(self) -> None:
        changes = diff_tracked_fields(
            _item(),
            {"holder": "bob", "status": "Checked out", "label": "x"},
        )
        assert [c.field for c in changes] == [TrackedField.STATUS, TrackedField.HOLDER]
        assert changes[0].old_value == "In library"
        assert changes[0].new_value == "Checked out"


class TestRecord:
    @pytest.mark.asyncio
    async def test_no_op_update_produces_zero_events(
        self, store: InMemoryCatalogStore, capture: ChangeCapture
    ) -> None:
        prior = _item()
        result = await capture.record(prior, prior.model_dump())
        assert result.ok
        assert result.recorded == []
        assert await store.event_count() == 0

    @pytest.mark.asyncio
    async def test_events_share_timestamp_and_change_set(self, capture: ChangeCapture) -> None:
        result = await capture.record(
            _item(),
            {"holder": "bob", "read_count": 1},
            changed_by="librarian",
            now=_BASE,
        )
        assert len(result.recorded) == 2
        assert {e.occurred_at for e in result.recorded} == {_BASE}
        assert {e.change_set_id for e in result.recorded} == {result.change_set_id}
        assert all(e.changed_by == "librarian" for e in result.recorded)
        assert result.recorded[0].id < result.recorded[1].id

    @pytest.mark.asyncio
    async def test_default_actor_is_system(self, capture: ChangeCapture) -> None:
        result = await capture.record(_item(), {"holder": "bob"})
        assert result.recorded[0].changed_by == "system"

    @pytest.mark.asyncio
    async def test_event_carries_subject_label(self, capture: ChangeCapture) -> None:
        result = await capture.record(_item(), {"holder": "bob"})
        event = result.recorded[0]
        assert event.subject_id == "item-1"
        assert event.subject_label == "Dune"
        assert (event.old_value, event.new_value) == ("alice", "bob")

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self) -> None:
        store = FlakyStore(failures=2)
        capture = ChangeCapture(store, retry_attempts=3, retry_delay=0)
        result = await capture.record(_item(), {"holder": "bob"})
        assert result.ok
        assert store.attempts == 3

    @pytest.mark.asyncio
    async def test_persistent_failure_is_reported_not_raised(self) -> None:
        store = FlakyStore(failures=100)
        capture = ChangeCapture(store, retry_attempts=2, retry_delay=0)
        result = await capture.record(_item(), {"holder": "bob", "read_count": 1})
        assert not result.ok
        assert [c.field for c in result.failed] == [TrackedField.HOLDER, TrackedField.READ_COUNT]
        assert store.attempts == 4


class TestApplyUpdate:
    @pytest.mark.asyncio
    async def test_update_applies_item_then_events(
        self, store: InMemoryCatalogStore, capture: ChangeCapture
    ) -> None:
        await store.insert_item(_item())
        updated, result = await capture.apply_update("item-1", {"holder": "bob"}, now=_BASE)
        assert updated.holder == "bob"
        assert (await store.get_current_item("item-1")).holder == "bob"
        events = await store.query_events(subject_id="item-1")
        assert [e.id for e in events] == [e.id for e in result.recorded]

    @pytest.mark.asyncio
    async def test_label_change_is_applied_without_events(
        self, store: InMemoryCatalogStore, capture: ChangeCapture
    ) -> None:
        await store.insert_item(_item())
        updated, result = await capture.apply_update("item-1", {"label": "Dune (2nd ed.)"})
        assert updated.label == "Dune (2nd ed.)"
        assert result.recorded == []

    @pytest.mark.asyncio
    async def test_new_label_is_denormalized_onto_events(
        self, store: InMemoryCatalogStore, capture: ChangeCapture
    ) -> None:
        await store.insert_item(_item())
        _, result = await capture.apply_update("item-1", {"label": "Arrakis", "read_count": 1})
        assert result.recorded[0].subject_label == "Arrakis"

    @pytest.mark.asyncio
    async def test_failed_audit_does_not_undo_item_update(self) -> None:
        store = FlakyStore(failures=100)
        capture = ChangeCapture(store, retry_attempts=1, retry_delay=0)
        await store.insert_item(_item())
        updated, result = await capture.apply_update("item-1", {"read_count": 1})
        assert not result.ok
        assert updated.read_count == 1
        assert (await store.get_current_item("item-1")).read_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [3.0, "03", "+3"])
    async def test_lax_equivalent_value_records_nothing(
        self, store: InMemoryCatalogStore, capture: ChangeCapture, raw: object
    ) -> None:
        await store.insert_item(_item(read_count=3))
        updated, result = await capture.apply_update("item-1", {"read_count": raw})
        assert updated.read_count == 3
        assert result.recorded == []
        assert await store.event_count() == 0

    @pytest.mark.asyncio
    async def test_lax_value_is_logged_in_canonical_form(
        self, store: InMemoryCatalogStore, capture: ChangeCapture
    ) -> None:
        await store.insert_item(_item(read_count=3))
        _, result = await capture.apply_update("item-1", {"read_count": "04"})
        [event] = result.recorded
        assert (event.old_value, event.new_value) == ("3", "4")

    @pytest.mark.asyncio
    async def test_missing_item(self, capture: ChangeCapture) -> None:
        with pytest.raises(NotFound):
            await capture.apply_update("nope", {"holder": "bob"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "updates",
        [{}, {"isbn": "123"}, {"id": "other"}, {"read_count": -1}, {"status": "Borrowed"}],
    )
    async def test_invalid_update_rejected_before_write(
        self, store: InMemoryCatalogStore, capture: ChangeCapture, updates: dict
    ) -> None:
        await store.insert_item(_item())
        with pytest.raises(ValidationFailure):
            await capture.apply_update("item-1", updates)
        assert await store.get_current_item("item-1") == _item()
        assert await store.event_count() == 0

    @pytest.mark.asyncio
    async def test_sequential_updates_are_ordered(
        self, store: InMemoryCatalogStore, capture: ChangeCapture
    ) -> None:
        await store.insert_item(_item())
        await capture.apply_update("item-1", {"read_count": 1}, now=_BASE)
        await capture.apply_update("item-1", {"read_count": 2}, now=_BASE + timedelta(days=1))
        events = await store.query_events(subject_id="item-1", field=TrackedField.READ_COUNT)
        assert [(e.old_value, e.new_value) for e in events] == [("1", "2"), ("0", "1")]
