"""
Tests for order record persistence and the lifecycle state machine.
"""
import json
import os
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from hopbot.errors import OrderHistoryError
from hopbot.models import OrderRecord
from hopbot.order_tracker import JsonRecordStore, OrderLifecycleTracker

from conftest import MemoryRecordStore


class TestJsonRecordStore:

    @pytest.mark.parametrize("record", [
        OrderRecord(reference_price=Decimal("12.6"), completed=True),
        OrderRecord(reference_price=Decimal("0.05321"), completed=False),
        OrderRecord(reference_price=Decimal("13"), completed=True),
    ])
    def test_round_trip(self, tmp_path, record):
        store = JsonRecordStore(str(tmp_path / "last.json"))
        store.save(record)
        loaded = store.load()
        assert loaded.reference_price == record.reference_price
        assert loaded.completed is record.completed

    def test_file_layout(self, tmp_path):
        path = tmp_path / "last.json"
        JsonRecordStore(str(path)).save(OrderRecord(Decimal("12.6"), False))
        assert json.loads(path.read_text()) == {"price": 12.6, "completed": False}

    def test_legacy_tuple_layout_is_readable(self, tmp_path):
        path = tmp_path / "last.json"
        path.write_text("[0.05321, true]")
        record = JsonRecordStore(str(path)).load()
        assert record == OrderRecord(Decimal("0.05321"), True)

    def test_missing_file_is_none(self, tmp_path):
        assert JsonRecordStore(str(tmp_path / "nope.json")).load() is None

    @pytest.mark.parametrize("content", [
        "",
        "{not json",
        "[1.0]",
        '{"price": 1.0}',
        '{"price": "abc", "completed": true}',
        '{"price": 1.0, "completed": "yes"}',
        '"text"',
    ])
    def test_corrupt_file_raises(self, tmp_path, content):
        path = tmp_path / "last.json"
        path.write_text(content)
        with pytest.raises(OrderHistoryError):
            JsonRecordStore(str(path)).load()

    def test_failed_write_keeps_previous_record(self, tmp_path):
        store = JsonRecordStore(str(tmp_path / "last.json"))
        store.save(OrderRecord(Decimal("12.6"), True))

        with patch("hopbot.order_tracker.json.dump", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.save(OrderRecord(Decimal("99"), False))

        assert store.load() == OrderRecord(Decimal("12.6"), True)
        assert os.listdir(tmp_path) == ["last.json"]

    def test_creates_missing_directory(self, tmp_path):
        store = JsonRecordStore(str(tmp_path / "state" / "last.json"))
        store.save(OrderRecord(Decimal("1.5"), True))
        assert store.load() == OrderRecord(Decimal("1.5"), True)


class TestTrackerLoad:

    def test_missing_current_record_is_fatal(self):
        with pytest.raises(OrderHistoryError):
            OrderLifecycleTracker.load(MemoryRecordStore(None), MemoryRecordStore(OrderRecord(Decimal(1), True)))

    def test_missing_last_completed_is_seeded_from_completed_current(self):
        current = OrderRecord(Decimal("12.6"), True)
        completed_store = MemoryRecordStore(None)
        tracker = OrderLifecycleTracker.load(MemoryRecordStore(current), completed_store)
        assert tracker.last_completed == current
        assert completed_store.record == current

    def test_missing_last_completed_while_pending_is_fatal(self):
        with pytest.raises(OrderHistoryError):
            OrderLifecycleTracker.load(MemoryRecordStore(OrderRecord(Decimal(1), False)), MemoryRecordStore(None))

    def test_pending_record_survives_restart(self, tmp_path):
        cur = JsonRecordStore(str(tmp_path / "last.json"))
        done = JsonRecordStore(str(tmp_path / "last_completed.json"))
        cur.save(OrderRecord(Decimal("13.0"), True))
        done.save(OrderRecord(Decimal("13.0"), True))

        OrderLifecycleTracker.load(cur, done).mark_submitted(Decimal("12.6"))
        restarted = OrderLifecycleTracker.load(cur, done)

        assert restarted.is_pending()
        assert restarted.current.reference_price == Decimal("12.6")
        assert restarted.last_completed.reference_price == Decimal("13.0")


class TestTransitions:

    def test_submit_makes_pending_and_persists_first(self, tracker, stores):
        current_store, _ = stores
        tracker.mark_submitted(Decimal("12.6"))
        assert tracker.is_pending()
        assert current_store.record == OrderRecord(Decimal("12.6"), False)

    def test_failed_persist_does_not_change_state(self, tracker, stores):
        current_store, _ = stores
        current_store.save = MagicMock(side_effect=OSError("disk full"))
        with pytest.raises(OSError):
            tracker.mark_submitted(Decimal("12.6"))
        assert not tracker.is_pending()
        assert tracker.current.reference_price == Decimal("13.0")

    def test_complete_copies_pending_into_last_completed(self, tracker, stores):
        current_store, completed_store = stores
        tracker.mark_submitted(Decimal("12.6"))

        assert tracker.complete() is True
        assert not tracker.is_pending()
        assert tracker.current == OrderRecord(Decimal("12.6"), True)
        assert tracker.last_completed == tracker.current
        assert current_store.record == completed_store.record == tracker.current

    def test_complete_when_idle_is_noop(self, tracker, stores):
        current_store, _ = stores
        saves = len(current_store.saves)
        assert tracker.complete() is False
        assert len(current_store.saves) == saves

    def test_revert_restores_last_completed(self, tracker, stores):
        current_store, completed_store = stores
        tracker.mark_submitted(Decimal("12.6"))

        assert tracker.revert() is True
        assert tracker.current == OrderRecord(Decimal("13.0"), True)
        assert not tracker.is_pending()
        assert current_store.record == OrderRecord(Decimal("13.0"), True)
        assert completed_store.record == OrderRecord(Decimal("13.0"), True)

    def test_revert_after_fill_changes_nothing(self, tracker):
        tracker.mark_submitted(Decimal("12.6"))
        tracker.complete()
        assert tracker.revert() is False
        assert tracker.current == OrderRecord(Decimal("12.6"), True)

    def test_fill_after_revert_is_not_reported(self, tracker):
        tracker.mark_submitted(Decimal("12.6"))
        tracker.revert()
        assert tracker.complete() is False
        assert tracker.current == OrderRecord(Decimal("13.0"), True)
