# hopbot/order_tracker.py
import json
import logging
import os
import tempfile
import threading
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

from .errors import OrderHistoryError
from .models import OrderRecord

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    def load(self) -> Optional[OrderRecord]: ...

    def save(self, record: OrderRecord) -> None: ...


class JsonRecordStore:
    """
    One order record in one JSON file: {"price": float, "completed": bool}.
    The legacy two-element array form [price, completed] is still readable.
    Writes go to a temp file in the same directory which then replaces the
    target, so a crash never leaves a half-written record behind.
    """
    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[OrderRecord]:
        """Returns None if the file does not exist. Raises OrderHistoryError if it is unreadable."""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return self._decode(raw)
        except (OSError, ValueError, TypeError, KeyError, InvalidOperation) as e:
            raise OrderHistoryError(f"Corrupt order record {self.path}: {e}") from e

    @staticmethod
    def _decode(raw) -> OrderRecord:
        if isinstance(raw, list):
            if len(raw) != 2:
                raise ValueError(f"expected [price, completed], got {raw!r}")
            price, completed = raw
        elif isinstance(raw, dict):
            price, completed = raw['price'], raw['completed']
        else:
            raise ValueError(f"unexpected record type {type(raw).__name__}")

        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise ValueError(f"price must be a number, got {price!r}")
        if not isinstance(completed, bool):
            raise ValueError(f"completed must be a boolean, got {completed!r}")
        return OrderRecord(reference_price=Decimal(repr(float(price))), completed=completed)

    def save(self, record: OrderRecord) -> None:
        payload = {"price": float(record.reference_price), "completed": record.completed}
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=".record-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class OrderLifecycleTracker:
    """
    Two-state machine over the current order record.

    Idle (completed) -> Pending on a successful submission.
    Pending -> Idle when the exchange reports no open orders (a fill), or
    when the operator reverts after cancelling everything (a rollback).

    Every transition runs under one lock covering the whole read/modify/
    persist sequence, so a fill and a revert racing each other produce a
    single winner. The new record is persisted before it becomes visible.
    Network calls are never made while the lock is held.
    """
    def __init__(self, current_store: RecordStore, completed_store: RecordStore,
                 current: OrderRecord, last_completed: OrderRecord):
        self._current_store = current_store
        self._completed_store = completed_store
        self._current = current
        self._last_completed = last_completed
        self._lock = threading.Lock()

    @classmethod
    def load(cls, current_store: RecordStore, completed_store: RecordStore) -> "OrderLifecycleTracker":
        current = current_store.load()
        if current is None:
            raise OrderHistoryError("No order history, cannot compute gains without a reference price")

        last_completed = completed_store.load()
        if last_completed is None:
            if not current.completed:
                raise OrderHistoryError("No completed order history to fall back to while an order is pending")
            logger.warning("Last completed order record missing, seeding it from the current record")
            last_completed = current
            completed_store.save(last_completed)

        logger.info(
            f"Loaded order history: current={current.reference_price} "
            f"({'completed' if current.completed else 'pending'}), "
            f"last completed={last_completed.reference_price}"
        )
        return cls(current_store, completed_store, current, last_completed)

    @property
    def current(self) -> OrderRecord:
        with self._lock:
            return self._current

    @property
    def last_completed(self) -> OrderRecord:
        with self._lock:
            return self._last_completed

    def is_pending(self) -> bool:
        return not self.current.completed

    def mark_submitted(self, price: Decimal) -> OrderRecord:
        """Idle -> Pending after the exchange accepted an order at `price`."""
        pending = OrderRecord(reference_price=price, completed=False)
        with self._lock:
            self._current_store.save(pending)
            self._current = pending
        logger.info(f"Order record pending at {price}")
        return pending

    def complete(self) -> bool:
        """
        Pending -> Idle on a fill. Returns False if there was nothing pending,
        e.g. because a revert got there first.
        """
        with self._lock:
            if self._current.completed:
                return False
            done = OrderRecord(reference_price=self._current.reference_price, completed=True)
            self._current_store.save(done)
            self._completed_store.save(done)
            self._current = done
            self._last_completed = done
        logger.info(f"Order at {done.reference_price} completed")
        return True

    def revert(self) -> bool:
        """
        Discard the current record and restore the last completed one.
        Returns True if a pending order was rolled back, False if the
        state was already idle and nothing changed.
        """
        with self._lock:
            was_pending = not self._current.completed
            restored = self._last_completed
            if was_pending:
                self._current_store.save(restored)
                self._current = restored
        if was_pending:
            logger.warning(f"Pending order reverted, reference price restored to {restored.reference_price}")
        return was_pending
