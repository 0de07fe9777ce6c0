"""
Pytest fixtures for the test suite.
"""
import logging
from copy import deepcopy
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from hopbot.bot import HopBot
from hopbot.config import DEFAULT_CONFIG
from hopbot.models import BookSnapshot, OrderDescriptor, OrderRecord
from hopbot.order_tracker import OrderLifecycleTracker


class MemoryRecordStore:
    """In-memory stand-in for the JSON record files."""

    def __init__(self, record=None):
        self.record = record
        self.saves = []

    def load(self):
        return self.record

    def save(self, record):
        self.record = record
        self.saves.append(record)


class FakeStream:
    """Order-book stream that serves whatever books the test puts in."""

    def __init__(self, books=None, closed=False):
        self.books = books or {}
        self.closed = closed
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    def get_all_books(self):
        return dict(self.books)

    def stream_closed(self):
        return self.closed

    async def shutdown(self):
        self.stopped = True


def book(ask, bid):
    return BookSnapshot(asks={Decimal(str(ask))}, bids={Decimal(str(bid))})


def market_books(a_quote="20000", b_quote="1500", cross="12.6", spread="0.1"):
    """Books whose mids are exactly the given prices."""
    half = Decimal(spread) / 2
    return {
        "XBT/EUR": book(Decimal(a_quote) + half, Decimal(a_quote) - half),
        "ETH/EUR": book(Decimal(b_quote) + half, Decimal(b_quote) - half),
        "ETH/XBT": book(Decimal(cross) + half, Decimal(cross) - half),
    }


@pytest.fixture
def config():
    cfg = deepcopy(DEFAULT_CONFIG)
    cfg['system']['dry_run'] = False
    return cfg


@pytest.fixture
def logger():
    return logging.getLogger("hopbot.tests")


@pytest.fixture
def gateway():
    gw = MagicMock()
    gw.get_balance = AsyncMock(return_value={"BTC": Decimal("1.0")})
    gw.submit_limit_order = AsyncMock(
        return_value=OrderDescriptor(order_id="OABC-123", description="buy 0.07936508 ETHXBT @ limit 12.60000")
    )
    gw.list_open_orders = AsyncMock(return_value=[])
    gw.cancel_all_orders = AsyncMock(return_value={"count": 1})
    return gw


@pytest.fixture
def notifier():
    n = MagicMock()
    n.send = AsyncMock(return_value=True)
    return n


@pytest.fixture
def stores():
    completed = OrderRecord(reference_price=Decimal("13.0"), completed=True)
    return MemoryRecordStore(completed), MemoryRecordStore(completed)


@pytest.fixture
def tracker(stores):
    return OrderLifecycleTracker.load(*stores)


@pytest.fixture
def stream():
    return FakeStream(market_books())


@pytest.fixture
def bot(config, gateway, tracker, notifier, logger, stream):
    b = HopBot(config, gateway, tracker, notifier, logger, stream_factory=lambda: stream)
    b.inventory.balance = {"BTC": Decimal("1.0")}
    b.inventory.stale = False
    return b
