"""
Exchange gateway against a mocked ccxt client.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import ccxt.async_support as ccxt
import pytest

from hopbot.errors import FatalError, GatewayError
from hopbot.inventory import InventoryEngine
from hopbot.market_engine import KrakenGateway
from hopbot.models import Side


@pytest.fixture
def client():
    c = MagicMock()
    c.load_markets = AsyncMock(return_value={})
    c.fetch_balance = AsyncMock(return_value={
        'total': {'BTC': 0.5, 'ETH': 0.0, 'EUR': 12.34, 'XRP': None},
    })
    c.create_order = AsyncMock(return_value={
        'id': 'OQCLML-BW3P3-BUCMWZ',
        'info': {'descr': {'order': 'buy 0.07936508 ETHXBT @ limit 12.60000'}},
    })
    c.fetch_open_orders = AsyncMock(return_value=[{'id': 'A'}, {'id': 'B'}])
    c.cancel_all_orders = AsyncMock(return_value={'count': 2})
    c.close = AsyncMock()
    return c


@pytest.fixture
def kraken(config, logger, client):
    return KrakenGateway(config, logger, client=client)


@pytest.mark.asyncio
async def test_initialize_checks_public_and_private_api(kraken, client):
    assert await kraken.initialize() is True
    client.load_markets.assert_awaited_once()
    client.fetch_balance.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    ccxt.AuthenticationError("EAPI:Invalid key"),
    ccxt.PermissionDenied("EGeneral:Permission denied"),
    ccxt.ExchangeNotAvailable("EService:Unavailable"),
    ccxt.RequestTimeout("timeout"),
])
async def test_initialize_reports_failure(kraken, client, error):
    client.fetch_balance.side_effect = error
    assert await kraken.initialize() is False


@pytest.mark.asyncio
async def test_balance_skips_empty_assets(kraken):
    balance = await kraken.get_balance()
    assert balance == {'BTC': Decimal('0.5'), 'EUR': Decimal('12.34')}


@pytest.mark.asyncio
async def test_limit_order_uses_exchange_description(kraken, client):
    descriptor = await kraken.submit_limit_order(Side.BUY, "ETH/BTC", Decimal("0.5"), Decimal("12.60000"))

    client.create_order.assert_awaited_once_with("ETH/BTC", 'limit', 'buy', 0.5, 12.6)
    assert descriptor.order_id == 'OQCLML-BW3P3-BUCMWZ'
    assert descriptor.description == 'buy 0.07936508 ETHXBT @ limit 12.60000'


@pytest.mark.asyncio
async def test_limit_order_without_description(kraken, client):
    client.create_order.return_value = {'id': 'X1', 'info': {}}
    descriptor = await kraken.submit_limit_order(Side.SELL, "ETH/BTC", Decimal("2"), Decimal("13.7"))
    assert descriptor.description == "sell 2 ETH/BTC @ limit 13.7"


@pytest.mark.asyncio
async def test_open_orders_are_ids(kraken):
    assert await kraken.list_open_orders() == ['A', 'B']


@pytest.mark.asyncio
@pytest.mark.parametrize("method, call", [
    ("fetch_balance", lambda k: k.get_balance()),
    ("create_order", lambda k: k.submit_limit_order(Side.BUY, "ETH/BTC", Decimal(1), Decimal(1))),
    ("fetch_open_orders", lambda k: k.list_open_orders()),
    ("cancel_all_orders", lambda k: k.cancel_all_orders()),
])
async def test_ccxt_errors_become_gateway_errors(kraken, client, method, call):
    getattr(client, method).side_effect = ccxt.NetworkError("connection reset")
    with pytest.raises(GatewayError):
        await call(kraken)


class TestInventory:

    @pytest.mark.asyncio
    async def test_refresh_replaces_balance(self, kraken):
        inventory = InventoryEngine(kraken, MagicMock())
        assert not inventory.is_ready
        await inventory.refresh()
        assert inventory.is_ready
        assert not inventory.stale
        assert inventory.balance['BTC'] == Decimal('0.5')

    @pytest.mark.asyncio
    async def test_fresh_balance_is_not_refetched(self, kraken, client):
        inventory = InventoryEngine(kraken, MagicMock())
        await inventory.refresh()
        await inventory.refresh_if_stale()
        assert client.fetch_balance.await_count == 1

        inventory.mark_stale()
        await inventory.refresh_if_stale()
        assert client.fetch_balance.await_count == 2

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, kraken, client):
        inventory = InventoryEngine(kraken, MagicMock(), max_failures=2)
        await inventory.refresh()

        client.fetch_balance.side_effect = ccxt.NetworkError("reset")
        await inventory.refresh()
        assert inventory.consecutive_failures == 1

        client.fetch_balance.side_effect = None
        await inventory.refresh()
        assert inventory.consecutive_failures == 0

        client.fetch_balance.side_effect = ccxt.NetworkError("reset")
        await inventory.refresh()
        with pytest.raises(FatalError):
            await inventory.refresh()
