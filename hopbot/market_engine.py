# hopbot/market_engine.py
from decimal import Decimal
from typing import List, Optional

import ccxt.async_support as ccxt

from .errors import GatewayError
from .models import Balance, OrderDescriptor, Side


class KrakenGateway:
    """
    Manages the REST connection to the exchange.
    Responsible for the startup diagnostics and for the five calls the bot
    needs: balance, limit order, open orders, cancel all. Every ccxt
    failure leaves this class as a GatewayError.
    """
    def __init__(self, config: dict, logger, api_key: str = "", secret: str = "", client=None):
        self.cfg = config
        self.logger = logger
        self.name = config['exchange']['name']
        if client is None:
            ex_class = getattr(ccxt, self.name)
            client = ex_class({
                'apiKey': api_key,
                'secret': secret,
                'timeout': config['performance']['network_timeout_ms'],
                'enableRateLimit': True,
                'options': {'defaultType': 'spot'},
            })
        self.client = client

    async def initialize(self) -> bool:
        """
        Connects and performs a connectivity + authentication test.
        Returns False if the diagnostic fails.
        """
        self.logger.info(f"📡 TESTING {self.name.upper()} CONNECTION...")
        try:
            # Public API: internet connection and exchange status
            await self.client.load_markets()
            # Private API: key validity and permissions
            await self.client.fetch_balance()
            self.logger.info(f"   ✅ {self.name.upper():<10} | Auth: OK")
            return True

        except ccxt.AuthenticationError:
            self.logger.critical(f"   ❌ {self.name.upper():<10} | AUTH FAILED: Invalid API Key or Secret.")
        except ccxt.PermissionDenied:
            self.logger.critical(f"   ❌ {self.name.upper():<10} | PERMISSION DENIED: Key is missing trading or query permissions.")
        except ccxt.AccountSuspended:
            self.logger.critical(f"   ❌ {self.name.upper():<10} | ACCOUNT SUSPENDED: Contact support immediately.")
        except ccxt.RequestTimeout:
            self.logger.error(f"   ❌ {self.name.upper():<10} | TIMEOUT: Exchange API is slow or down.")
        except ccxt.ExchangeNotAvailable:
            self.logger.error(f"   ❌ {self.name.upper():<10} | MAINTENANCE: Exchange is currently offline.")
        except ccxt.BaseError as e:
            self.logger.critical(f"   ❌ {self.name.upper():<10} | UNKNOWN ERROR: {e}")
        return False

    async def get_balance(self) -> Balance:
        try:
            raw = await self.client.fetch_balance()
        except ccxt.BaseError as e:
            raise GatewayError(f"fetch_balance failed: {e}") from e

        balance: Balance = {}
        for asset, amount in (raw.get('total') or {}).items():
            if amount:
                balance[asset] = Decimal(str(amount))
        return balance

    async def submit_limit_order(self, side: Side, symbol: str, volume: Decimal, price: Decimal) -> OrderDescriptor:
        """Plain limit order, no post-only or IOC flags."""
        try:
            res = await self.client.create_order(symbol, 'limit', side.value, float(volume), float(price))
        except ccxt.BaseError as e:
            raise GatewayError(f"Error executing transaction: {e}") from e

        descr = (res.get('info') or {}).get('descr') or {}
        description = descr.get('order') or f"{side.value} {volume} {symbol} @ limit {price}"
        return OrderDescriptor(order_id=str(res.get('id')), description=description)

    async def list_open_orders(self) -> List[str]:
        try:
            orders = await self.client.fetch_open_orders()
        except ccxt.BaseError as e:
            raise GatewayError(f"fetch_open_orders failed: {e}") from e
        return [str(o.get('id')) for o in orders]

    async def cancel_all_orders(self) -> Optional[dict]:
        try:
            return await self.client.cancel_all_orders()
        except ccxt.BaseError as e:
            raise GatewayError(f"cancel_all_orders failed: {e}") from e

    async def shutdown(self):
        """Gracefully closes the REST session."""
        await self.client.close()
