# hopbot/inventory.py
import logging
from typing import Optional

from .errors import FatalError, GatewayError
from .models import Balance


class InventoryEngine:
    """
    Owns the control loop's copy of the account balance.

    The balance is refreshed wholesale, never patched. After a submitted
    order it is marked stale and refetched on the next idle tick. Up to
    `max_failures - 1` consecutive refresh failures are tolerated, the last
    known balance stays in place meanwhile; the next one is fatal.
    """
    def __init__(self, gateway, logger: logging.Logger, max_failures: int = 1):
        self.gateway = gateway
        self.logger = logger
        self.max_failures = max(1, int(max_failures))
        self.balance: Optional[Balance] = None
        self.stale = True
        self.consecutive_failures = 0

    @property
    def is_ready(self) -> bool:
        return self.balance is not None

    def mark_stale(self):
        self.stale = True

    async def refresh(self) -> Balance:
        try:
            balance = await self.gateway.get_balance()
        except GatewayError as e:
            self.consecutive_failures += 1
            self.logger.error(
                f"Balance fetch failed ({self.consecutive_failures}/{self.max_failures}): {e}"
            )
            if self.consecutive_failures >= self.max_failures or self.balance is None:
                raise FatalError(f"Error getting account balance: {e}") from e
            return self.balance

        self.balance = dict(balance)
        self.stale = False
        self.consecutive_failures = 0
        return self.balance

    async def refresh_if_stale(self) -> Balance:
        if self.stale or self.balance is None:
            return await self.refresh()
        return self.balance
