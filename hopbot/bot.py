# hopbot/bot.py
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from .errors import EmptyBookError, FatalError, GatewayError, ReportError
from .execution import ExecutionService
from .inventory import InventoryEngine
from .models import HopDecision, Position, PriceCache
from .order_tracker import OrderLifecycleTracker
from .position import classify_position
from .prices import PriceAggregator
from .reports import (
    HUNDRED,
    StatusReport,
    format_balance,
    format_order_filled,
    format_order_placed,
    format_status,
    format_stream_closed,
    format_text,
)
from .strategy import HopStrategy, evaluate_gain


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


class HopBot:
    """
    The control loop. Sole driver of the strategy: an outer reconnect loop
    around an inner polling loop whose tick interval stretches while an
    order is waiting to fill. Also answers the chat sidecar.
    """
    def __init__(self, config: dict, gateway, tracker: OrderLifecycleTracker, notifier, logger,
                 stream_factory: Callable, audit_log=None):
        self.config = config
        self.gateway = gateway
        self.tracker = tracker
        self.notifier = notifier
        self.logger = logger
        self.stream_factory = stream_factory
        self.audit_log = audit_log

        market = config['market']
        self.asset_a = market['asset_a']
        self.asset_b = market['asset_b']
        self.quote = market['quote']

        self.prices = PriceCache()
        self.aggregator = PriceAggregator.from_config(self.prices, config)
        self.strategy = HopStrategy(config)
        self.executor = ExecutionService(gateway, logger, config)

        loop_cfg = config['loop']
        self.inventory = InventoryEngine(gateway, logger, loop_cfg['max_balance_failures'])
        self.nominal_interval = float(loop_cfg['tick_interval_seconds'])
        self.pending_interval = float(loop_cfg['pending_interval_seconds'])
        self.reconnect_cooldown = float(loop_cfg['reconnect_cooldown_seconds'])
        self.interval = self.nominal_interval

        self.stream = None
        self.running = True
        # Serializes every order-record transition: submit, fill, revert
        self._transition_lock = asyncio.Lock()
        # Last evaluation, for the dashboard only
        self.last_position = Position.NONE
        self.last_gain: Optional[Decimal] = None

    # --- CONTROL LOOP ---

    async def run(self):
        """Reconnects forever. Returns only after stop(); raises FatalError."""
        await self.inventory.refresh()

        while self.running:
            self.stream = self.stream_factory()
            await self.stream.start()
            try:
                await self.run_session(self.stream)
            finally:
                await self.stream.shutdown()

            if not self.running:
                break
            self.logger.warning(f"Stream closed, reconnecting in {self.reconnect_cooldown:g}s")
            await self.notifier.send(format_stream_closed(self.reconnect_cooldown))
            await asyncio.sleep(self.reconnect_cooldown)

    async def run_session(self, stream):
        while self.running:
            await asyncio.sleep(self.interval)
            if await self.tick(stream):
                break

    def stop(self):
        self.running = False

    async def tick(self, stream) -> bool:
        """One pass of the loop. Returns True when the stream has closed."""
        if self.tracker.is_pending():
            # Nothing but open-order polling until the order resolves
            self.interval = self.pending_interval
            await self.resolve_pending()
            return False

        self.interval = self.nominal_interval

        try:
            self.aggregator.update(stream.get_all_books())
        except EmptyBookError as e:
            self.logger.warning(f"Skipping tick, incomplete snapshot: {e}")
            return self._check_stream(stream)

        balance = await self.inventory.refresh_if_stale()
        if self.inventory.stale:
            self.logger.warning("Balance is stale after a failed refresh, no decision this tick")
            return self._check_stream(stream)

        prices = self.prices.snapshot()
        record = self.tracker.current
        position = classify_position(balance, prices, self.asset_a, self.asset_b)
        gain = evaluate_gain(position, record, prices.cross_rate)
        self.last_position, self.last_gain = position, gain
        self.logger.debug(f"Position: {position.value} | Cross: {prices.cross_rate} | Gain: {gain}")

        decision = self.strategy.evaluate(position, gain, balance, prices.cross_rate)
        if decision is not None:
            await self.execute_hop(decision)

        return self._check_stream(stream)

    def _check_stream(self, stream) -> bool:
        if stream.stream_closed():
            self.logger.warning("Stream closed")
            return True
        return False

    async def execute_hop(self, decision: HopDecision):
        async with self._transition_lock:
            try:
                descriptor = await self.executor.submit(decision)
            except GatewayError as e:
                raise FatalError(f"Order submission failed: {e}") from e

            self.tracker.mark_submitted(decision.limit_price)
            self.inventory.mark_stale()
        self.logger.info(f"[EXECUTED TRADE] Order placed: {descriptor.description}")

        if self.audit_log is not None:
            await self.audit_log.log_trade([
                _now(), "HOP", decision.side.value, decision.pair, f"{decision.volume:.8f}",
                str(decision.limit_price), f"{decision.gain * HUNDRED:.3f}", descriptor.order_id,
                descriptor.description,
            ])
        await self.notifier.send(format_order_placed(descriptor, decision, self.asset_a, self.asset_b))

    async def resolve_pending(self) -> bool:
        """Polls open orders; True if this call observed the fill."""
        async with self._transition_lock:
            try:
                open_orders = await self.gateway.list_open_orders()
            except GatewayError as e:
                self.logger.warning(f"[ORDER RESOLUTION WAIT] Could not fetch open orders: {e}")
                return False

            if open_orders:
                self.logger.info(f"[ORDER RESOLUTION WAIT] Waiting for {len(open_orders)} order(s) to resolve")
                return False

            filled = self.tracker.complete()
            self.interval = self.nominal_interval
        if not filled:
            # A revert already settled the record
            return False

        price = self.tracker.current.reference_price
        if self.audit_log is not None:
            await self.audit_log.log_trade([_now(), "FILL", "", self.strategy.cross_symbol, "", str(price), "", "", ""])
        await self.notifier.send(format_order_filled(price))
        return True

    # --- SIDECAR INTERFACE ---

    async def _fresh_balance(self):
        try:
            return await self.gateway.get_balance()
        except GatewayError as e:
            raise ReportError("Could not fetch balance") from e

    async def status(self) -> StatusReport:
        balance = await self._fresh_balance()
        prices = self.prices.snapshot()
        if prices.cross_rate is None or prices.asset_a_quote is None or prices.asset_b_quote is None:
            raise ReportError("Prices are not available yet")

        position = classify_position(balance, prices, self.asset_a, self.asset_b)
        record = self.tracker.current
        gain = evaluate_gain(position, record, prices.cross_rate)
        if gain is None:
            if not record.completed:
                raise ReportError("Order still pending, gain is undefined")
            if position is Position.NONE:
                raise ReportError("No position held, gain is undefined")
            raise ReportError("Error calculating gain!")

        return StatusReport(
            cross_rate=prices.cross_rate,
            asset_a_quote=prices.asset_a_quote,
            asset_b_quote=prices.asset_b_quote,
            gain_percent=gain * HUNDRED,
        )

    async def balance_report(self) -> str:
        balance = await self._fresh_balance()
        return format_balance(balance, self.prices.snapshot(), self.asset_a, self.asset_b, self.quote)

    async def revert_last_order(self) -> bool:
        """
        Cancels every open order, then rolls the record back to the last
        completed one. True if a pending order was rolled back.
        Waits for an order submission in flight to be recorded first.
        """
        async with self._transition_lock:
            await self.gateway.cancel_all_orders()
            reverted = self.tracker.revert()
            if reverted:
                self.interval = self.nominal_interval
                self.inventory.mark_stale()
        if reverted and self.audit_log is not None:
            price = self.tracker.current.reference_price
            await self.audit_log.log_trade([_now(), "REVERT", "", self.strategy.cross_symbol, "", str(price), "", "", ""])
        return reverted

    async def status_message(self) -> str:
        try:
            return format_status(await self.status(), self.asset_a, self.asset_b)
        except ReportError as e:
            return format_text(str(e))

    async def balance_message(self) -> str:
        try:
            return await self.balance_report()
        except ReportError as e:
            return format_text(str(e))

    async def revert_message(self) -> str:
        try:
            reverted = await self.revert_last_order()
        except GatewayError as e:
            return format_text("Could not cancel order:", str(e))
        except OSError as e:
            self.logger.error(f"Revert could not be saved: {e}")
            return format_text("Could not persist revert:", str(e))
        if reverted:
            return format_text("Successfully reverted order!")
        return format_text("Open orders cancelled. No pending order to revert, the last order already completed.")
