# hopbot/execution.py
import time

from .models import HopDecision, OrderDescriptor


class ExecutionService:
    """
    Places the hop order. No retries: whatever the gateway raises goes
    straight back to the control loop, which decides what a failure means.
    """
    def __init__(self, gateway, logger, config: dict):
        self.gateway = gateway
        self.logger = logger
        # Defaults to live trading if 'dry_run' is missing from config
        self.dry_run = config['system'].get('dry_run', False)

    async def submit(self, decision: HopDecision) -> OrderDescriptor:
        if self.dry_run:
            self.logger.info(
                f"🔵 DRY RUN: {decision.side.value} {decision.volume:.8f} {decision.pair} @ {decision.limit_price}"
            )
            return OrderDescriptor(
                order_id=f"dry-{int(time.time() * 1000)}",
                description=f"{decision.side.value} {decision.volume:.8f} {decision.pair} @ limit {decision.limit_price}",
            )

        self.logger.info(
            f"⚡ EXECUTION TRIGGERED: {decision.side.value.upper()} {decision.pair} | "
            f"Vol: {decision.volume:.8f} | Limit: {decision.limit_price}"
        )
        descriptor = await self.gateway.submit_limit_order(
            decision.side, decision.pair, decision.volume, decision.limit_price
        )
        self.logger.info(f"✅ ORDER PLACED: {descriptor.order_id} | {descriptor.description}")
        return descriptor
