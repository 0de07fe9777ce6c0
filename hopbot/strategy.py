# hopbot/strategy.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .models import Balance, HopDecision, OrderRecord, Position, Side

ONE = Decimal(1)


def evaluate_gain(position: Position, record: OrderRecord, cross_rate: Optional[Decimal]) -> Optional[Decimal]:
    """
    Signed gain since the last completed order.

    The cross rate is quoted as A per unit of B, so a falling rate favours
    whoever holds A. Returns None (not zero) whenever the gain is undefined:
    the record is still pending, there is no position, or no cross rate yet.
    """
    if not record.completed:
        return None
    if position is Position.NONE:
        return None
    if cross_rate is None or record.reference_price == 0:
        return None

    ratio = cross_rate / record.reference_price - ONE
    if position is Position.HOLDING_A:
        return -ratio
    return ratio


class HopStrategy:
    """
    Fixed asymmetric thresholds: leaving B needs a larger gain than leaving A,
    which biases the bot towards holding B to cover the round-trip fees.
    """
    def __init__(self, config: dict):
        market = config['market']
        strategy = config['strategy']
        self.asset_a = market['asset_a']
        self.asset_b = market['asset_b']
        self.cross_symbol = market['cross_symbol']
        self.tick = Decimal(1).scaleb(-int(market['price_decimals']))
        self.threshold_a = Decimal(str(strategy['hop_out_of_a_threshold']))
        self.threshold_b = Decimal(str(strategy['hop_out_of_b_threshold']))

    def should_hop(self, position: Position, gain: Optional[Decimal]) -> bool:
        if gain is None:
            return False
        if position is Position.HOLDING_A:
            return gain > self.threshold_a
        if position is Position.HOLDING_B:
            return gain > self.threshold_b
        return False

    def round_price(self, price: Decimal) -> Decimal:
        return price.quantize(self.tick, rounding=ROUND_HALF_UP)

    def build_order(self, position: Position, gain: Decimal, balance: Balance, cross_rate: Decimal) -> Optional[HopDecision]:
        """
        Leaving A buys the cross pair with the whole A balance, leaving B
        sells the whole B balance. Returns None if there is nothing to move.
        """
        if position is Position.HOLDING_A:
            held = balance.get(self.asset_a)
            if not held:
                return None
            side = Side.BUY
            volume = held / cross_rate
        elif position is Position.HOLDING_B:
            held = balance.get(self.asset_b)
            if not held:
                return None
            side = Side.SELL
            volume = held
        else:
            return None

        return HopDecision(
            side=side,
            pair=self.cross_symbol,
            volume=volume,
            limit_price=self.round_price(cross_rate),
            position=position,
            gain=gain,
        )

    def evaluate(self, position: Position, gain: Optional[Decimal], balance: Balance,
                 cross_rate: Optional[Decimal]) -> Optional[HopDecision]:
        if cross_rate is None or not self.should_hop(position, gain):
            return None
        return self.build_order(position, gain, balance, cross_rate)
