# hopbot/position.py
from decimal import Decimal
from typing import Optional

from .models import Balance, Position, PriceSnapshot

ZERO = Decimal(0)


def quote_value(amount: Decimal, price: Optional[Decimal]) -> Decimal:
    """Quote-currency value of a holding. Unknown price counts as zero."""
    if price is None:
        return ZERO
    return amount * price


def classify_position(balance: Balance, prices: PriceSnapshot, asset_a: str, asset_b: str) -> Position:
    """
    Whichever asset is worth more in the quote currency is the one we hold.
    Both worthless means no position. Equal nonzero values resolve to B.
    """
    value_a = quote_value(balance.get(asset_a, ZERO), prices.asset_a_quote)
    value_b = quote_value(balance.get(asset_b, ZERO), prices.asset_b_quote)

    if value_a == ZERO and value_b == ZERO:
        return Position.NONE
    if value_a > value_b:
        return Position.HOLDING_A
    return Position.HOLDING_B


def opposite(position: Position) -> Position:
    if position is Position.HOLDING_A:
        return Position.HOLDING_B
    if position is Position.HOLDING_B:
        return Position.HOLDING_A
    return Position.NONE
