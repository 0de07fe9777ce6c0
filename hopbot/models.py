# hopbot/models.py
import threading
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Set

Balance = Dict[str, Decimal]


class Position(Enum):
    """
    Discrete holding derived from the balance and the price cache.
    Never stored, recomputed on every tick.
    """
    HOLDING_A = "HOLDING_A"
    HOLDING_B = "HOLDING_B"
    NONE = "NONE"


class Side(Enum):
    BUY = "buy"
    SELL = "sell"


class PriceSlot(Enum):
    ASSET_A_QUOTE = "asset_a_quote"
    ASSET_B_QUOTE = "asset_b_quote"
    CROSS = "cross_rate"


@dataclass(slots=True)
class BookSnapshot:
    """
    Raw order-book levels for one pair. Only prices are kept,
    sizes are irrelevant for mid-price computation.
    """
    asks: Set[Decimal] = field(default_factory=set)
    bids: Set[Decimal] = field(default_factory=set)


@dataclass(frozen=True, slots=True)
class PriceSnapshot:
    """Consistent read-only copy of the price cache for one decision phase."""
    asset_a_quote: Optional[Decimal] = None
    asset_b_quote: Optional[Decimal] = None
    cross_rate: Optional[Decimal] = None


class PriceCache:
    """
    Three-slot mid-price cache. Slots stay None until the first book for
    that pair arrives. Only the price aggregator writes here.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = PriceSnapshot()

    def update(self, mids: Dict[PriceSlot, Decimal]):
        changes = {slot.value: value for slot, value in mids.items()}
        with self._lock:
            self._snapshot = replace(self._snapshot, **changes)

    def snapshot(self) -> PriceSnapshot:
        with self._lock:
            return self._snapshot


@dataclass(frozen=True, slots=True)
class OrderRecord:
    """
    Reference price future gains are measured against, and whether the
    order that set it has finished filling.
    """
    reference_price: Decimal
    completed: bool


@dataclass(frozen=True, slots=True)
class HopDecision:
    side: Side
    pair: str
    volume: Decimal
    limit_price: Decimal
    position: Position
    gain: Decimal


@dataclass(slots=True)
class OrderDescriptor:
    order_id: str
    description: str
