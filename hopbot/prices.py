# hopbot/prices.py
from decimal import Decimal
from typing import Dict, Mapping

from .errors import EmptyBookError
from .models import BookSnapshot, PriceCache, PriceSlot

TWO = Decimal(2)


def mid_price(pair: str, book: BookSnapshot) -> Decimal:
    """(best ask + best bid) / 2. An empty side means the snapshot is unusable."""
    if not book.asks:
        raise EmptyBookError(pair, "asks")
    if not book.bids:
        raise EmptyBookError(pair, "bids")
    return (min(book.asks) + max(book.bids)) / TWO


class PriceAggregator:
    """
    Turns order-book snapshots into mid prices and writes them into the cache.
    Pair ids that are not one of the three configured books are ignored.
    """
    def __init__(self, cache: PriceCache, pair_slots: Mapping[str, PriceSlot]):
        self.cache = cache
        self.pair_slots = dict(pair_slots)

    @classmethod
    def from_config(cls, cache: PriceCache, config: dict) -> "PriceAggregator":
        books = config['market']['books']
        return cls(cache, {
            books['asset_a_quote']: PriceSlot.ASSET_A_QUOTE,
            books['asset_b_quote']: PriceSlot.ASSET_B_QUOTE,
            books['cross']: PriceSlot.CROSS,
        })

    def compute(self, books: Mapping[str, BookSnapshot]) -> Dict[PriceSlot, Decimal]:
        mids: Dict[PriceSlot, Decimal] = {}
        for pair, book in books.items():
            slot = self.pair_slots.get(pair)
            if slot is None:
                continue
            mids[slot] = mid_price(pair, book)
        return mids

    def update(self, books: Mapping[str, BookSnapshot]) -> Dict[PriceSlot, Decimal]:
        # All mids are computed before anything is written, so a bad book
        # leaves the cache exactly as it was.
        mids = self.compute(books)
        if mids:
            self.cache.update(mids)
        return mids
