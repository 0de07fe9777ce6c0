# hopbot/websocket_engine.py
import asyncio
import json
from decimal import Decimal
from typing import Dict, List, Optional

import aiohttp

from .models import BookSnapshot

KRAKEN_WS_URL = "wss://ws.kraken.com"


class KrakenBookStream:
    """
    Level-2 book subscription for a handful of pairs.

    Keeps `depth` price levels per side and pair. Snapshots arrive as
    {"as": [...], "bs": [...]}, updates as {"a": [...]} and/or {"b": [...]};
    each level is [price, volume, timestamp, ...] and a zero volume removes
    the level. Once the socket ends the stream reports itself closed; a new
    session needs a new instance.
    """
    def __init__(self, pairs: List[str], depth: int, logger, url: str = KRAKEN_WS_URL):
        self.pairs = list(pairs)
        self.depth = depth
        self.logger = logger
        self.url = url
        # { 'ETH/XBT': {'asks': {price: volume}, 'bids': {price: volume}} }
        self.books: Dict[str, Dict[str, Dict[Decimal, Decimal]]] = {
            p: {'asks': {}, 'bids': {}} for p in self.pairs
        }
        self._closed = False
        self._session: Optional[aiohttp.ClientSession] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        self._session = aiohttp.ClientSession()
        self.logger.info(f"⚡ SUBSCRIBING TO {len(self.pairs)} BOOKS (depth {self.depth})...")
        self._task = asyncio.create_task(self._run())

    async def _run(self):
        try:
            async with self._session.ws_connect(self.url, heartbeat=30) as ws:
                await ws.send_json({
                    "event": "subscribe",
                    "pair": self.pairs,
                    "subscription": {"name": "book", "depth": self.depth},
                })
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self.handle_message(json.loads(msg.data))
                    elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                        break
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"WS Error: {e}")
        except (ValueError, ArithmeticError, IndexError, KeyError, TypeError) as e:
            self.logger.error(f"Malformed book message, closing stream: {e!r}")
        finally:
            self._closed = True

    def handle_message(self, data):
        if isinstance(data, dict):
            # Event messages: heartbeat, systemStatus, subscriptionStatus
            if data.get('event') == 'subscriptionStatus' and data.get('status') == 'error':
                self.logger.error(f"Subscription rejected: {data.get('errorMessage')}")
            return
        if not isinstance(data, list) or len(data) < 4:
            return

        pair = data[-1]
        book = self.books.get(pair)
        if book is None:
            return

        for payload in data[1:-2]:
            if not isinstance(payload, dict):
                continue
            if 'as' in payload or 'bs' in payload:
                book['asks'].clear()
                book['bids'].clear()
                self._apply(book['asks'], payload.get('as', []))
                self._apply(book['bids'], payload.get('bs', []))
            self._apply(book['asks'], payload.get('a', []))
            self._apply(book['bids'], payload.get('b', []))

        self._truncate(book['asks'], reverse=False)
        self._truncate(book['bids'], reverse=True)

    @staticmethod
    def _apply(side: Dict[Decimal, Decimal], levels):
        for level in levels:
            price, volume = Decimal(level[0]), Decimal(level[1])
            if volume == 0:
                side.pop(price, None)
            else:
                side[price] = volume

    def _truncate(self, side: Dict[Decimal, Decimal], reverse: bool):
        if len(side) <= self.depth:
            return
        for price in sorted(side, reverse=reverse)[self.depth:]:
            del side[price]

    def get_all_books(self) -> Dict[str, BookSnapshot]:
        """Copy of the current books, only pairs that have received data."""
        return {
            pair: BookSnapshot(asks=set(book['asks']), bids=set(book['bids']))
            for pair, book in self.books.items()
            if book['asks'] or book['bids']
        }

    def stream_closed(self) -> bool:
        return self._closed

    async def shutdown(self):
        self._closed = True
        if self._task:
            self._task.cancel()
        if self._session:
            await self._session.close()
