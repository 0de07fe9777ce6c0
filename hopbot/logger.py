# hopbot/logger.py
import asyncio
import logging
import os
import sys
from typing import Any, List, Optional, Sequence

import aiofiles
from aiocsv import AsyncWriter

AUDIT_HEADER = ["timestamp", "event", "side", "pair", "volume", "price", "gain_pct", "order_id", "detail"]


class AsyncAuditLogger:
    """
    Non-blocking CSV audit trail of hops, fills and reverts.
    Disk I/O runs in a background task fed by an asyncio Queue, so the
    control loop never waits on the filesystem.
    """
    def __init__(self, filepath: str, header: Sequence[str] = AUDIT_HEADER):
        self.filepath = filepath
        self.header = list(header)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None

    async def start(self):
        """
        Creates the log file with its header if missing and starts the background writer.
        """
        directory = os.path.dirname(self.filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(self.filepath):
            async with aiofiles.open(self.filepath, mode='w', newline='') as f:
                writer = AsyncWriter(f, dialect='unix')
                await writer.writerow(self.header)
        self._worker_task = asyncio.create_task(self._writer_worker())

    async def log_trade(self, data: List[Any]):
        """Non-blocking call to add a record to the queue."""
        await self._queue.put(data)

    async def flush(self):
        await self._queue.join()

    async def stop(self):
        if self._worker_task:
            await self.flush()
            self._worker_task.cancel()
            self._worker_task = None

    async def _writer_worker(self):
        while True:
            row = await self._queue.get()
            try:
                async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                    writer = AsyncWriter(f, dialect='unix')
                    await writer.writerow(row)
            except OSError as e:
                # Disk trouble must not take the bot down
                print(f"LOGGING FAILURE: {e}", file=sys.stderr)
            finally:
                self._queue.task_done()


def setup_console_logger(name: str, level: str) -> logging.Logger:
    """
    Sets up the standard Python logger for console output.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(module)s | %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
