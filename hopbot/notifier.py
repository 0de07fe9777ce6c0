# hopbot/notifier.py
import asyncio
import logging
import re
from html import escape
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

TELEGRAM_API_BASE_URL = "https://api.telegram.org/bot{token}"

HELP_TEXT = (
    "These commands are supported:\n"
    "/id - show this chat's id\n"
    "/balance - balance with quote values\n"
    "/price - prices and current gain\n"
    "/abort - cancel open orders and revert the last order\n"
    "/help - display this text"
)

_TAGS = re.compile(r"<[^>]+>")


class Notifier(Protocol):
    async def send(self, message: str) -> bool: ...


class ControlSurface(Protocol):
    """What the sidecar may ask of the bot."""
    async def status_message(self) -> str: ...

    async def balance_message(self) -> str: ...

    async def revert_message(self) -> str: ...


class LogNotifier:
    """Used when no chat is configured: notifications end up in the log."""
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    async def send(self, message: str) -> bool:
        self.logger.info(f"NOTIFY: {_TAGS.sub('', message)}")
        return True


class TelegramNotifier:
    """
    Chat sidecar over the Telegram Bot API.

    Outbound messages go to the report chat. Inbound commands are read with
    getUpdates long polling; anything not coming from the report chat is
    ignored except /id, which is how the chat id is discovered.
    Send failures are logged and never propagate into the trading loop.
    """
    def __init__(self, token: str, report_chat_id: int, logger: logging.Logger,
                 poll_timeout: int = 30, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = TELEGRAM_API_BASE_URL.format(token=token)
        self.report_chat_id = int(report_chat_id)
        self.logger = logger
        self.poll_timeout = poll_timeout
        self._session = session
        self._offset: Optional[int] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.poll_timeout + 10)
            )
        return self._session

    async def send(self, message: str, chat_id: Optional[int] = None) -> bool:
        data = {
            'chat_id': chat_id if chat_id is not None else self.report_chat_id,
            'text': message,
            'parse_mode': 'HTML',
        }
        try:
            session = await self._get_session()
            async with session.post(f"{self.base_url}/sendMessage", data=data) as response:
                if response.status == 200:
                    self.logger.debug(f"Sent message to {data['chat_id']}")
                    return True
                self.logger.warning(f"Telegram API returned status {response.status}: {await response.text()}")
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.warning(f"Error sending message: {e}")
            return False

    async def get_updates(self) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {'timeout': self.poll_timeout, 'allowed_updates': '["message"]'}
        if self._offset is not None:
            params['offset'] = self._offset
        session = await self._get_session()
        async with session.get(f"{self.base_url}/getUpdates", params=params) as response:
            payload = await response.json()
        if not payload.get('ok'):
            raise aiohttp.ClientError(f"getUpdates failed: {payload.get('description')}")

        updates = payload.get('result') or []
        if updates:
            self._offset = max(u['update_id'] for u in updates) + 1
        return updates

    async def handle_update(self, update: Dict[str, Any], control: ControlSurface) -> Optional[str]:
        message = update.get('message') or {}
        text = (message.get('text') or "").strip()
        chat_id = (message.get('chat') or {}).get('id')
        if not text.startswith('/') or chat_id is None:
            return None

        # "/price@my_bot arg" -> "/price"
        command = text.split()[0].split('@')[0].lower()

        if command == '/id':
            reply = escape(f"Your chat id: {chat_id}")
            await self.send(reply, chat_id=chat_id)
            return reply

        if int(chat_id) != self.report_chat_id:
            self.logger.warning(f"Ignoring {command} from unknown chat {chat_id}")
            return None

        if command == '/balance':
            reply = await control.balance_message()
        elif command == '/price':
            reply = await control.status_message()
        elif command == '/abort':
            reply = await control.revert_message()
        elif command in ('/help', '/start'):
            reply = escape(HELP_TEXT)
        else:
            reply = escape(f"Unknown command {command}\n\n{HELP_TEXT}")

        await self.send(reply)
        return reply

    async def run_commands(self, control: ControlSurface):
        """Sidecar task: answers commands until cancelled."""
        self.logger.info("Chat command listener started")
        while True:
            try:
                updates = await self.get_updates()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                self.logger.warning(f"Polling chat updates failed: {e}")
                await asyncio.sleep(5)
                continue

            for update in updates:
                try:
                    await self.handle_update(update, control)
                except Exception:
                    # One broken command must not silence the listener
                    self.logger.exception(f"Handling chat update {update.get('update_id')} failed")

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
