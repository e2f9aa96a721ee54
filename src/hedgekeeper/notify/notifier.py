"""Outbound text-message sinks."""

from abc import ABC, abstractmethod

import aiohttp

from hedgekeeper.config import NotifierSettings
from hedgekeeper.logging import get_logger

logger = get_logger(__name__)

_TELEGRAM_API = "https://api.telegram.org"
_TELEGRAM_MAX_LENGTH = 4096


class Notifier(ABC):
    """A single named text channel."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Deliver a message. Raises on delivery failure."""
        ...

    async def close(self) -> None:
        """Release transport resources."""


class LogNotifier(Notifier):
    """Writes messages to the log. Used when no chat transport is configured."""

    def __init__(self, channel: str = "arbitrage") -> None:
        self._channel = channel

    async def send(self, text: str) -> None:
        logger.info("notification", channel=self._channel, text=text)


class TelegramNotifier(Notifier):
    """Sends messages through the Telegram Bot API over a shared aiohttp session."""

    def __init__(self, settings: NotifierSettings) -> None:
        self._settings = settings
        self._api_url = f"{_TELEGRAM_API}/bot{settings.telegram_token.get_secret_value()}"
        self._session: aiohttp.ClientSession | None = None

    async def get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout)
            )
        return self._session

    async def send(self, text: str) -> None:
        session = await self.get_session()
        payload = {
            "chat_id": self._settings.chat_id,
            "text": f"[{self._settings.channel}]\n{text}"[:_TELEGRAM_MAX_LENGTH],
        }
        async with session.post(f"{self._api_url}/sendMessage", json=payload) as response:
            response.raise_for_status()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


def build_notifier(settings: NotifierSettings) -> Notifier:
    if settings.telegram_token.get_secret_value() and settings.chat_id:
        return TelegramNotifier(settings)
    logger.warning("telegram_not_configured", channel=settings.channel)
    return LogNotifier(settings.channel)
