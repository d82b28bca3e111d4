"""
Operational alert delivery.

Two variants share one interface: TelegramNotifier posts to a chat group,
NullNotifier only logs. build_notifier picks one from configuration so the
orchestrator never branches on whether alerts are enabled.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from .config import TelegramConfig

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Receives operational alerts."""

    @abstractmethod
    async def notify(self, message: str) -> None:
        """Deliver an alert. Must not raise on delivery failure."""

    async def close(self) -> None:
        """Release resources held by the notifier."""


class NullNotifier(Notifier):
    """Notifier used when no chat sink is configured."""

    async def notify(self, message: str) -> None:
        logger.debug(f"Alert (no chat sink configured): {message}")


class TelegramNotifier(Notifier):
    """Sends alerts to a Telegram group through the Bot API."""

    API_URL = "https://api.telegram.org"
    MAX_MESSAGE_LENGTH = 4096

    def __init__(
        self,
        token: str,
        group_id: str,
        instance_id: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """
        Args:
            token: Bot API token
            group_id: Chat id of the group receiving alerts
            instance_id: Federator instance id prefixed to every message
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.group_id = group_id
        self.instance_id = instance_id
        self._client = httpx.AsyncClient(
            base_url=f"{self.API_URL}/bot{token}",
            timeout=timeout,
            transport=transport,
        )

    def _format(self, message: str) -> str:
        text = f"[{self.instance_id}] {message}" if self.instance_id else message
        return text[: self.MAX_MESSAGE_LENGTH]

    async def notify(self, message: str) -> None:
        payload = {"chat_id": self.group_id, "text": self._format(message)}
        try:
            response = await self._client.post("/sendMessage", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            # Alert delivery never interferes with relaying
            logger.error(f"Failed to deliver Telegram alert: {e}")
            return
        logger.debug(f"Telegram alert delivered to group {self.group_id}")

    async def close(self) -> None:
        await self._client.aclose()


def build_notifier(telegram: TelegramConfig, instance_id: str = "") -> Notifier:
    """Select the notifier variant from configuration."""
    if telegram.enabled:
        logger.info(f"Telegram alerts enabled for group {telegram.group_id}")
        return TelegramNotifier(telegram.token, telegram.group_id, instance_id=instance_id)
    logger.info("Telegram alerts disabled, using NullNotifier")
    return NullNotifier()
