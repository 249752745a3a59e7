"""Notification channels — log, generic webhook and Discord delivery."""

from __future__ import annotations

import abc

import aiohttp
import structlog

from src.core.config import DiscordConfig, WebhookConfig
from src.monitor.types import AlertMessage, Severity

logger = structlog.get_logger(__name__)

# Discord embed colours keyed by severity.
_DISCORD_COLORS: dict[Severity, int] = {
    Severity.DEBUG: 0x95A5A6,    # grey
    Severity.INFO: 0x2ECC71,     # green
    Severity.WARNING: 0xF39C12,  # orange
    Severity.CRITICAL: 0xE74C3C, # red
}

_LOG_METHODS: dict[Severity, str] = {
    Severity.DEBUG: "debug",
    Severity.INFO: "info",
    Severity.WARNING: "warning",
    Severity.CRITICAL: "critical",
}


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> bool:
        """Send an alert message. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class LogChannel(NotificationChannel):
    """Writes alerts to the ``alerts`` structlog logger at a matching level."""

    def __init__(self, logger_name: str = "alerts") -> None:
        self._logger = structlog.get_logger(logger_name)

    async def send(self, msg: AlertMessage) -> bool:
        log = getattr(self._logger, _LOG_METHODS.get(msg.severity, "info"))
        log(
            "alert",
            severity=msg.severity.name,
            title=msg.title,
            body=msg.body,
            source_event_type=msg.source_event_type,
            fields=msg.fields,
        )
        return True

    async def close(self) -> None:
        return None


class WebhookChannel(NotificationChannel):
    """POSTs alerts as JSON to a generic webhook (error-tracking service, etc.)."""

    def __init__(self, config: WebhookConfig) -> None:
        self._url = config.url.get_secret_value()
        self._headers = dict(config.headers)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers)
        return self._session

    async def send(self, msg: AlertMessage) -> bool:
        payload = {
            "severity": msg.severity.name,
            "title": msg.title,
            "body": msg.body,
            "fields": msg.fields,
            "source_event_type": msg.source_event_type,
            "timestamp": msg.timestamp,
            "raw": msg.raw,
        }

        try:
            session = self._get_session()
            async with session.post(self._url, json=payload) as resp:
                if 200 <= resp.status < 300:
                    return True
                body = await resp.text()
                logger.warning(
                    "webhook_send_failed",
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("webhook_send_error")
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class DiscordChannel(NotificationChannel):
    """Delivers alerts via a Discord webhook with colour-coded embeds."""

    def __init__(self, config: DiscordConfig) -> None:
        self._webhook_url = config.webhook_url.get_secret_value()
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def build_payload(self, msg: AlertMessage) -> dict:
        embed: dict = {
            "title": f"[{msg.severity.name}] {msg.title}",
            "color": _DISCORD_COLORS.get(msg.severity, 0x95A5A6),
        }
        if msg.body:
            embed["description"] = msg.body
        if msg.fields:
            # Discord caps embeds at 25 fields.
            embed["fields"] = [
                {"name": k, "value": v or "-", "inline": True}
                for k, v in list(msg.fields.items())[:25]
            ]
        return {"embeds": [embed]}

    async def send(self, msg: AlertMessage) -> bool:
        payload = self.build_payload(msg)
        try:
            session = self._get_session()
            async with session.post(self._webhook_url, json=payload) as resp:
                if resp.status in (200, 204):
                    return True
                body = await resp.text()
                logger.warning(
                    "discord_send_failed",
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("discord_send_error")
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
