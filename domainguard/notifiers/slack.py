"""Slack webhook notifier for blocked-domain events."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from domainguard.notifiers.dispatcher import (
    EVENT_ACCESS_BLOCKED,
    EVENT_DOMAIN_BLOCKED,
    EVENT_DOMAIN_UNBLOCKED,
)

logger = logging.getLogger(__name__)

# Slack color codes by event
EVENT_COLORS = {
    EVENT_ACCESS_BLOCKED: "#F44336",   # red
    EVENT_DOMAIN_BLOCKED: "#FF9800",   # orange
    EVENT_DOMAIN_UNBLOCKED: "#2196F3",  # blue
}

EVENT_TITLES = {
    EVENT_ACCESS_BLOCKED: "Blocked domain contacted",
    EVENT_DOMAIN_BLOCKED: "Domain blocked",
    EVENT_DOMAIN_UNBLOCKED: "Domain unblocked",
}


@dataclass
class SlackConfig:
    """Configuration for Slack notifier."""
    webhook_url: str
    enabled: bool = True
    events: frozenset[str] = field(default_factory=lambda: frozenset({EVENT_ACCESS_BLOCKED}))


class SlackNotifier:
    """Async Slack webhook notifier.

    Subscribe `handle_event` to an EventEmitter; it is a coroutine, so the
    emitter schedules it without blocking the caller.
    """

    def __init__(self, config: SlackConfig) -> None:
        self.config = config
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=10.0)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _format_message(self, event: str, payload: dict[str, Any]) -> dict:
        """Format an event as Slack message with attachment."""
        fields = [
            {"title": "Domain", "value": f"`{payload.get('domain', '')}`", "short": True},
        ]
        if payload.get("ip"):
            fields.append({"title": "IP", "value": payload["ip"], "short": True})
        if payload.get("ips"):
            fields.append({"title": "IPs", "value": ", ".join(payload["ips"]), "short": False})
        if payload.get("signature"):
            fields.append({"title": "Signature", "value": payload["signature"], "short": False})
        if payload.get("timestamp"):
            fields.append({"title": "Alert time", "value": payload["timestamp"], "short": True})

        attachment = {
            "color": EVENT_COLORS.get(event, "#808080"),
            "title": EVENT_TITLES.get(event, event),
            "fields": fields,
            "footer": "domainguard",
        }
        return {"attachments": [attachment]}

    async def handle_event(self, event: str, payload: dict[str, Any]) -> bool:
        """Send an event to Slack. Returns True if sent successfully."""
        if not self.config.enabled or event not in self.config.events:
            return False

        try:
            client = await self._get_client()
            resp = await client.post(self.config.webhook_url, json=self._format_message(event, payload))

            if resp.status_code == 200:
                logger.debug(f"Slack notification sent for {event}: {payload.get('domain')}")
                return True
            else:
                logger.warning(f"Slack webhook failed: {resp.status_code} - {resp.text}")
                return False

        except httpx.TimeoutException:
            logger.warning("Slack webhook timeout")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Slack webhook error: {e}")
            return False
