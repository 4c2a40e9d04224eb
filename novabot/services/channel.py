"""Outbound delivery of replies to the Bot Framework channel."""

import time
from typing import Any, Protocol

import httpx
import structlog

from novabot.core.settings import ChannelConfig
from novabot.schemas.activity_schema import Activity
from novabot.services.cards import as_attachment

logger = structlog.get_logger()

CONNECTOR_SCOPE = "https://api.botframework.com/.default"

# Refresh the connector token this long before it expires
TOKEN_REFRESH_MARGIN_SECONDS = 300


class ChannelAdapter(Protocol):
    """Where a turn's replies go."""

    async def send_text(self, text: str) -> None: ...

    async def send_card(self, card: dict[str, Any], text: str | None = None) -> None: ...

    async def send_typing(self) -> None: ...


class ActivityCollector:
    """Buffers replies to return them in the HTTP response body.

    Used for ``deliveryMode: expectReplies`` requests and in tests.
    """

    def __init__(self, inbound: Activity) -> None:
        self._inbound = inbound
        self.activities: list[dict[str, Any]] = []

    @property
    def texts(self) -> list[str]:
        return [a["text"] for a in self.activities if a.get("text")]

    @property
    def cards(self) -> list[dict[str, Any]]:
        return [
            attachment["content"]
            for a in self.activities
            for attachment in a.get("attachments", [])
        ]

    async def send_text(self, text: str) -> None:
        self.activities.append(self._inbound.reply(text=text, textFormat="markdown"))

    async def send_card(self, card: dict[str, Any], text: str | None = None) -> None:
        self.activities.append(
            self._inbound.reply(text=text, attachments=[as_attachment(card)])
        )

    async def send_typing(self) -> None:
        self.activities.append(self._inbound.reply(type="typing"))


class ConnectorClient:
    """Posts activities to the channel's connector service.

    Outbound calls carry a client-credentials token for the bot's app id,
    cached until shortly before it expires. Without an app id (local
    emulator) requests go out unauthenticated.
    """

    def __init__(
        self,
        config: ChannelConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_activity(self, inbound: Activity, activity: dict[str, Any]) -> None:
        """Send ``activity`` as a reply in ``inbound``'s conversation."""
        if not inbound.service_url or inbound.conversation is None:
            logger.warning("Cannot reply to activity without service URL or conversation")
            return

        url = (
            f"{inbound.service_url.rstrip('/')}/v3/conversations/"
            f"{inbound.conversation.id}/activities"
        )
        if inbound.id:
            url = f"{url}/{inbound.id}"

        headers = {}
        token = await self._get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = await self._client.post(
            url,
            json=activity,
            headers=headers,
            timeout=self._config.timeout_seconds,
        )
        response.raise_for_status()

    async def _get_token(self) -> str | None:
        if not self._config.is_configured:
            return None
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        response = await self._client.post(
            self._config.token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self._config.app_id,
                "client_secret": self._config.app_password.get_secret_value(),
                "scope": CONNECTOR_SCOPE,
            },
            timeout=self._config.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        self._token = payload["access_token"]
        lifetime = int(payload.get("expires_in", 3600))
        self._token_expires_at = (
            time.monotonic() + max(lifetime - TOKEN_REFRESH_MARGIN_SECONDS, 60)
        )
        logger.debug("Connector token refreshed", expires_in=lifetime)
        return self._token


class ConnectorChannelAdapter:
    """Sends each reply immediately through the connector service."""

    def __init__(self, connector: ConnectorClient, inbound: Activity) -> None:
        self._connector = connector
        self._inbound = inbound

    async def send_text(self, text: str) -> None:
        await self._send(self._inbound.reply(text=text, textFormat="markdown"))

    async def send_card(self, card: dict[str, Any], text: str | None = None) -> None:
        await self._send(self._inbound.reply(text=text, attachments=[as_attachment(card)]))

    async def send_typing(self) -> None:
        await self._send(self._inbound.reply(type="typing"))

    async def _send(self, activity: dict[str, Any]) -> None:
        try:
            await self._connector.post_activity(self._inbound, activity)
        except (httpx.HTTPError, KeyError, ValueError):
            logger.exception(
                "Failed to deliver activity",
                activity_type=activity.get("type"),
                conversation_id=self._inbound.conversation.id
                if self._inbound.conversation
                else None,
            )
