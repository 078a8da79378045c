"""
bot.py — The bot identity the service posts as.

The pipeline only needs a small handle (``BotHandle``): a username, an
API key, the current auth token, and an ``authenticate()`` coroutine that
refreshes the token. Hosts that already manage a bot object can pass it
in directly; ``PlatformBot`` is the standalone implementation that logs in
against the chat platform's bot endpoint.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class BotHandle(Protocol):
    bot_id: str
    username: str
    api_key: Optional[str]
    auth_token: Optional[str]

    async def authenticate(self) -> bool:
        """Obtain a fresh ``auth_token``; False when the platform refuses."""


class PlatformBot:
    """
    Bot account on the chat platform.

    Authentication:
        POST {server_url}/api/bots/authenticate
        headers  x-api-key: <api_key>
        body     {"botId": ..., "apiKey": ...}
        reply    {"success": true, "token": "..."}
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        server_url: str,
        bot_id: str,
        username: str = "WeatherBot",
        api_key: Optional[str] = None,
        auth_token: Optional[str] = None,
    ):
        self._client = client
        self.server_url = server_url.rstrip("/")
        self.bot_id = bot_id
        self.username = username
        self.api_key = api_key
        self.auth_token = auth_token

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings) -> "PlatformBot":
        return cls(
            client,
            server_url=settings.MAIN_SERVER_URL,
            bot_id=settings.BOT_ID,
            username=settings.BOT_USERNAME,
            api_key=settings.BOT_API_KEY,
            auth_token=settings.BOT_AUTH_TOKEN,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def authenticate(self) -> bool:
        if not self.api_key:
            logger.error("Bot %s has no API key configured, cannot authenticate", self.bot_id)
            return False

        try:
            response = await self._client.post(
                f"{self.server_url}/api/bots/authenticate",
                json={"botId": self.bot_id, "apiKey": self.api_key},
                headers={"x-api-key": self.api_key},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Bot %s authentication rejected: HTTP %d", self.bot_id, e.response.status_code)
            return False
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Bot %s authentication failed: %s", self.bot_id, e)
            return False

        token = data.get("token") if isinstance(data, dict) else None
        if not (token and data.get("success")):
            logger.error("Bot %s authentication returned no token", self.bot_id)
            return False

        self.auth_token = token
        logger.info("Bot %s authenticated", self.bot_id)
        return True

    async def send_message(self, content: str, **fields: Any) -> Dict[str, Any]:
        """Post a plain chat message as the bot (no alert metadata)."""
        payload = {
            "message": content,
            "username": self.username,
            "sender": self.username,
            "isApiMessage": True,
            **fields,
        }
        response = await self._client.post(
            f"{self.server_url}/api/messages",
            json=payload,
            headers=self._headers(),
        )
        response.raise_for_status()
        return response.json()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bot_id": self.bot_id,
            "username": self.username,
            "authenticated": bool(self.auth_token),
        }
