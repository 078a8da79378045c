"""
auth.py — Per-call authentication state for the publisher.

A bot token can expire between sends. Each publish call gets a fresh
``AuthSession`` that allows exactly one re-authentication:

    UNAUTHENTICATED ──▶ AUTHENTICATING ──▶ AUTHENTICATED ──▶ SENDING
                              ▲                                 │
                              └──────────── 401 (once) ─────────┘

A second 401, or a refused login, moves the session to FAILED and the
publisher reports the send as failed.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional

from alertbot.alerts.bot import BotHandle
from alertbot.core.errors import AuthExpiredError

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    SENDING = "sending"
    FAILED = "failed"


_TRANSITIONS = {
    AuthState.UNAUTHENTICATED: {AuthState.AUTHENTICATING},
    AuthState.AUTHENTICATING: {AuthState.AUTHENTICATED, AuthState.FAILED},
    AuthState.AUTHENTICATED: {AuthState.SENDING},
    AuthState.SENDING: {AuthState.SENDING, AuthState.AUTHENTICATING, AuthState.FAILED},
    AuthState.FAILED: set(),
}


class AuthSession:
    """Tracks the auth state of one publish call against ``bot``."""

    def __init__(self, bot: BotHandle, max_refreshes: int = 1):
        self.bot = bot
        self.max_refreshes = max_refreshes
        self.refreshes = 0
        self.state = AuthState.AUTHENTICATED if bot.auth_token else AuthState.UNAUTHENTICATED

    def _move(self, new_state: AuthState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal auth transition {self.state.value} → {new_state.value}")
        self.state = new_state

    async def _login(self) -> None:
        self._move(AuthState.AUTHENTICATING)
        try:
            ok = await self.bot.authenticate()
        except Exception as e:
            logger.error("Bot authentication raised: %s", e)
            ok = False

        if not ok or not self.bot.auth_token:
            self._move(AuthState.FAILED)
            raise AuthExpiredError("Bot authentication failed")
        self._move(AuthState.AUTHENTICATED)

    async def ensure_authenticated(self) -> None:
        if self.state == AuthState.UNAUTHENTICATED:
            await self._login()

    def begin_send(self, fallback_api_key: Optional[str] = None) -> Dict[str, str]:
        """Enter SENDING and return the request headers for this attempt."""
        self._move(AuthState.SENDING)
        headers = {"Authorization": f"Bearer {self.bot.auth_token}"}
        api_key = getattr(self.bot, "api_key", None) or fallback_api_key
        if api_key:
            headers["X-API-Key"] = api_key
        return headers

    async def refresh(self) -> None:
        """Handle a 401: re-authenticate once, else raise AuthExpiredError."""
        if self.refreshes >= self.max_refreshes:
            self._move(AuthState.FAILED)
            raise AuthExpiredError("Unauthorized after re-authentication")
        self.refreshes += 1
        logger.info("Chat platform returned 401, re-authenticating bot")
        await self._login()
