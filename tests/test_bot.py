"""
test_bot.py — Platform bot login and the per-call auth session.

Run with:
    pytest tests/test_bot.py -v
"""

from __future__ import annotations

import json

import httpx
import pytest

from alertbot.alerts.auth import AuthSession, AuthState
from alertbot.alerts.bot import PlatformBot
from alertbot.core.config import Settings
from alertbot.core.errors import AuthExpiredError

from fakes import SERVER_URL, FakeBot

AUTH_PATH = "/api/bots/authenticate"


def _make_bot(http_client, **kwargs) -> PlatformBot:
    kwargs.setdefault("api_key", "secret-key")
    return PlatformBot(http_client, server_url=SERVER_URL + "/", bot_id="weatherbot", **kwargs)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: PlatformBot
# ═══════════════════════════════════════════════════════════════════════════

class TestPlatformBot:

    async def test_authenticate_stores_token(self, http_client, platform):
        bot = _make_bot(http_client)

        assert await bot.authenticate() is True
        assert bot.auth_token == "platform-token"

        request = platform.posts(AUTH_PATH)[0]
        assert str(request.url) == f"{SERVER_URL}{AUTH_PATH}"
        assert request.headers["x-api-key"] == "secret-key"
        assert json.loads(request.content) == {"botId": "weatherbot", "apiKey": "secret-key"}

    async def test_no_api_key(self, http_client, platform):
        bot = _make_bot(http_client, api_key=None)

        assert await bot.authenticate() is False
        assert platform.requests == []

    async def test_rejected_login(self, http_client, platform):
        platform.queue(AUTH_PATH, httpx.Response(403, json={"error": "bad key"}))
        bot = _make_bot(http_client, auth_token="old")

        assert await bot.authenticate() is False
        assert bot.auth_token == "old"

    @pytest.mark.parametrize("response", [
        httpx.Response(200, json={"success": False}),
        httpx.Response(200, json={"success": True}),
        httpx.Response(200, json=["token"]),
        httpx.Response(200, text="not json"),
    ])
    async def test_reply_without_token(self, http_client, platform, response):
        platform.queue(AUTH_PATH, response)
        bot = _make_bot(http_client)

        assert await bot.authenticate() is False
        assert bot.auth_token is None

    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as client:
            assert await _make_bot(client).authenticate() is False

    async def test_send_message(self, http_client, platform):
        bot = _make_bot(http_client, auth_token="tok")

        reply = await bot.send_message("Weather bot online", type="status")

        assert reply["success"] is True
        request = platform.posts("/api/messages")[0]
        assert request.headers["Authorization"] == "Bearer tok"
        body = json.loads(request.content)
        assert body["message"] == "Weather bot online"
        assert body["sender"] == "WeatherBot"
        assert body["type"] == "status"

    async def test_send_message_raises_on_error(self, http_client, platform):
        platform.queue("/api/messages", httpx.Response(500))

        with pytest.raises(httpx.HTTPStatusError):
            await _make_bot(http_client).send_message("hello")

    def test_from_settings(self, http_client):
        bot = PlatformBot.from_settings(
            http_client,
            Settings(BOT_ID="storm", BOT_USERNAME="StormBot", BOT_API_KEY="k", BOT_AUTH_TOKEN="t"),
        )
        assert bot.to_dict() == {"bot_id": "storm", "username": "StormBot", "authenticated": True}
        assert bot.api_key == "k"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: AuthSession
# ═══════════════════════════════════════════════════════════════════════════

class TestAuthSession:

    def test_initial_state_follows_token(self):
        assert AuthSession(FakeBot()).state == AuthState.AUTHENTICATED
        assert AuthSession(FakeBot(token=None)).state == AuthState.UNAUTHENTICATED

    async def test_login_when_unauthenticated(self):
        bot = FakeBot(token=None)
        session = AuthSession(bot)

        await session.ensure_authenticated()

        assert session.state == AuthState.AUTHENTICATED
        assert bot.auth_calls == 1

    async def test_refused_login_fails_session(self):
        session = AuthSession(FakeBot(token=None, auth_ok=False))

        with pytest.raises(AuthExpiredError):
            await session.ensure_authenticated()
        assert session.state == AuthState.FAILED

    async def test_raising_authenticate_counts_as_refusal(self):
        class BrokenBot(FakeBot):
            async def authenticate(self):
                raise ConnectionError("platform down")

        session = AuthSession(BrokenBot(token=None))
        with pytest.raises(AuthExpiredError):
            await session.ensure_authenticated()

    def test_begin_send_headers(self):
        session = AuthSession(FakeBot())

        headers = session.begin_send()

        assert headers == {"Authorization": "Bearer token-0", "X-API-Key": "bot-api-key"}
        assert session.state == AuthState.SENDING

    def test_fallback_api_key(self):
        bot = FakeBot()
        bot.api_key = None
        assert AuthSession(bot).begin_send("service-key")["X-API-Key"] == "service-key"

    async def test_single_refresh_per_call(self):
        bot = FakeBot()
        session = AuthSession(bot)
        session.begin_send()

        await session.refresh()
        assert session.state == AuthState.AUTHENTICATED
        session.begin_send()

        with pytest.raises(AuthExpiredError, match="after re-authentication"):
            await session.refresh()
        assert session.state == AuthState.FAILED
        assert bot.auth_calls == 1

    def test_illegal_transition(self):
        session = AuthSession(FakeBot(token=None))
        with pytest.raises(RuntimeError):
            session.begin_send()
