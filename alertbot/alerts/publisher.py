"""
publisher.py — Deliver formatted alerts to the chat platform.

═══════════════════════════════════════════════════════════════════════════
DELIVERY PIPELINE (one call)
═══════════════════════════════════════════════════════════════════════════

    rate-limit pre-check ── limited ──▶ RATE_LIMITED (no network call)
            │
            ▼
    ┌─ image stage ──────────────────────────────────────────────┐
    │  icon → illustration URL → download to temp file           │
    │  multipart POST  /api/messages/with-image                  │
    │                  /api/messages/direct-with-image (DM)      │
    └────────────────────────────────────────────────────────────┘
            │ SENT ─────────────────────────────────▶ SENT (image)
            │ 429  ─────────────────────────────────▶ RATE_LIMITED
            │ 401 twice / login refused ────────────▶ FAILED
            │ any other failure
            ▼
    ┌─ text stage ───────────────────────────────────────────────┐
    │  JSON POST  /api/messages                                  │
    │             /api/messages/direct (DM)                      │
    └────────────────────────────────────────────────────────────┘
            │ SENT ─────────────────────────────────▶ SENT (text)
            │ 429  ─────────────────────────────────▶ RATE_LIMITED
            └ anything else ────────────────────────▶ FAILED

Stages return a ``StageResult`` instead of raising; only the publisher
decides what a result means. A 401 from either stage triggers one
re-authentication and one retry of that same stage (see ``auth.py``).
The downloaded image is deleted on every exit path.

Bulk sends are sequential and stop at the first RATE_LIMITED result, since
the limit applies to the bot as a whole.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import os
import tempfile
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Sequence, Tuple

import httpx

from alertbot.alerts.auth import AuthSession
from alertbot.alerts.bot import BotHandle
from alertbot.alerts.icons import get_icon_image_url
from alertbot.alerts.models import (
    BulkPublishResult,
    DeliveryPath,
    FormattedAlert,
    PublishResult,
    PublishStatus,
    RecipientResult,
    Subscriber,
)
from alertbot.alerts.rate_limit import RateLimitState
from alertbot.core.errors import AssetFetchError, AuthExpiredError
from alertbot.spatial.geodesy import GeoPoint

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = GeoPoint(latitude=40.7128, longitude=-74.0060)


# ═══════════════════════════════════════════════════════════════════════════
# Stage results & destinations
# ═══════════════════════════════════════════════════════════════════════════

class StageStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"


@dataclass
class StageResult:
    status: StageStatus
    data: Any = None
    error: Optional[str] = None
    retry_after: Optional[str] = None  # raw Retry-After header


@dataclass(frozen=True)
class Destination:
    """The shared channel (no recipient) or one user's direct messages."""
    recipient_id: Optional[str] = None
    location: Optional[GeoPoint] = None

    @property
    def is_direct(self) -> bool:
        return self.recipient_id is not None

    @property
    def image_path(self) -> str:
        return "/api/messages/direct-with-image" if self.is_direct else "/api/messages/with-image"

    @property
    def text_path(self) -> str:
        return "/api/messages/direct" if self.is_direct else "/api/messages"

    @property
    def label(self) -> str:
        return f"user {self.recipient_id}" if self.is_direct else "channel"


CHANNEL = Destination()

Stage = Callable[[FormattedAlert, BotHandle, Destination, AuthSession], Awaitable[StageResult]]


def _correlation_id(direct: bool) -> str:
    kind = "weatherbot_dm" if direct else "weatherbot"
    return f"{kind}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _classify(response: httpx.Response) -> StageResult:
    """Map an HTTP response onto a stage result."""
    status = response.status_code
    if status == 401:
        return StageResult(StageStatus.UNAUTHORIZED, error="HTTP 401 Unauthorized")
    if status == 429:
        return StageResult(
            StageStatus.RATE_LIMITED,
            error="HTTP 429 Too Many Requests",
            retry_after=response.headers.get("Retry-After"),
        )
    if 200 <= status < 300:
        try:
            data = response.json()
        except ValueError:
            data = response.text or None
        return StageResult(StageStatus.SENT, data=data)
    return StageResult(StageStatus.FAILED, error=f"HTTP {status}: {response.text[:200]}")


def _form_value(value: Any) -> str:
    """Multipart fields are strings; nested objects travel as JSON."""
    if isinstance(value, dict):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


_IMAGE_SUFFIXES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def _media_type(header: str) -> str:
    """``"image/JPEG; charset=binary"`` → ``"image/jpeg"``"""
    return header.split(";", 1)[0].strip().lower()


def _image_suffix(content_type: str) -> str:
    return _IMAGE_SUFFIXES.get(content_type) or mimetypes.guess_extension(content_type) or ".img"


def _remove_temp_file(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not delete temp image %s: %s", path, e)


# ═══════════════════════════════════════════════════════════════════════════
# Publisher
# ═══════════════════════════════════════════════════════════════════════════

class AlertPublisher:
    """
    Sends alerts to the chat platform with image → text fallback.

    Parameters
    ----------
    client : httpx.AsyncClient
        Shared HTTP client (owned by the caller).
    rate_limit : RateLimitState
        Back-off state shared by every send.
    server_url : str
        Chat platform base URL.
    api_key : str, optional
        Sent as ``X-API-Key`` when the bot handle has no key of its own.
    default_location : GeoPoint
        Used when neither the subscriber nor the alert has coordinates.
    temp_dir : str, optional
        Where downloaded images are written (system temp dir by default).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        rate_limit: RateLimitState,
        *,
        server_url: str,
        api_key: Optional[str] = None,
        default_location: GeoPoint = DEFAULT_LOCATION,
        temp_dir: Optional[str] = None,
    ):
        self._client = client
        self.rate_limit = rate_limit
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key
        self.default_location = default_location
        self.temp_dir = temp_dir

    @classmethod
    def from_settings(
        cls, client: httpx.AsyncClient, rate_limit: RateLimitState, settings,
    ) -> "AlertPublisher":
        return cls(
            client,
            rate_limit,
            server_url=settings.MAIN_SERVER_URL,
            api_key=settings.BOT_API_KEY,
            default_location=GeoPoint(settings.DEFAULT_LATITUDE, settings.DEFAULT_LONGITUDE),
            temp_dir=settings.IMAGE_TEMP_DIR,
        )

    # ── public API ──

    async def publish_to_channel(self, alert: FormattedAlert, bot: BotHandle) -> PublishResult:
        """Post an alert to the shared channel."""
        return await self._publish(alert, bot, CHANNEL)

    async def publish_to_user(
        self, alert: FormattedAlert, subscriber: Subscriber, bot: BotHandle,
    ) -> PublishResult:
        """Send an alert as a direct message, located at the subscriber."""
        destination = Destination(recipient_id=subscriber.user_id, location=subscriber.location)
        return await self._publish(alert, bot, destination)

    async def publish_to_users(
        self, alert: FormattedAlert, subscribers: Sequence[Subscriber], bot: BotHandle,
    ) -> BulkPublishResult:
        """
        Direct-message every subscriber, one at a time.

        Stops at the first rate-limited send; that subscriber counts as
        failed and the rest are not attempted (``not_attempted``).
        """
        if not subscribers:
            return BulkPublishResult(error="No subscribers provided")

        tally = BulkPublishResult(total=len(subscribers))
        for subscriber in subscribers:
            result = await self.publish_to_user(alert, subscriber, bot)
            tally.details.append(
                RecipientResult(user_id=subscriber.user_id, success=result.success, error=result.error)
            )
            if result.success:
                tally.sent += 1
                continue

            tally.failed += 1
            if result.rate_limited:
                tally.rate_limited = True
                tally.retry_after = result.retry_after_seconds
                logger.warning(
                    "Bulk send for alert %s stopped by rate limit: %d sent, %d not attempted",
                    alert.alert_id, tally.sent, tally.not_attempted,
                    extra={"alert_id": alert.alert_id},
                )
                break

        logger.info(
            "Bulk send for alert %s: %d/%d sent, %d failed",
            alert.alert_id, tally.sent, tally.total, tally.failed,
            extra={"alert_id": alert.alert_id},
        )
        return tally

    # ── pipeline ──

    async def _publish(
        self, alert: FormattedAlert, bot: BotHandle, destination: Destination,
    ) -> PublishResult:
        remaining = self.rate_limit.remaining_seconds()
        if remaining > 0:
            logger.info(
                "Skipping send to %s for alert %s, rate limited for another %ds",
                destination.label, alert.alert_id, remaining,
            )
            return PublishResult(
                PublishStatus.RATE_LIMITED,
                alert_id=alert.alert_id,
                error="Rate limited",
                retry_after_seconds=remaining,
            )

        session = AuthSession(bot)
        try:
            await session.ensure_authenticated()
        except AuthExpiredError as e:
            return PublishResult(PublishStatus.FAILED, alert_id=alert.alert_id, error=e.message)

        image = await self._run_stage(self._send_with_image, alert, bot, destination, session)
        if image.status == StageStatus.SENT:
            return self._sent(alert, destination, DeliveryPath.IMAGE, image)
        if image.status == StageStatus.RATE_LIMITED:
            return self._rate_limited(alert, image)
        if image.status == StageStatus.UNAUTHORIZED:
            return PublishResult(PublishStatus.FAILED, alert_id=alert.alert_id, error=image.error)

        logger.warning(
            "Image post to %s failed for alert %s (%s), falling back to text",
            destination.label, alert.alert_id, image.error,
            extra={"alert_id": alert.alert_id},
        )

        text = await self._run_stage(self._send_text, alert, bot, destination, session)
        if text.status == StageStatus.SENT:
            return self._sent(alert, destination, DeliveryPath.TEXT, text)
        if text.status == StageStatus.RATE_LIMITED:
            return self._rate_limited(alert, text)

        error = f"Image post failed ({image.error}); text post failed ({text.error})"
        logger.error(
            "Could not publish alert %s to %s: %s", alert.alert_id, destination.label, error,
            extra={"alert_id": alert.alert_id},
        )
        return PublishResult(PublishStatus.FAILED, alert_id=alert.alert_id, error=error)

    async def _run_stage(
        self,
        stage: Stage,
        alert: FormattedAlert,
        bot: BotHandle,
        destination: Destination,
        session: AuthSession,
    ) -> StageResult:
        """Run a stage, re-authenticating and retrying it once on 401."""
        result = await stage(alert, bot, destination, session)
        while result.status == StageStatus.UNAUTHORIZED:
            try:
                await session.refresh()
            except AuthExpiredError as e:
                return StageResult(StageStatus.UNAUTHORIZED, error=e.message)
            result = await stage(alert, bot, destination, session)
        return result

    def _sent(
        self, alert: FormattedAlert, destination: Destination, path: DeliveryPath, stage: StageResult,
    ) -> PublishResult:
        self.rate_limit.record_success()
        logger.info(
            "Published alert %s to %s via %s post",
            alert.alert_id, destination.label, path.value,
            extra={"alert_id": alert.alert_id, "delivery": path.value},
        )
        return PublishResult(PublishStatus.SENT, alert_id=alert.alert_id, delivery=path, data=stage.data)

    def _rate_limited(self, alert: FormattedAlert, stage: StageResult) -> PublishResult:
        window_ms = self.rate_limit.record_rate_limit(stage.retry_after)
        return PublishResult(
            PublishStatus.RATE_LIMITED,
            alert_id=alert.alert_id,
            error="Rate limited",
            retry_after_seconds=(window_ms + 999) // 1000,
        )

    # ── payload ──

    def _message_fields(
        self, alert: FormattedAlert, bot: BotHandle, destination: Destination,
    ) -> Dict[str, Any]:
        location = destination.location or alert.coordinates or self.default_location
        fields: Dict[str, Any] = {
            "message": alert.content,
            "title": alert.title,
            "socketId": _correlation_id(destination.is_direct),
            "username": bot.username,
            "senderUsername": bot.username,
            "sender": bot.username,
            "alertId": alert.alert_id,
            "severity": alert.severity,
            "urgency": alert.urgency,
            "certainty": alert.certainty,
            "source": alert.source or "",
            "type": "alert",
            "isApiMessage": True,
            "location": {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "fuzzyLocation": True,
            },
        }
        if destination.is_direct:
            fields["recipientId"] = destination.recipient_id
        return fields

    # ── image stage ──

    @asynccontextmanager
    async def _downloaded_image(self, url: str) -> AsyncIterator[Tuple[str, str]]:
        """
        Download ``url`` to a temp file that is removed on exit.

        Yields ``(path, content_type)``. Transport and filesystem errors
        surface as ``AssetFetchError``.
        """
        path: Optional[str] = None
        try:
            try:
                async with self._client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise AssetFetchError(url, f"HTTP {response.status_code}")
                    content_type = _media_type(response.headers.get("content-type", ""))
                    if not content_type.startswith("image/"):
                        raise AssetFetchError(url, f"unexpected content type {content_type!r}")
                    fd, path = tempfile.mkstemp(
                        prefix="weather_alert_", suffix=_image_suffix(content_type), dir=self.temp_dir,
                    )
                    with os.fdopen(fd, "wb") as fh:
                        async for chunk in response.aiter_bytes():
                            fh.write(chunk)
            except (httpx.HTTPError, OSError) as e:
                raise AssetFetchError(url, f"{type(e).__name__}: {e}") from e
            yield path, content_type
        finally:
            if path is not None:
                _remove_temp_file(path)

    async def _send_with_image(
        self, alert: FormattedAlert, bot: BotHandle, destination: Destination, session: AuthSession,
    ) -> StageResult:
        url = get_icon_image_url(alert.icon)
        fields = self._message_fields(alert, bot, destination)
        form = {key: _form_value(value) for key, value in fields.items()}

        try:
            async with self._downloaded_image(url) as (image_path, content_type):
                with open(image_path, "rb") as fh:
                    response = await self._client.post(
                        f"{self.server_url}{destination.image_path}",
                        data=form,
                        files={"image": (os.path.basename(image_path), fh, content_type)},
                        headers=session.begin_send(self.api_key),
                    )
        except AssetFetchError as e:
            return StageResult(StageStatus.FAILED, error=e.message)
        except httpx.HTTPError as e:
            return StageResult(StageStatus.FAILED, error=f"{type(e).__name__}: {e}")
        except OSError as e:
            return StageResult(StageStatus.FAILED, error=f"Could not read image: {e}")

        return _classify(response)

    # ── text stage ──

    async def _send_text(
        self, alert: FormattedAlert, bot: BotHandle, destination: Destination, session: AuthSession,
    ) -> StageResult:
        try:
            response = await self._client.post(
                f"{self.server_url}{destination.text_path}",
                json=self._message_fields(alert, bot, destination),
                headers=session.begin_send(self.api_key),
            )
        except httpx.HTTPError as e:
            return StageResult(StageStatus.FAILED, error=f"{type(e).__name__}: {e}")

        return _classify(response)
