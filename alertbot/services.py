"""
Service wiring — builds the alert pipeline from settings.

One ``AlertServices`` instance is created per application (in the FastAPI
lifespan) and stored on ``app.state.services``. Tests build their own with
a mock HTTP transport and in-memory backends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from alertbot.alerts.bot import BotHandle, PlatformBot
from alertbot.alerts.dedup import (
    DeduplicationStore,
    InMemoryDeduplicationStore,
    RedisDeduplicationStore,
)
from alertbot.alerts.dispatcher import AlertDispatcher
from alertbot.alerts.models import Severity
from alertbot.alerts.processor import (
    AlertProcessor,
    FixedThreshold,
    StoredBotThreshold,
    ThresholdProvider,
)
from alertbot.alerts.publisher import AlertPublisher
from alertbot.alerts.rate_limit import RateLimitPolicy, RateLimitState
from alertbot.alerts.store import AlertStore, InMemoryAlertStore
from alertbot.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class AlertServices:
    settings: Settings
    client: httpx.AsyncClient
    rate_limit: RateLimitState
    dedup: DeduplicationStore
    store: AlertStore
    bot: Optional[BotHandle]
    threshold: ThresholdProvider
    publisher: AlertPublisher
    processor: AlertProcessor
    dispatcher: AlertDispatcher

    async def aclose(self, drain_timeout: Optional[float] = 30.0) -> None:
        """Wait for in-flight alerts, then release connections."""
        await self.dispatcher.drain(timeout=drain_timeout)
        if isinstance(self.dedup, RedisDeduplicationStore):
            await self.dedup.close()
        await self.client.aclose()


def build_dedup_store(settings: Settings) -> DeduplicationStore:
    backend = settings.DEDUP_BACKEND.lower()
    if backend == "redis":
        return RedisDeduplicationStore.from_url(
            settings.REDIS_URL,
            ttl_seconds=settings.DEDUP_TTL_SECONDS,
            key_prefix=settings.REDIS_KEY_PREFIX,
        )
    if backend != "memory":
        raise ValueError(f"Unknown DEDUP_BACKEND {settings.DEDUP_BACKEND!r} (memory | redis)")
    logger.warning("Dedup registry is in-memory: processed alert ids are lost on restart")
    return InMemoryDeduplicationStore(ttl_seconds=settings.DEDUP_TTL_SECONDS)


def build_threshold(settings: Settings, store: AlertStore) -> ThresholdProvider:
    configured = Severity.parse(settings.ALERT_MIN_SEVERITY)
    if settings.THRESHOLD_SOURCE == "bot_config":
        return StoredBotThreshold(store, settings.BOT_ID, default=configured)
    return FixedThreshold(configured)


def build_services(
    settings: Settings,
    *,
    client: Optional[httpx.AsyncClient] = None,
    bot: Optional[BotHandle] = None,
    store: Optional[AlertStore] = None,
    dedup: Optional[DeduplicationStore] = None,
    rate_limit: Optional[RateLimitState] = None,
) -> AlertServices:
    """Assemble the pipeline; any component can be injected."""
    client = client or httpx.AsyncClient(timeout=settings.PUBLISH_TIMEOUT_SECONDS)
    store = store if store is not None else InMemoryAlertStore()
    dedup = dedup if dedup is not None else build_dedup_store(settings)
    rate_limit = rate_limit or RateLimitState(RateLimitPolicy.from_settings(settings))
    bot = bot if bot is not None else PlatformBot.from_settings(client, settings)
    threshold = build_threshold(settings, store)

    publisher = AlertPublisher.from_settings(client, rate_limit, settings)
    processor = AlertProcessor(
        publisher,
        dedup,
        threshold,
        store=store,
        distribute_to_subscribers=settings.DISTRIBUTE_TO_SUBSCRIBERS,
        proximity_km=settings.GEOFENCE_PROXIMITY_KM,
    )
    dispatcher = AlertDispatcher(processor, bot)

    return AlertServices(
        settings=settings,
        client=client,
        rate_limit=rate_limit,
        dedup=dedup,
        store=store,
        bot=bot,
        threshold=threshold,
        publisher=publisher,
        processor=processor,
        dispatcher=dispatcher,
    )
