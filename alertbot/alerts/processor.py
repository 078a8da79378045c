"""
processor.py — Gate, format and publish one inbound alert.

═══════════════════════════════════════════════════════════════════════════
PIPELINE
═══════════════════════════════════════════════════════════════════════════

    validate alert.id ─────────── missing ──▶ ValidationError
    bot handle present? ────────── no ──────▶ FAILED
    dedup.reserve(id) ──────────── taken ───▶ ALREADY_PROCESSED
    severity ≥ threshold? ──────── no ──────▶ SKIPPED_SEVERITY   (release)
    format
    authenticate bot (no token)
    publish to channel ─────────── failed ──▶ PUBLISH_FAILED     (release)
    dedup.commit(id) ─────────────────────▶ PUBLISHED
        └─ optional: direct-message geofenced subscribers

Releasing the reservation on skip / failure lets a later delivery of the
same alert (for example after the threshold is lowered, or once the rate
limit has passed) go through. Only a successful channel post commits the
id permanently.

Severity ladder: Extreme(4) > Severe(3) > Moderate(2) > Minor(1) > Unknown(0).
An alert passes when its level is greater than or equal to the threshold.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Protocol, Union

from alertbot.alerts.bot import BotHandle
from alertbot.alerts.dedup import DeduplicationStore
from alertbot.alerts.formatter import format_alert_for_posting
from alertbot.alerts.models import (
    BatchOutcome,
    BulkPublishResult,
    FormattedAlert,
    ProcessOutcome,
    ProcessStatus,
    Severity,
)
from alertbot.alerts.publisher import AlertPublisher
from alertbot.alerts.store import AlertStore
from alertbot.alerts.targeting import filter_subscribers_by_geofence
from alertbot.core.errors import ValidationError
from alertbot.core.logging_config import log_context

logger = logging.getLogger(__name__)

DEFAULT_MIN_SEVERITY = Severity.MODERATE


def extract_alert_id(alert_data: Any) -> str:
    """Return ``alert.id`` or raise ValidationError."""
    if not isinstance(alert_data, dict):
        raise ValidationError("Invalid alert data")
    alert = alert_data.get("alert")
    if not isinstance(alert, dict) or not alert.get("id"):
        raise ValidationError("Invalid alert data", field="alert.id")
    return str(alert["id"])


# ═══════════════════════════════════════════════════════════════════════════
# Severity thresholds
# ═══════════════════════════════════════════════════════════════════════════

class ThresholdProvider(Protocol):
    async def get_threshold(self) -> Severity: ...


class FixedThreshold:
    """A threshold set once from configuration."""

    def __init__(self, severity: Union[Severity, str] = DEFAULT_MIN_SEVERITY):
        self.severity = Severity.parse(severity)

    async def get_threshold(self) -> Severity:
        return self.severity


class StoredBotThreshold:
    """Reads ``minSeverity`` from the bot's stored configuration on each alert."""

    def __init__(self, store: AlertStore, bot_id: str, default: Severity = DEFAULT_MIN_SEVERITY):
        self.store = store
        self.bot_id = bot_id
        self.default = default

    async def get_threshold(self) -> Severity:
        config = await self.store.get_bot_config(self.bot_id)
        value = config.get("minSeverity") if config else None
        return Severity.parse(value) if value else self.default


# ═══════════════════════════════════════════════════════════════════════════
# Processor
# ═══════════════════════════════════════════════════════════════════════════

class AlertProcessor:
    """
    Runs alerts through dedup, severity gate, formatter and publisher.

    Parameters
    ----------
    publisher : AlertPublisher
    dedup : DeduplicationStore
        Registry of handled alert ids.
    threshold : ThresholdProvider, optional
        Minimum severity; defaults to a fixed Moderate.
    store : AlertStore, optional
        When given, alerts are recorded and subscribers can be loaded.
    distribute_to_subscribers : bool
        Also direct-message subscribers inside the alert area (needs store).
    proximity_km : float, optional
        Include subscribers this close to the alert boundary.
    """

    def __init__(
        self,
        publisher: AlertPublisher,
        dedup: DeduplicationStore,
        threshold: Optional[ThresholdProvider] = None,
        *,
        store: Optional[AlertStore] = None,
        distribute_to_subscribers: bool = False,
        proximity_km: Optional[float] = None,
    ):
        self.publisher = publisher
        self.dedup = dedup
        self.threshold = threshold or FixedThreshold()
        self.store = store
        self.distribute_to_subscribers = distribute_to_subscribers
        self.proximity_km = proximity_km

    async def process_alert(
        self, alert_data: Dict[str, Any], bot: Optional[BotHandle],
    ) -> ProcessOutcome:
        """
        Process one alert.

        Raises
        ------
        ValidationError
            If ``alert.id`` is missing.
        """
        alert_id = extract_alert_id(alert_data)

        if bot is None:
            logger.error("No bot instance provided for processing alert %s", alert_id)
            return ProcessOutcome(
                ProcessStatus.FAILED, alert_id=alert_id, error="No bot instance provided",
            )

        with log_context(alert_id=alert_id):
            if not await self.dedup.reserve(alert_id):
                logger.info("Alert %s already processed, skipping", alert_id)
                return ProcessOutcome(ProcessStatus.ALREADY_PROCESSED, alert_id=alert_id)

            try:
                outcome = await self._process_reserved(alert_id, alert_data, bot)
            except Exception:
                await self.dedup.release(alert_id)
                raise

            logger.info(
                "Alert %s finished: %s", alert_id, outcome.status.value,
                extra={"alert_id": alert_id, "status": outcome.status.value},
            )
            return outcome

    async def _process_reserved(
        self, alert_id: str, alert_data: Dict[str, Any], bot: BotHandle,
    ) -> ProcessOutcome:
        if self.store is not None:
            await self.store.save_alert(alert_data)

        severity = Severity.parse(alert_data.get("severity"))
        threshold = await self.threshold.get_threshold()
        if severity < threshold:
            await self.dedup.release(alert_id)
            logger.info(
                "Alert %s severity %s below threshold %s",
                alert_id, severity.label, threshold.label,
                extra={"severity": severity.label},
            )
            await self._mark(alert_id, ProcessStatus.SKIPPED_SEVERITY)
            return ProcessOutcome(
                ProcessStatus.SKIPPED_SEVERITY, alert_id=alert_id, severity=severity.label,
            )

        formatted = format_alert_for_posting(alert_data)

        if not bot.auth_token:
            logger.info("Bot %s has no token, authenticating", bot.username)
            if not await bot.authenticate():
                await self.dedup.release(alert_id)
                return ProcessOutcome(
                    ProcessStatus.PUBLISH_FAILED, alert_id=alert_id,
                    error="Bot authentication failed", severity=severity.label,
                )

        result = await self.publisher.publish_to_channel(formatted, bot)
        if not result.success:
            await self.dedup.release(alert_id)
            logger.error(
                "Failed to publish alert %s: %s", alert_id, result.error,
                extra={"alert_id": alert_id, "status": result.status.value},
            )
            return ProcessOutcome(
                ProcessStatus.PUBLISH_FAILED, alert_id=alert_id,
                error=result.error, severity=severity.label, publish=result,
            )

        await self.dedup.commit(alert_id)
        await self._mark(alert_id, ProcessStatus.PUBLISHED)

        distribution = None
        if self.distribute_to_subscribers:
            distribution = await self._distribute(formatted, alert_data, bot)

        return ProcessOutcome(
            ProcessStatus.PUBLISHED, alert_id=alert_id, severity=severity.label,
            publish=result, distribution=distribution,
        )

    async def _mark(self, alert_id: str, status: ProcessStatus) -> None:
        if self.store is not None:
            await self.store.mark_alert_processed(alert_id, status.value)

    async def _distribute(
        self, formatted: FormattedAlert, alert_data: Dict[str, Any], bot: BotHandle,
    ) -> Optional[BulkPublishResult]:
        if self.store is None:
            logger.warning("Subscriber distribution enabled but no store configured")
            return None

        subscribers = await self.store.get_subscribers()
        targeted, _ = filter_subscribers_by_geofence(alert_data, subscribers, self.proximity_km)
        if not targeted:
            logger.info("No subscribers inside the area of alert %s", formatted.alert_id)
            return None
        return await self.publisher.publish_to_users(formatted, targeted, bot)

    async def process_batch(
        self, alerts: Iterable[Dict[str, Any]], bot: Optional[BotHandle],
    ) -> BatchOutcome:
        """Process alerts one by one; failures are counted, never raised."""
        batch = BatchOutcome()
        for alert_data in alerts:
            batch.total += 1
            try:
                outcome = await self.process_alert(alert_data, bot)
            except ValidationError as e:
                outcome = ProcessOutcome(ProcessStatus.FAILED, error=e.message)
            except Exception as e:
                logger.exception("Unexpected error while processing alert in batch")
                outcome = ProcessOutcome(ProcessStatus.FAILED, error=str(e))

            batch.outcomes.append(outcome)
            if outcome.success:
                batch.processed += 1
            else:
                batch.failed += 1

        logger.info(
            "Batch complete: %d processed, %d failed of %d",
            batch.processed, batch.failed, batch.total,
        )
        return batch
