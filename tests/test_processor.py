"""
test_processor.py — Dedup gate, severity gate, publish and distribution.

Run with:
    pytest tests/test_processor.py -v
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from alertbot.alerts.models import ProcessStatus, Severity
from alertbot.alerts.processor import (
    AlertProcessor,
    FixedThreshold,
    StoredBotThreshold,
    extract_alert_id,
)
from alertbot.alerts.store import InMemoryAlertStore
from alertbot.core.errors import ValidationError

from fakes import FakeBot, make_alert

IMAGE_PATH = "/api/messages/with-image"
TEXT_PATH = "/api/messages"


@pytest.fixture
def processor(publisher, dedup):
    return AlertProcessor(publisher, dedup)


@pytest.fixture
def store():
    return InMemoryAlertStore()


def _fail_both_stages(platform):
    platform.queue(IMAGE_PATH, httpx.Response(500))
    platform.queue(TEXT_PATH, httpx.Response(500))


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Validation
# ═══════════════════════════════════════════════════════════════════════════

class TestValidation:

    def test_extract_alert_id(self):
        assert extract_alert_id(make_alert(alert_id="abc")) == "abc"
        assert extract_alert_id(make_alert(alert_id=12345)) == "12345"

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {},
        {"alert": None},
        {"alert": {"geometry": {}}},
        {"alert": {"id": ""}},
    ])
    def test_missing_id_rejected(self, payload):
        with pytest.raises(ValidationError) as exc:
            extract_alert_id(payload)
        assert exc.value.message == "Invalid alert data"
        assert exc.value.status_code == 400

    async def test_process_alert_raises_without_id(self, processor, bot, platform):
        with pytest.raises(ValidationError):
            await processor.process_alert(make_alert(alert_id=None), bot)
        assert platform.requests == []

    async def test_no_bot(self, processor, dedup, platform):
        outcome = await processor.process_alert(make_alert(), None)

        assert outcome.status == ProcessStatus.FAILED
        assert outcome.error == "No bot instance provided"
        assert not await dedup.contains("alert-001")
        assert platform.requests == []


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Deduplication
# ═══════════════════════════════════════════════════════════════════════════

class TestDeduplication:

    async def test_second_delivery_is_ignored(self, processor, bot, platform):
        first = await processor.process_alert(make_alert(), bot)
        second = await processor.process_alert(make_alert(), bot)

        assert first.status == ProcessStatus.PUBLISHED
        assert second.status == ProcessStatus.ALREADY_PROCESSED
        assert second.success
        assert len(platform.message_posts) == 1

    async def test_concurrent_deliveries_publish_once(self, processor, bot, platform):
        outcomes = await asyncio.gather(
            *(processor.process_alert(make_alert(), bot) for _ in range(5))
        )

        statuses = sorted(o.status.value for o in outcomes)
        assert statuses.count(ProcessStatus.PUBLISHED.value) == 1
        assert statuses.count(ProcessStatus.ALREADY_PROCESSED.value) == 4
        assert len(platform.message_posts) == 1

    async def test_publish_failure_releases_id(self, processor, bot, platform, dedup):
        _fail_both_stages(platform)

        failed = await processor.process_alert(make_alert(), bot)
        assert failed.status == ProcessStatus.PUBLISH_FAILED
        assert not await dedup.contains("alert-001")

        retried = await processor.process_alert(make_alert(), bot)
        assert retried.status == ProcessStatus.PUBLISHED

    async def test_rate_limited_publish_releases_id(self, processor, bot, platform, dedup, clock):
        platform.queue(IMAGE_PATH, httpx.Response(429, headers={"Retry-After": "60"}))

        outcome = await processor.process_alert(make_alert(), bot)
        assert outcome.status == ProcessStatus.PUBLISH_FAILED
        assert outcome.publish.rate_limited
        assert not await dedup.contains("alert-001")

        clock.advance(60_000)
        assert (await processor.process_alert(make_alert(), bot)).status == ProcessStatus.PUBLISHED

    async def test_unexpected_error_releases_and_propagates(self, processor, bot, dedup, monkeypatch):
        async def explode(*args):
            raise RuntimeError("publisher crashed")

        monkeypatch.setattr(processor.publisher, "publish_to_channel", explode)

        with pytest.raises(RuntimeError):
            await processor.process_alert(make_alert(), bot)
        assert not await dedup.contains("alert-001")

    async def test_published_id_is_committed(self, processor, bot, dedup):
        await processor.process_alert(make_alert(), bot)
        await dedup.release("alert-001")
        assert await dedup.contains("alert-001")


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Severity gate
# ═══════════════════════════════════════════════════════════════════════════

class TestSeverityGate:

    @pytest.mark.parametrize("severity", ["Minor", "Unknown", None, "Catastrophic"])
    async def test_below_default_threshold(self, processor, bot, platform, dedup, severity):
        outcome = await processor.process_alert(make_alert(severity=severity), bot)

        assert outcome.status == ProcessStatus.SKIPPED_SEVERITY
        assert outcome.success
        assert platform.requests == []
        assert not await dedup.contains("alert-001")

    @pytest.mark.parametrize("severity", ["Moderate", "Severe", "Extreme", "extreme"])
    async def test_at_or_above_default_threshold(self, processor, bot, severity):
        outcome = await processor.process_alert(make_alert(severity=severity), bot)
        assert outcome.status == ProcessStatus.PUBLISHED

    async def test_threshold_equal_passes(self, publisher, dedup, bot):
        processor = AlertProcessor(publisher, dedup, FixedThreshold("Extreme"))

        assert (await processor.process_alert(make_alert(severity="Severe"), bot)).status \
            == ProcessStatus.SKIPPED_SEVERITY
        assert (await processor.process_alert(make_alert(alert_id="x2", severity="Extreme"), bot)).status \
            == ProcessStatus.PUBLISHED

    async def test_skipped_alert_can_pass_after_threshold_change(self, publisher, dedup, bot, store):
        processor = AlertProcessor(publisher, dedup, StoredBotThreshold(store, "weatherbot"), store=store)
        await store.update_bot_config("weatherbot", {"minSeverity": "Extreme"})

        skipped = await processor.process_alert(make_alert(severity="Severe"), bot)
        assert skipped.status == ProcessStatus.SKIPPED_SEVERITY

        await store.update_bot_config("weatherbot", {"minSeverity": "Minor"})
        published = await processor.process_alert(make_alert(severity="Severe"), bot)
        assert published.status == ProcessStatus.PUBLISHED

    async def test_stored_threshold_defaults(self, store):
        assert await StoredBotThreshold(store, "new-bot").get_threshold() == Severity.MODERATE
        await store.update_bot_config("other", {"minSeverity": None})
        assert await StoredBotThreshold(store, "other", default=Severity.SEVERE).get_threshold() \
            == Severity.SEVERE


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Bot authentication & store bookkeeping
# ═══════════════════════════════════════════════════════════════════════════

class TestBotAndStore:

    async def test_tokenless_bot_authenticates_once(self, processor):
        bot = FakeBot(token=None)

        outcome = await processor.process_alert(make_alert(), bot)

        assert outcome.status == ProcessStatus.PUBLISHED
        assert bot.auth_calls == 1

    async def test_refused_login(self, processor, dedup, platform):
        bot = FakeBot(token=None, auth_ok=False)

        outcome = await processor.process_alert(make_alert(), bot)

        assert outcome.status == ProcessStatus.PUBLISH_FAILED
        assert outcome.error == "Bot authentication failed"
        assert not await dedup.contains("alert-001")
        assert platform.message_posts == []

    async def test_store_records_status(self, publisher, dedup, bot, store):
        processor = AlertProcessor(publisher, dedup, store=store)

        await processor.process_alert(make_alert(), bot)
        await processor.process_alert(make_alert(alert_id="quiet", severity="Minor"), bot)

        published = await store.get_alert("alert-001")
        assert published["processed"] is True
        assert published["processStatus"] == "published"
        assert (await store.get_alert("quiet"))["processStatus"] == "skipped_severity"

    async def test_numeric_alert_id_is_tracked(self, publisher, dedup, bot, platform, store):
        processor = AlertProcessor(publisher, dedup, store=store)

        published = await processor.process_alert(make_alert(alert_id=12345), bot)
        skipped = await processor.process_alert(make_alert(alert_id=678, severity="Minor"), bot)

        assert published.status == ProcessStatus.PUBLISHED
        assert published.alert_id == "12345"
        assert (await store.get_alert("12345"))["processStatus"] == "published"
        assert skipped.status == ProcessStatus.SKIPPED_SEVERITY
        assert (await store.get_alert("678"))["processStatus"] == "skipped_severity"
        assert await dedup.contains("12345")
        assert b'name="alertId"\r\n\r\n12345' in platform.posts(IMAGE_PATH)[0].content

    async def test_outcome_to_dict(self, processor, bot):
        d = (await processor.process_alert(make_alert(), bot)).to_dict()
        assert d["success"] is True
        assert d["status"] == "published"
        assert d["severity"] == "Severe"
        assert d["publish"]["delivery"] == "image"


# ═══════════════════════════════════════════════════════════════════════════
# Section 5: Subscriber distribution
# ═══════════════════════════════════════════════════════════════════════════

class TestDistribution:

    @pytest.fixture
    def distributing(self, publisher, dedup, store):
        store.add_subscriber({"userId": "inside", "location": {"latitude": 1, "longitude": 1}})
        store.add_subscriber({"userId": "outside", "location": {"latitude": 9, "longitude": 9}})
        store.add_subscriber({"userId": "nowhere"})
        return AlertProcessor(publisher, dedup, store=store, distribute_to_subscribers=True)

    async def test_direct_messages_inside_area(self, distributing, bot, platform):
        outcome = await distributing.process_alert(make_alert(), bot)

        assert outcome.status == ProcessStatus.PUBLISHED
        assert outcome.distribution.total == 1
        assert outcome.distribution.sent == 1
        dms = platform.posts("/api/messages/direct-with-image")
        assert len(dms) == 1
        assert b'name="recipientId"\r\n\r\ninside' in dms[0].content

    async def test_no_subscribers_in_area(self, distributing, bot, platform):
        far = {"type": "Polygon", "coordinates": [[[50, 50], [51, 50], [51, 51], [50, 51], [50, 50]]]}

        outcome = await distributing.process_alert(make_alert(geometry=far), bot)

        assert outcome.status == ProcessStatus.PUBLISHED
        assert outcome.distribution is None
        assert platform.posts("/api/messages/direct-with-image") == []

    async def test_subscriber_preferences_respected(self, distributing, bot, platform, store):
        await store.update_subscriber_preferences("inside", {"minSeverity": "Extreme"})

        outcome = await distributing.process_alert(make_alert(), bot)

        assert outcome.distribution is None

    async def test_distribution_needs_store(self, publisher, dedup, bot):
        processor = AlertProcessor(publisher, dedup, distribute_to_subscribers=True)
        outcome = await processor.process_alert(make_alert(), bot)
        assert outcome.status == ProcessStatus.PUBLISHED
        assert outcome.distribution is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 6: Batches
# ═══════════════════════════════════════════════════════════════════════════

class TestBatch:

    async def test_batch_counts(self, processor, bot, platform):
        alerts = [
            make_alert(alert_id="a"),
            make_alert(alert_id="a"),
            make_alert(alert_id="b", severity="Minor"),
            make_alert(alert_id=None),
            make_alert(alert_id="c"),
        ]

        batch = await processor.process_batch(alerts, bot)

        assert (batch.total, batch.processed, batch.failed) == (5, 4, 1)
        assert [o.status for o in batch.outcomes] == [
            ProcessStatus.PUBLISHED,
            ProcessStatus.ALREADY_PROCESSED,
            ProcessStatus.SKIPPED_SEVERITY,
            ProcessStatus.FAILED,
            ProcessStatus.PUBLISHED,
        ]
        assert len(platform.message_posts) == 2

    async def test_batch_survives_unexpected_errors(self, processor, bot, monkeypatch):
        async def explode(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(processor.publisher, "publish_to_channel", explode)

        batch = await processor.process_batch([make_alert(alert_id="a"), make_alert(alert_id="b")], bot)

        assert batch.failed == 2
        assert batch.outcomes[0].error == "boom"
        assert not batch.success
