"""
test_rate_limit.py — Retry-After parsing and the shared back-off window.

Run with:
    pytest tests/test_rate_limit.py -v
"""

from __future__ import annotations

import pytest

from alertbot.alerts.rate_limit import RateLimitPolicy, RateLimitState, parse_retry_after
from alertbot.core.config import Settings

from fakes import FakeClock


def _make_state(jitter=0, policy=None, clock=None):
    return RateLimitState(
        policy=policy,
        clock=clock or FakeClock(),
        jitter=lambda max_ms: jitter,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Retry-After header
# ═══════════════════════════════════════════════════════════════════════════

class TestParseRetryAfter:

    @pytest.mark.parametrize("value, expected", [
        ("120", 120_000),
        ("0", 0),
        ("1.5", 1_500),
        (" 30 ", 30_000),
        ("-5", 0),
    ])
    def test_delta_seconds(self, value, expected):
        assert parse_retry_after(value) == expected

    def test_http_date(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", now_ms=1445412420000) == 60_000

    def test_http_date_in_the_past(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", now_ms=1445412500000) == 0

    @pytest.mark.parametrize("value", [None, "", "soon", "nan", "inf"])
    def test_unparseable(self, value):
        assert parse_retry_after(value) is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Back-off window
# ═══════════════════════════════════════════════════════════════════════════

class TestBackoff:

    def test_header_is_honoured(self):
        state = _make_state()
        assert state.record_rate_limit("120") == 120_000
        assert state.is_rate_limited

    def test_default_without_header(self):
        assert _make_state().record_rate_limit() == 60_000

    def test_escalates_on_consecutive_hits(self):
        state = _make_state()
        windows = [state.record_rate_limit(None) for _ in range(3)]
        assert windows == sorted(windows)
        assert windows == [60_000, 120_000, 240_000]
        assert all(30_000 <= w <= 1_800_000 for w in windows)

    def test_escalation_is_capped(self):
        state = _make_state()
        windows = [state.record_rate_limit(None) for _ in range(10)]
        assert max(windows) == 1_800_000

    def test_short_header_clamped_to_minimum(self):
        assert _make_state().record_rate_limit("5") == 30_000

    def test_long_header_clamped_to_maximum(self):
        assert _make_state().record_rate_limit("99999") == 1_800_000

    @pytest.mark.parametrize("jitter", [0, 2_500, 5_000])
    def test_jitter_added(self, jitter):
        assert _make_state(jitter=jitter).record_rate_limit("60") == 60_000 + jitter

    def test_default_jitter_within_bounds(self):
        state = RateLimitState(clock=FakeClock())
        for _ in range(20):
            state.reset()
            assert 60_000 <= state.record_rate_limit("60") <= 65_000

    def test_success_resets_escalation(self):
        state = _make_state()
        state.record_rate_limit(None)
        state.record_rate_limit(None)
        state.record_success()
        assert state.consecutive_hits == 0
        assert state.record_rate_limit(None) == 60_000

    def test_policy_from_settings(self):
        policy = RateLimitPolicy.from_settings(Settings(RATE_LIMIT_MIN_SECONDS=10, RATE_LIMIT_MAX_JITTER_MS=0))
        assert policy.min_ms == 10_000
        assert policy.default_ms == 60_000
        assert _make_state(policy=policy).record_rate_limit("12") == 12_000


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Window expiry
# ═══════════════════════════════════════════════════════════════════════════

class TestWindow:

    def test_remaining_counts_down(self):
        clock = FakeClock()
        state = _make_state(clock=clock)
        state.record_rate_limit("60")
        clock.advance(20_000)
        assert state.remaining_ms() == 40_000
        assert state.remaining_seconds() == 40

    def test_remaining_seconds_rounds_up(self):
        clock = FakeClock()
        state = _make_state(clock=clock)
        state.record_rate_limit("60")
        clock.advance(59_001)
        assert state.remaining_seconds() == 1

    def test_stale_flag_is_cleared(self):
        clock = FakeClock()
        state = _make_state(clock=clock)
        state.record_rate_limit("60")
        clock.advance(60_000)
        assert state.remaining_ms() == 0
        assert not state.is_rate_limited
        assert state.retry_after_ms == 0

    def test_not_limited_initially(self):
        assert _make_state().remaining_ms() == 0

    def test_snapshot(self):
        clock = FakeClock()
        state = _make_state(clock=clock)
        assert state.snapshot()["last_rate_limit_at"] is None
        state.record_rate_limit("60")
        snap = state.snapshot()
        assert snap["is_rate_limited"] is True
        assert snap["remaining_ms"] == 60_000
        assert snap["consecutive_hits"] == 1
        assert snap["last_rate_limit_at"].startswith("2023-11-14")

    def test_reset(self):
        state = _make_state()
        state.record_rate_limit("60")
        state.reset()
        assert state.remaining_ms() == 0
        assert state.consecutive_hits == 0
