"""
rate_limit.py — Shared back-off state for the chat platform's 429 responses.

One ``RateLimitState`` is shared by every send the publisher makes (channel
posts and each direct message in a bulk run), because the platform limits
the bot as a whole. Once a 429 arrives, every subsequent send is refused
locally until the window has elapsed.

═══════════════════════════════════════════════════════════════════════════
BACK-OFF WINDOW
═══════════════════════════════════════════════════════════════════════════

    base    = Retry-After header            (delta-seconds or HTTP-date)
            | default × 2^(hits − 1)        (header missing or unparseable)
    window  = clamp(base + jitter, min, max)

    default = 60 s     jitter ∈ [0, 5 s]     min = 30 s     max = 30 min

``hits`` counts consecutive 429s; a successful send resets it. The
exponential growth only applies when the platform gives no explicit
Retry-After, so an explicit header is always honoured (subject to the
clamp).
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Back-off limits in milliseconds."""
    default_ms: int = 60_000
    min_ms: int = 30_000
    max_ms: int = 1_800_000
    max_jitter_ms: int = 5_000

    @classmethod
    def from_settings(cls, settings) -> "RateLimitPolicy":
        return cls(
            default_ms=settings.RATE_LIMIT_DEFAULT_SECONDS * 1000,
            min_ms=settings.RATE_LIMIT_MIN_SECONDS * 1000,
            max_ms=settings.RATE_LIMIT_MAX_SECONDS * 1000,
            max_jitter_ms=settings.RATE_LIMIT_MAX_JITTER_MS,
        )


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def parse_retry_after(value: Optional[str], now_ms: Optional[int] = None) -> Optional[int]:
    """
    Parse a ``Retry-After`` header into milliseconds.

    Examples
    --------
    >>> parse_retry_after("120")
    120000
    >>> parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", now_ms=1445412420000)
    60000
    >>> parse_retry_after("soon") is None
    True
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(0, int(seconds * 1000)) if math.isfinite(seconds) else None

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now_ms if now_ms is not None else _wall_clock_ms()
    target_ms = int(when.timestamp() * 1000)
    return max(0, target_ms - now)


class RateLimitState:
    """
    Process-wide rate-limit flag with the time it was set.

    Parameters
    ----------
    policy : RateLimitPolicy, optional
        Back-off limits.
    clock : callable, optional
        Returns "now" in milliseconds; injectable for tests.
    jitter : callable, optional
        ``jitter(max_ms) -> int`` in ``[0, max_ms]``.
    """

    def __init__(
        self,
        policy: Optional[RateLimitPolicy] = None,
        clock: Callable[[], int] = _wall_clock_ms,
        jitter: Optional[Callable[[int], int]] = None,
    ):
        self.policy = policy or RateLimitPolicy()
        self._clock = clock
        self._jitter = jitter or (lambda max_ms: random.randint(0, max_ms))
        self._lock = threading.Lock()

        self.is_rate_limited = False
        self.retry_after_ms = 0
        self.last_rate_limit_timestamp = 0
        self.consecutive_hits = 0

    # ── reads ──

    def remaining_ms(self) -> int:
        """Milliseconds left in the current window; clears a stale flag."""
        with self._lock:
            if not self.is_rate_limited:
                return 0
            elapsed = self._clock() - self.last_rate_limit_timestamp
            remaining = self.retry_after_ms - elapsed
            if remaining <= 0:
                self.is_rate_limited = False
                self.retry_after_ms = 0
                logger.info("Rate limit window elapsed, sending resumes")
                return 0
            return remaining

    def remaining_seconds(self) -> int:
        ms = self.remaining_ms()
        return (ms + 999) // 1000

    # ── writes ──

    def compute_backoff_ms(self, retry_after_header: Optional[str], hits: int) -> int:
        base = parse_retry_after(retry_after_header, now_ms=self._clock())
        if base is None:
            base = self.policy.default_ms * (2 ** max(0, hits - 1))
        window = base + self._jitter(self.policy.max_jitter_ms)
        return max(self.policy.min_ms, min(window, self.policy.max_ms))

    def record_rate_limit(self, retry_after_header: Optional[str] = None) -> int:
        """Enter (or extend) the rate-limited window; returns its length in ms."""
        with self._lock:
            self.consecutive_hits += 1
            window = self.compute_backoff_ms(retry_after_header, self.consecutive_hits)
            self.is_rate_limited = True
            self.retry_after_ms = window
            self.last_rate_limit_timestamp = self._clock()
            hits = self.consecutive_hits

        logger.warning(
            "Rate limited by chat platform (hit %d, Retry-After=%r), backing off %.1fs",
            hits, retry_after_header, window / 1000,
            extra={"retry_after_ms": window},
        )
        return window

    def record_success(self) -> None:
        with self._lock:
            self.consecutive_hits = 0

    def reset(self) -> None:
        with self._lock:
            self.is_rate_limited = False
            self.retry_after_ms = 0
            self.last_rate_limit_timestamp = 0
            self.consecutive_hits = 0

    def snapshot(self) -> Dict[str, Any]:
        remaining = self.remaining_ms()
        with self._lock:
            return {
                "is_rate_limited": self.is_rate_limited,
                "retry_after_ms": self.retry_after_ms,
                "remaining_ms": remaining,
                "consecutive_hits": self.consecutive_hits,
                "last_rate_limit_at": (
                    datetime.fromtimestamp(self.last_rate_limit_timestamp / 1000, tz=timezone.utc).isoformat()
                    if self.last_rate_limit_timestamp else None
                ),
            }
