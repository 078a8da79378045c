"""
dedup.py — Registry of alert ids that have already been handled.

The registry is the only guard against publishing the same alert twice.
Webhook providers redeliver freely, and two deliveries of one alert can
arrive concurrently, so membership is claimed with a single atomic
``reserve`` (insert-if-absent) before any formatting or publishing:

    reserve(id) ── False ──▶ duplicate, stop
        │ True
        ▼
    severity gate / publish
        │ skipped or failed ──▶ release(id)   (a later delivery may retry)
        │ published
        ▼
    commit(id)                                (permanent until TTL)

Backends:
    InMemoryDeduplicationStore  single process, lost on restart
    RedisDeduplicationStore     shared across workers, survives restarts
                                (``SET key NX EX ttl``)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from alertbot.core.errors import UnknownAlertIdError

logger = logging.getLogger(__name__)

_RESERVED = "reserved"
_COMMITTED = "committed"


class DeduplicationStore(Protocol):
    async def reserve(self, alert_id: str) -> bool:
        """Claim an id. False if it is already reserved or committed."""

    async def commit(self, alert_id: str) -> None:
        """Mark a reserved id as published. Raises UnknownAlertIdError otherwise."""

    async def release(self, alert_id: str) -> None:
        """Drop a reservation so the alert can be processed again."""

    async def contains(self, alert_id: str) -> bool:
        ...

    async def clear(self) -> None:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# In-memory backend
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryDeduplicationStore:
    """
    Process-local registry guarded by an ``asyncio.Lock``.

    Entries expire after ``ttl_seconds`` (None keeps them for the process
    lifetime). Restarting the service forgets every id.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _expires_at(self) -> Optional[float]:
        return self._clock() + self._ttl if self._ttl else None

    def _live_state(self, alert_id: str) -> Optional[str]:
        entry = self._entries.get(alert_id)
        if entry is None:
            return None
        state, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[alert_id]
            return None
        return state

    async def reserve(self, alert_id: str) -> bool:
        async with self._lock:
            if self._live_state(alert_id) is not None:
                return False
            self._entries[alert_id] = (_RESERVED, self._expires_at())
            return True

    async def commit(self, alert_id: str) -> None:
        async with self._lock:
            if self._live_state(alert_id) is None:
                raise UnknownAlertIdError(alert_id)
            self._entries[alert_id] = (_COMMITTED, self._expires_at())

    async def release(self, alert_id: str) -> None:
        async with self._lock:
            if self._live_state(alert_id) == _RESERVED:
                del self._entries[alert_id]

    async def contains(self, alert_id: str) -> bool:
        async with self._lock:
            return self._live_state(alert_id) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ═══════════════════════════════════════════════════════════════════════════
# Redis backend
# ═══════════════════════════════════════════════════════════════════════════

class RedisDeduplicationStore:
    """
    Registry shared by every worker through Redis.

    The key value records the state; ``SET NX`` makes ``reserve`` atomic
    across processes. Redis errors propagate: processing an alert without
    a working registry risks a double publish.
    """

    def __init__(
        self,
        client,
        ttl_seconds: int = 7 * 24 * 3600,
        key_prefix: str = "alertbot:processed:",
    ):
        self._redis = client
        self._ttl = ttl_seconds
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisDeduplicationStore":
        import redis.asyncio as aioredis

        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        logger.info("Dedup registry using Redis at %s", url.split("@")[-1])
        return cls(client, **kwargs)

    def _key(self, alert_id: str) -> str:
        return f"{self._prefix}{alert_id}"

    async def reserve(self, alert_id: str) -> bool:
        created = await self._redis.set(self._key(alert_id), _RESERVED, nx=True, ex=self._ttl)
        return bool(created)

    async def commit(self, alert_id: str) -> None:
        updated = await self._redis.set(self._key(alert_id), _COMMITTED, xx=True, ex=self._ttl)
        if not updated:
            raise UnknownAlertIdError(alert_id)

    async def release(self, alert_id: str) -> None:
        key = self._key(alert_id)
        if await self._redis.get(key) == _RESERVED:
            await self._redis.delete(key)

    async def contains(self, alert_id: str) -> bool:
        return bool(await self._redis.exists(self._key(alert_id)))

    async def clear(self) -> None:
        keys = [key async for key in self._redis.scan_iter(f"{self._prefix}*")]
        if keys:
            await self._redis.delete(*keys)

    async def close(self) -> None:
        await self._redis.aclose()
