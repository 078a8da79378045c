"""
store.py — Persistence contract for alerts, subscribers and bot settings.

The durable database lives outside this service; the pipeline only talks
to an ``AlertStore``. ``InMemoryAlertStore`` implements the contract with
plain dicts for local development and tests (data is lost on restart).

Record shapes (camelCase, as exchanged with the chat platform):

    alert          raw webhook body + processed / processedAt / processStatus
    subscriber     {"userId", "location": {"latitude", "longitude"},
                    "preferences": {"minSeverity", "alertTypes", "mutedSenders"}}
    bot config     {"botId", "minSeverity", "useCommonChannel",
                    "globalAlertDelivery", "updatedAt"}
"""

from __future__ import annotations

import copy
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from alertbot.alerts.models import Subscriber
from alertbot.core.errors import NotFoundError

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_bot_config(bot_id: str) -> Dict[str, Any]:
    return {
        "botId": bot_id,
        "minSeverity": "Moderate",
        "useCommonChannel": True,
        "globalAlertDelivery": True,
        "updatedAt": _now_iso(),
    }


class AlertStore(Protocol):
    async def save_alert(self, alert_data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def get_alert(self, alert_id: str) -> Optional[Dict[str, Any]]: ...

    async def mark_alert_processed(self, alert_id: str, status: str = "processed") -> Dict[str, Any]: ...

    async def get_active_alerts(self) -> List[Dict[str, Any]]: ...

    async def get_subscribers(self) -> List[Subscriber]: ...

    async def update_subscriber_preferences(
        self, user_id: str, preferences: Dict[str, Any],
    ) -> Dict[str, Any]: ...

    async def get_bot_config(self, bot_id: str) -> Dict[str, Any]: ...

    async def update_bot_config(self, bot_id: str, config: Dict[str, Any]) -> Dict[str, Any]: ...


class InMemoryAlertStore:
    """Dict-backed ``AlertStore``."""

    def __init__(self):
        self._alerts: Dict[str, Dict[str, Any]] = {}
        self._subscribers: Dict[str, Dict[str, Any]] = {}
        self._bot_configs: Dict[str, Dict[str, Any]] = {}

    # ── alerts ──

    async def save_alert(self, alert_data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace by ``alert.id`` (keyed as text); processing flags are preserved."""
        raw_id = (alert_data.get("alert") or {}).get("id")
        if not raw_id:
            raise ValueError("Cannot store an alert without alert.id")
        alert_id = str(raw_id)

        existing = self._alerts.get(alert_id, {})
        record = {
            **copy.deepcopy(alert_data),
            "processed": existing.get("processed", False),
            "processedAt": existing.get("processedAt"),
            "processStatus": existing.get("processStatus"),
            "receivedAt": existing.get("receivedAt", _now_iso()),
        }
        self._alerts[alert_id] = record
        return record

    async def get_alert(self, alert_id: str) -> Optional[Dict[str, Any]]:
        return self._alerts.get(str(alert_id))

    async def mark_alert_processed(self, alert_id: str, status: str = "processed") -> Dict[str, Any]:
        record = self._alerts.get(str(alert_id))
        if record is None:
            raise NotFoundError("Alert", alert_id=alert_id)
        record.update(processed=True, processedAt=_now_iso(), processStatus=status)
        return record

    async def get_active_alerts(self) -> List[Dict[str, Any]]:
        """Alerts whose ``end`` is in the future, earliest ``start`` first."""
        now = int(time.time())
        active = [a for a in self._alerts.values() if (a.get("end") or 0) > now]
        return sorted(active, key=lambda a: a.get("start") or 0)

    # ── subscribers ──

    def add_subscriber(self, record: Dict[str, Any]) -> None:
        user_id = record.get("userId") or record.get("user_id")
        if not user_id:
            raise ValueError("Subscriber record needs a userId")
        self._subscribers[str(user_id)] = copy.deepcopy(record)

    async def get_subscribers(self) -> List[Subscriber]:
        return [Subscriber.from_dict(r) for r in self._subscribers.values()]

    async def update_subscriber_preferences(
        self, user_id: str, preferences: Dict[str, Any],
    ) -> Dict[str, Any]:
        record = self._subscribers.setdefault(user_id, {"userId": user_id})
        record["preferences"] = {**(record.get("preferences") or {}), **preferences}
        record["updatedAt"] = _now_iso()
        return record

    # ── bot configuration ──

    async def get_bot_config(self, bot_id: str) -> Dict[str, Any]:
        if bot_id not in self._bot_configs:
            self._bot_configs[bot_id] = default_bot_config(bot_id)
            logger.info("Created default configuration for bot %s", bot_id)
        return self._bot_configs[bot_id]

    async def update_bot_config(self, bot_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        current = self._bot_configs.get(bot_id) or default_bot_config(bot_id)
        updated = {**current, **config, "botId": bot_id, "updatedAt": _now_iso()}
        self._bot_configs[bot_id] = updated
        return updated
