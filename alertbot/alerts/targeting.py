"""
targeting.py — Decide which subscribers receive a direct message.

Two filters, applied in order:

    1. Geography — subscriber location inside the alert geometry, or
       (optionally) within ``proximity_km`` of one of its vertices.
    2. Preferences — per-user minimum severity, event-type allow list,
       and muted senders.

Returns the same ``(targeted, excluded)`` partition shape as the rest of
the pipeline so callers can log both sides.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from alertbot.alerts.geo_fence import (
    geometry_summary,
    point_in_geometry,
    point_near_geometry,
)
from alertbot.alerts.models import Severity, Subscriber

logger = logging.getLogger(__name__)


def _alert_event(alert_data: Dict[str, Any]) -> str:
    descriptions = alert_data.get("description") or []
    if isinstance(descriptions, list):
        for desc in descriptions:
            if isinstance(desc, dict) and desc.get("event"):
                return str(desc["event"])
    return ""


def subscriber_accepts(subscriber: Subscriber, alert_data: Dict[str, Any]) -> bool:
    """
    Apply a subscriber's preferences to an alert.

    ``alert_types`` entries match case-insensitively as substrings of the
    event name, so ``"flood"`` accepts "Flash Flood Warning".
    """
    prefs = subscriber.preferences

    if Severity.parse(alert_data.get("severity")) < prefs.min_severity:
        return False

    if prefs.alert_types:
        event = _alert_event(alert_data).lower()
        if not any(t.lower() in event for t in prefs.alert_types):
            return False

    sender = (alert_data.get("sender") or "").lower()
    if sender and any(m.lower() == sender for m in prefs.muted_senders):
        return False

    return True


def in_alert_area(
    subscriber: Subscriber,
    geometry: Any,
    proximity_km: Optional[float] = None,
) -> bool:
    if subscriber.location is None:
        return False
    if point_in_geometry(subscriber.location, geometry):
        return True
    if proximity_km is not None:
        return point_near_geometry(subscriber.location, geometry, proximity_km)
    return False


def filter_subscribers_by_geofence(
    alert_data: Dict[str, Any],
    subscribers: Iterable[Subscriber],
    proximity_km: Optional[float] = None,
) -> Tuple[List[Subscriber], List[Subscriber]]:
    """
    Partition subscribers into (targeted, excluded).

    Parameters
    ----------
    alert_data : dict
        Raw webhook payload; geometry is read from ``alert.geometry``.
    subscribers : iterable of Subscriber
        Candidate audience.
    proximity_km : float, optional
        When set, subscribers within this distance of a boundary vertex
        are targeted even if the polygon does not contain them.

    Returns
    -------
    (targeted, excluded)
        An alert without usable geometry targets nobody.
    """
    alert = alert_data.get("alert") or {}
    geometry = alert.get("geometry")

    targeted: List[Subscriber] = []
    excluded: List[Subscriber] = []

    for subscriber in subscribers:
        if in_alert_area(subscriber, geometry, proximity_km) and subscriber_accepts(subscriber, alert_data):
            targeted.append(subscriber)
        else:
            excluded.append(subscriber)

    logger.info(
        "Geofence: %d targeted, %d excluded (geometry=%s, proximity_km=%s)",
        len(targeted), len(excluded), geometry_summary(geometry), proximity_km,
        extra={"targeted": len(targeted), "excluded": len(excluded)},
    )
    return targeted, excluded
