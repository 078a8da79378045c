"""
formatter.py — Turn a raw webhook alert into chat-ready text.

Layout of a formatted message::

    🌪️ Tornado Warning issued for Springfield        ← title (icon + headline)

    <event>                                          ← only when no headline
    <description>
    INSTRUCTIONS: <instruction>

    Severity: Extreme
    Urgency: Immediate
    Certainty: Observed

    Valid: 2024-05-01 18:00 UTC until 2024-05-01 19:00 UTC
    Source: NWS Springfield

Providers send one description record per language. The English record
(``language == "En"``) or an untagged one is preferred, falling back to the
first record. An alert with no description at all, or one that cannot be
formatted, becomes a *minimal* alert: a generic one-line notice that still
carries the alert id so it can be deduplicated.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from alertbot.alerts.geo_fence import first_vertex
from alertbot.alerts.icons import get_icon_for_alert
from alertbot.alerts.models import Certainty, FormattedAlert, NotificationAlert, Urgency
from alertbot.spatial.geodesy import GeoPoint

logger = logging.getLogger(__name__)

SHORT_TITLE_MAX = 100
DEFAULT_EVENT = "Weather Alert"
DEFAULT_SOURCE = "Weather Agency"

_WHERE_RE = re.compile(r"WHERE\.\.\.(.*?)(?:WHEN|IMPACTS|\*|$)", re.DOTALL)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _enum_text(value: Any, enum_cls) -> str:
    """Canonical spelling of a CAP value; unrecognised text is kept as sent."""
    text = _text(value)
    for member in enum_cls:
        if member.value.lower() == text.lower():
            return member.value
    return text or "Unknown"


def _format_timestamp(ts: Any) -> Optional[str]:
    try:
        dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def _epoch(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def primary_description(alert_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """English or untagged description record, else the first one."""
    descriptions = alert_data.get("description")
    if not isinstance(descriptions, list):
        return None
    records = [d for d in descriptions if isinstance(d, dict)]
    if not records:
        return None
    for record in records:
        language = record.get("language")
        if not language or language == "En":
            return record
    return records[0]


def extract_coordinates(alert_data: Dict[str, Any]) -> Optional[GeoPoint]:
    """First vertex of the alert geometry, or None."""
    alert = alert_data.get("alert") or {}
    geometry = alert.get("geometry")
    if not geometry:
        return None
    point = first_vertex(geometry)
    if point is None:
        logger.warning("Could not extract coordinates from alert geometry: %.200r", geometry)
    return point


# ═══════════════════════════════════════════════════════════════════════════
# Minimal alert
# ═══════════════════════════════════════════════════════════════════════════

def create_minimal_alert(alert_data: Dict[str, Any]) -> FormattedAlert:
    """Generic notice used when the alert has no usable description."""
    alert = alert_data.get("alert") or {}
    severity = _text(alert_data.get("severity"))
    sender = _text(alert_data.get("sender"))
    icon = get_icon_for_alert(None, severity or "unknown")

    severity_word = f"{severity} " if severity else ""
    return FormattedAlert(
        title=f"{icon} {severity or 'Weather'} Alert",
        content=f"A {severity_word}weather alert has been issued by {sender or 'a weather agency'}.",
        icon=icon,
        severity=severity or "Unknown",
        urgency=_enum_text(alert_data.get("urgency"), Urgency),
        certainty=_enum_text(alert_data.get("certainty"), Certainty),
        start_time=_epoch(alert_data.get("start")),
        end_time=_epoch(alert_data.get("end")),
        source=sender or DEFAULT_SOURCE,
        alert_id=str(alert.get("id") or f"minimal_{_now_ms()}"),
        event=DEFAULT_EVENT,
        coordinates=None,
        is_minimal=True,
        alert_data=alert_data,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Full formatting
# ═══════════════════════════════════════════════════════════════════════════

def _build_title(icon: str, headline: str, event: str, severity: str) -> str:
    if headline:
        return f"{icon} {headline}"
    if event:
        return f"{icon} {event} - {severity or 'Alert'}"
    return " ".join(part for part in (icon, severity, "Weather Alert") if part)


def _build_content(alert_data: Dict[str, Any], desc: Dict[str, Any]) -> str:
    headline = _text(desc.get("headline"))
    event = _text(desc.get("event"))
    body = _text(desc.get("description"))
    instruction = _text(desc.get("instruction"))

    sections = []
    if event and not headline:
        sections.append(event)
    if body:
        sections.append(body)
    if instruction:
        sections.append(f"INSTRUCTIONS: {instruction}")

    sections.append(
        f"Severity: {_text(alert_data.get('severity')) or 'Unknown'}\n"
        f"Urgency: {_enum_text(alert_data.get('urgency'), Urgency)}\n"
        f"Certainty: {_enum_text(alert_data.get('certainty'), Certainty)}"
    )

    start = _format_timestamp(alert_data.get("start"))
    end = _format_timestamp(alert_data.get("end"))
    if start and end:
        sections.append(f"Valid: {start} until {end}")

    sender = _text(alert_data.get("sender"))
    if sender:
        sections.append(f"Source: {sender}")

    return "\n\n".join(sections)


def _format(alert_data: Dict[str, Any]) -> FormattedAlert:
    desc = primary_description(alert_data)
    if desc is None:
        logger.warning("No description found in alert data")
        return create_minimal_alert(alert_data)

    alert = alert_data.get("alert") or {}
    severity = _text(alert_data.get("severity"))
    headline = _text(desc.get("headline"))
    event = _text(desc.get("event"))
    sender = _text(alert_data.get("sender"))

    icon = get_icon_for_alert(event or _text(alert_data.get("msg_type")), severity)

    return FormattedAlert(
        title=_build_title(icon, headline, event, severity),
        content=_build_content(alert_data, desc),
        icon=icon,
        severity=severity or "Unknown",
        urgency=_enum_text(alert_data.get("urgency"), Urgency),
        certainty=_enum_text(alert_data.get("certainty"), Certainty),
        start_time=_epoch(alert_data.get("start")),
        end_time=_epoch(alert_data.get("end")),
        source=sender,
        alert_id=str(alert.get("id") or f"generated_{_now_ms()}"),
        event=event or DEFAULT_EVENT,
        coordinates=extract_coordinates(alert_data),
        alert_data=alert_data,
    )


def format_alert_for_posting(alert_data: Dict[str, Any]) -> FormattedAlert:
    """
    Format a webhook alert for a channel post.

    Never raises: unexpected payload shapes degrade to a minimal alert.

    Parameters
    ----------
    alert_data : dict
        Raw webhook body.

    Returns
    -------
    FormattedAlert
    """
    try:
        return _format(alert_data)
    except Exception as e:
        logger.error("Error formatting alert: %s", e, exc_info=True)
        return create_minimal_alert(alert_data)


# ═══════════════════════════════════════════════════════════════════════════
# Notification variant
# ═══════════════════════════════════════════════════════════════════════════

def extract_area(alert_data: Dict[str, Any]) -> Optional[str]:
    """Text of the ``WHERE...`` section of the primary description."""
    desc = primary_description(alert_data)
    body = _text(desc.get("description")) if desc else ""
    if "WHERE" not in body:
        return None
    match = _WHERE_RE.search(body)
    if not match:
        return None
    area = " ".join(match.group(1).split())
    return area or None


def format_alert_for_notification(alert_data: Dict[str, Any]) -> NotificationAlert:
    """
    Formatted alert plus a short title (≤ 100 chars) and one-line summary.

    Examples
    --------
    Short content reads like ``"Flood Warning (Moderate) for Lowland County"``.
    """
    formatted = format_alert_for_posting(alert_data)

    title = formatted.title
    if len(title) > SHORT_TITLE_MAX:
        title = title[: SHORT_TITLE_MAX - 3] + "..."

    summary = formatted.event
    if formatted.severity.lower() not in summary.lower():
        summary += f" ({formatted.severity})"

    area = None if formatted.is_minimal else extract_area(alert_data)
    if area:
        summary += f" for {area}"

    return NotificationAlert(alert=formatted, short_title=title, short_content=summary)
