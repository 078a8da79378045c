"""
mock_data.py — Synthetic alerts for the non-production test endpoint.

Produces webhook bodies with the same shape providers send, centred on a
chosen location (New York City by default) so geofencing, formatting and
publishing can be exercised end to end without a live feed.
"""

from __future__ import annotations

import random
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DEFAULT_LATITUDE = 40.7128
DEFAULT_LONGITUDE = -74.0060
DEFAULT_DURATION_SECONDS = 6 * 3600


@dataclass(frozen=True)
class AlertType:
    event: str
    severity: str
    urgency: str


ALERT_TYPES: List[AlertType] = [
    AlertType("Tornado Warning", "Extreme", "Immediate"),
    AlertType("Severe Thunderstorm Warning", "Severe", "Immediate"),
    AlertType("Flash Flood Warning", "Severe", "Immediate"),
    AlertType("Flood Warning", "Moderate", "Expected"),
    AlertType("Winter Storm Warning", "Severe", "Expected"),
    AlertType("Blizzard Warning", "Extreme", "Expected"),
    AlertType("Hurricane Warning", "Extreme", "Expected"),
    AlertType("Tropical Storm Warning", "Severe", "Expected"),
    AlertType("Heat Advisory", "Moderate", "Expected"),
    AlertType("Air Quality Alert", "Minor", "Expected"),
    AlertType("Tornado Watch", "Moderate", "Future"),
    AlertType("Severe Thunderstorm Watch", "Moderate", "Future"),
    AlertType("Flood Watch", "Minor", "Future"),
    AlertType("Winter Storm Watch", "Minor", "Future"),
]

ALERT_SOURCES: List[str] = [
    "NWS New York, NY",
    "NWS Chicago, IL",
    "NWS Los Angeles, CA",
    "NWS Houston, TX",
    "NWS Miami, FL",
    "NWS Seattle, WA",
    "NWS Denver, CO",
    "NWS Phoenix, AZ",
    "UK Met Office",
    "Environment Canada",
    "Australian Bureau of Meteorology",
    "Japan Meteorological Agency",
    "MeteoFrance",
]

# keyword → (WHAT, WHEN, IMPACTS, instruction)
_NARRATIVES: Dict[str, tuple] = {
    "Tornado": (
        "Damaging tornado and ping pong ball size hail.",
        "Until 7:30 PM EDT.",
        "Flying debris will be dangerous to those caught without shelter. "
        "Mobile homes will be damaged or destroyed.",
        "TAKE COVER NOW! Move to a basement or an interior room on the lowest "
        "floor of a sturdy building. Avoid windows.",
    ),
    "Flood": (
        "Flooding caused by excessive rainfall continues.",
        "Until 930 PM EDT.",
        "Flooding of rivers, creeks, streams, and other low-lying and flood-prone locations.",
        "Turn around, don't drown when encountering flooded roads. "
        "Most flood deaths occur in vehicles.",
    ),
    "Thunderstorm": (
        "60 mph wind gusts and quarter size hail.",
        "Until 615 PM EDT.",
        "Hail damage to vehicles is expected. Expect wind damage to roofs, siding, and trees.",
        "Move to an interior room on the lowest floor of a building. "
        "Large hail and damaging winds are occurring with this storm.",
    ),
    "Winter": (
        "Heavy snow expected. Total snow accumulations of 5 to 9 inches.",
        "Until noon EDT tomorrow.",
        "Travel could be very difficult.",
        "If you must travel, keep an extra flashlight, food, and water in your vehicle.",
    ),
    "Heat": (
        "Heat index values up to 102 expected.",
        "From 11 AM to 8 PM EDT tomorrow.",
        "Hot temperatures and high humidity may cause heat illnesses.",
        "Drink plenty of fluids, stay in an air-conditioned room, and check up on "
        "relatives and neighbors.",
    ),
}

_GENERIC_INSTRUCTION = (
    "Take appropriate actions based on the severity of the situation. "
    "Monitor local news stations or weather services for updates."
)


# ═══════════════════════════════════════════════════════════════════════════
# Geometry
# ═══════════════════════════════════════════════════════════════════════════

def _square(lat: float, lon: float, half: float) -> List[List[float]]:
    return [
        [lon - half, lat - half],
        [lon + half, lat - half],
        [lon + half, lat + half],
        [lon - half, lat + half],
        [lon - half, lat - half],
    ]


def generate_mock_polygon(
    lat: float = DEFAULT_LATITUDE, lon: float = DEFAULT_LONGITUDE, size: float = 0.5,
) -> List[List[List[float]]]:
    """Closed square of ±``size`` degrees, GeoJSON Polygon coordinates."""
    return [_square(lat, lon, size)]


def generate_mock_multi_polygon(
    lat: float = DEFAULT_LATITUDE, lon: float = DEFAULT_LONGITUDE,
) -> List[List[List[List[float]]]]:
    """Two polygons: the main square and a smaller box to the north."""
    north_box = [
        [lon - 0.3, lat + 0.7],
        [lon + 0.3, lat + 0.7],
        [lon + 0.3, lat + 1.0],
        [lon - 0.3, lat + 1.0],
        [lon - 0.3, lat + 0.7],
    ]
    return [[_square(lat, lon, 0.5)], [north_box]]


# ═══════════════════════════════════════════════════════════════════════════
# Alerts
# ═══════════════════════════════════════════════════════════════════════════

def _narrative(event: str, lat: float, lon: float) -> tuple:
    where = f"Area at latitude {lat:.4f} and longitude {lon:.4f}."
    for keyword, (what, when, impacts, instruction) in _NARRATIVES.items():
        if keyword in event:
            description = (
                f"...{event.upper()} REMAINS IN EFFECT...\n\n"
                f"* WHAT...{what}\n"
                f"* WHERE...{where}\n"
                f"* WHEN...{when}\n"
                f"* IMPACTS...{impacts}"
            )
            return description, instruction

    description = (
        f"...{event.upper()} FOR THE AREA AROUND LATITUDE {lat:.4f} AND LONGITUDE {lon:.4f}...\n\n"
        "A significant weather event is expected to affect this area. "
        "Please take necessary precautions."
    )
    return description, _GENERIC_INSTRUCTION


def _find_alert_type(event: Optional[str], rng: random.Random) -> AlertType:
    if event:
        for alert_type in ALERT_TYPES:
            if alert_type.event.lower() == event.lower():
                return alert_type
    return rng.choice(ALERT_TYPES)


def generate_mock_alert(
    *,
    alert_id: Optional[str] = None,
    event: Optional[str] = None,
    severity: Optional[str] = None,
    source: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    start: Optional[int] = None,
    end: Optional[int] = None,
    use_multi_polygon: Optional[bool] = None,
    msg_type: str = "warning",
    certainty: str = "Likely",
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Build a webhook body for a synthetic alert.

    Unspecified fields are chosen at random (``rng`` makes that repeatable).
    ``event`` selects one of ``ALERT_TYPES`` by name; ``severity`` overrides
    the type's default severity.
    """
    rng = rng or random.Random()
    alert_type = _find_alert_type(event, rng)
    lat = DEFAULT_LATITUDE if latitude is None else latitude
    lon = DEFAULT_LONGITUDE if longitude is None else longitude

    start = start if start is not None else int(time.time())
    end = end if end is not None else start + DEFAULT_DURATION_SECONDS

    if use_multi_polygon is None:
        use_multi_polygon = rng.random() > 0.7
    geometry = (
        {"type": "MultiPolygon", "coordinates": generate_mock_multi_polygon(lat, lon)}
        if use_multi_polygon
        else {"type": "Polygon", "coordinates": generate_mock_polygon(lat, lon)}
    )

    description, instruction = _narrative(alert_type.event, lat, lon)
    until = datetime.fromtimestamp(end, tz=timezone.utc).strftime("%b %d %H:%M UTC")

    return {
        "alert": {
            "id": alert_id or f"mock-alert-{uuid.uuid4()}",
            "geometry": geometry,
        },
        "msg_type": msg_type,
        "categories": ["Met"],
        "urgency": alert_type.urgency,
        "severity": severity or alert_type.severity,
        "certainty": certainty,
        "start": start,
        "end": end,
        "sender": source or rng.choice(ALERT_SOURCES),
        "description": [
            {
                "language": "En",
                "event": alert_type.event,
                "headline": f"{alert_type.event} issued until {until}",
                "description": description,
                "instruction": instruction,
            }
        ],
    }


def generate_mock_alerts(count: int = 5, rng: Optional[random.Random] = None) -> List[Dict[str, Any]]:
    """``count`` alerts scattered within ±5° of New York City."""
    rng = rng or random.Random()
    return [
        generate_mock_alert(
            latitude=DEFAULT_LATITUDE + (rng.random() - 0.5) * 10,
            longitude=DEFAULT_LONGITUDE + (rng.random() - 0.5) * 10,
            rng=rng,
        )
        for _ in range(count)
    ]
