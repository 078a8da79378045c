"""
geodesy.py — Great-circle distance between alert vertices and subscribers.

All distances are in **kilometers**. Coordinates are in **decimal degrees**.
Alert geometry stores vertices GeoJSON-style as ``[longitude, latitude]``;
everything in this module takes explicit ``GeoPoint`` objects so the axis
order is never ambiguous.

Haversine Formula
=================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

with R = 6 371 km (mean Earth radius). Accuracy of ~0.5 % is more than
enough for deciding whether a subscriber is "near" a warning polygon.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM: float = 6371.0


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeoPoint:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    @classmethod
    def from_lon_lat(cls, vertex: Sequence[Any]) -> "GeoPoint":
        """Build from a ``[lon, lat]`` GeoJSON vertex."""
        return cls(latitude=float(vertex[1]), longitude=float(vertex[0]))

    @classmethod
    def from_mapping(cls, data: Any) -> Optional["GeoPoint"]:
        """
        Build from ``{"latitude": .., "longitude": ..}``.

        Returns None when either coordinate is missing or non-numeric.
        A coordinate of ``0`` is a real location and is accepted.
        """
        if isinstance(data, GeoPoint):
            return data
        if not isinstance(data, dict):
            return None
        lat = data.get("latitude")
        lon = data.get("longitude")
        if lat is None or lon is None:
            return None
        try:
            return cls(latitude=float(lat), longitude=float(lon))
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------

def haversine(p1: GeoPoint, p2: GeoPoint) -> float:
    """
    Great-circle distance between two points in km.

    Examples
    --------
    >>> round(haversine(GeoPoint(40.7128, -74.0060), GeoPoint(42.3601, -71.0589)))
    306
    """
    phi1 = math.radians(p1.latitude)
    phi2 = math.radians(p2.latitude)
    d_phi = math.radians(p2.latitude - p1.latitude)
    d_lambda = math.radians(p2.longitude - p1.longitude)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
