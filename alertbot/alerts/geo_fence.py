"""
geo_fence.py — Polygon geofencing for alert targeting.

Weather agencies describe the affected area as a ``Polygon`` or
``MultiPolygon``. A subscriber is affected when their location falls
inside the alert geometry.

═══════════════════════════════════════════════════════════════════════════
CONTAINMENT — RAY CASTING
═══════════════════════════════════════════════════════════════════════════

Cast a horizontal ray from the point towards +longitude and count how many
ring edges it crosses. An odd count means the point is inside:

            ┌───────────┐
            │     •─────┼────────▶   1 crossing  → inside
            │           │
      •─────┼───────────┼────────▶   2 crossings → outside
            └───────────┘

Vertices are ``[longitude, latitude]`` (GeoJSON axis order), so the ray's
x is longitude and y is latitude. Planar maths on degrees is adequate for
warning polygons, which rarely span more than a few hundred km.

═══════════════════════════════════════════════════════════════════════════
SIMPLIFICATIONS
═══════════════════════════════════════════════════════════════════════════

    • Only exterior rings are tested; interior rings (holes) are ignored,
      so a subscriber inside a hole still receives the alert.
    • Providers disagree on nesting depth. Both of these are accepted:

          Polygon       [ring]                     or  ring
          MultiPolygon  [[ring, hole, ...], ...]   or  [ring, ring, ...]

    • Nothing here raises. Malformed geometry yields ``False`` / ``[]``.

Proximity fallback: ``point_near_geometry`` treats a subscriber within N km
(haversine) of any exterior vertex as affected, for callers that want to
reach people just outside a boundary.
"""

from __future__ import annotations

import logging
from numbers import Real
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from alertbot.alerts.models import Subscriber
from alertbot.spatial.geodesy import GeoPoint, haversine

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_KM = 50.0

Ring = Sequence[Sequence[float]]


# ═══════════════════════════════════════════════════════════════════════════
# Geometry normalisation
# ═══════════════════════════════════════════════════════════════════════════

def _is_vertex(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(c, Real) and not isinstance(c, bool) for c in value[:2])
    )


def _is_ring(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0 and _is_vertex(value[0])


def _polygon_exterior(polygon: Any) -> Optional[Ring]:
    """Exterior ring of one polygon in either ``[ring, ...]`` or bare ``ring`` form."""
    if _is_ring(polygon):
        return polygon
    if isinstance(polygon, (list, tuple)) and polygon and _is_ring(polygon[0]):
        return polygon[0]
    return None


def exterior_rings(geometry: Any) -> List[Ring]:
    """
    All exterior rings of a Polygon / MultiPolygon geometry.

    Returns ``[]`` for unknown types or malformed coordinates.
    """
    if not isinstance(geometry, dict):
        return []
    coords = geometry.get("coordinates")
    if not isinstance(coords, (list, tuple)) or not coords:
        return []

    geom_type = geometry.get("type")
    if geom_type == "Polygon":
        ring = _polygon_exterior(coords)
        return [ring] if ring is not None else []

    if geom_type == "MultiPolygon":
        rings = []
        for polygon in coords:
            ring = _polygon_exterior(polygon)
            if ring is not None:
                rings.append(ring)
        return rings

    return []


def geometry_vertices(geometry: Any) -> Iterator[GeoPoint]:
    """Yield every well-formed exterior vertex as a ``GeoPoint``."""
    for ring in exterior_rings(geometry):
        for vertex in ring:
            if _is_vertex(vertex):
                yield GeoPoint.from_lon_lat(vertex)


def first_vertex(geometry: Any) -> Optional[GeoPoint]:
    """First vertex of the first exterior ring, used as the alert's location."""
    return next(geometry_vertices(geometry), None)


# ═══════════════════════════════════════════════════════════════════════════
# Containment
# ═══════════════════════════════════════════════════════════════════════════

def point_in_polygon(point: GeoPoint, ring: Ring) -> bool:
    """
    Ray-casting containment test against one closed ring.

    Parameters
    ----------
    point : GeoPoint
        Location to test.
    ring : sequence of [lon, lat]
        Polygon boundary. Rings with fewer than 3 vertices contain nothing.

    Returns
    -------
    bool
        True if the point lies strictly inside (boundary handling is
        whatever the crossing rule yields).

    Examples
    --------
    >>> square = [[0, 0], [2, 0], [2, 2], [0, 2], [0, 0]]
    >>> point_in_polygon(GeoPoint(latitude=1, longitude=1), square)
    True
    >>> point_in_polygon(GeoPoint(latitude=3, longitude=3), square)
    False
    """
    if not isinstance(ring, (list, tuple)) or len(ring) < 3:
        return False

    x, y = point.longitude, point.latitude
    inside = False
    try:
        j = len(ring) - 1
        for i in range(len(ring)):
            xi, yi = float(ring[i][0]), float(ring[i][1])
            xj, yj = float(ring[j][0]), float(ring[j][1])
            if (yi > y) != (yj > y):
                x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
                if x < x_cross:
                    inside = not inside
            j = i
    except (TypeError, ValueError, IndexError):
        return False
    return inside


def point_in_multi_polygon(point: GeoPoint, polygons: Iterable[Any]) -> bool:
    """True if the point is inside any polygon's exterior ring."""
    if not isinstance(polygons, (list, tuple)):
        return False
    for polygon in polygons:
        ring = _polygon_exterior(polygon)
        if ring is not None and point_in_polygon(point, ring):
            return True
    return False


def point_in_geometry(point: Optional[GeoPoint], geometry: Any) -> bool:
    """Dispatch on ``geometry["type"]``; unsupported types contain nothing."""
    if point is None or not isinstance(geometry, dict):
        return False

    geom_type = geometry.get("type")
    coords = geometry.get("coordinates")
    if geom_type == "Polygon":
        ring = _polygon_exterior(coords)
        return ring is not None and point_in_polygon(point, ring)
    if geom_type == "MultiPolygon":
        return point_in_multi_polygon(point, coords)

    logger.debug("Unsupported geometry type: %s", geom_type)
    return False


def find_subscribers_in_geometry(
    geometry: Any,
    subscribers: Iterable[Subscriber],
) -> List[Subscriber]:
    """Subscribers whose location is inside the geometry; no location → excluded."""
    if not exterior_rings(geometry):
        return []
    return [
        s for s in subscribers
        if s.location is not None and point_in_geometry(s.location, geometry)
    ]


# ═══════════════════════════════════════════════════════════════════════════
# Proximity
# ═══════════════════════════════════════════════════════════════════════════

def distance_km(p1: GeoPoint, p2: GeoPoint) -> float:
    """Haversine distance in km (Earth radius 6371 km)."""
    return haversine(p1, p2)


def point_near_geometry(
    point: Optional[GeoPoint],
    geometry: Any,
    radius_km: float = DEFAULT_PROXIMITY_KM,
) -> bool:
    """True if the point is within ``radius_km`` of any exterior vertex."""
    if point is None:
        return False
    return any(distance_km(point, v) <= radius_km for v in geometry_vertices(geometry))


def geometry_summary(geometry: Any) -> Dict[str, Any]:
    """Small dict describing a geometry for log lines."""
    rings = exterior_rings(geometry)
    return {
        "type": geometry.get("type") if isinstance(geometry, dict) else None,
        "rings": len(rings),
        "vertices": sum(len(r) for r in rings),
    }
