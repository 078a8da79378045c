"""
test_mock_data.py — Synthetic alerts used by the mock endpoint.

Run with:
    pytest tests/test_mock_data.py -v
"""

from __future__ import annotations

import random

from alertbot.alerts.formatter import extract_area, format_alert_for_posting
from alertbot.alerts.geo_fence import point_in_geometry
from alertbot.alerts.mock_data import (
    ALERT_TYPES,
    generate_mock_alert,
    generate_mock_alerts,
    generate_mock_multi_polygon,
    generate_mock_polygon,
)
from alertbot.alerts.processor import extract_alert_id
from alertbot.spatial.geodesy import GeoPoint


class TestMockGeometry:

    def test_polygon_is_closed_square_around_centre(self):
        (ring,) = generate_mock_polygon(10.0, 20.0, size=0.5)
        assert ring[0] == ring[-1]
        assert len(ring) == 5
        assert point_in_geometry(GeoPoint(10.0, 20.0), {"type": "Polygon", "coordinates": [ring]})

    def test_multi_polygon_has_northern_box(self):
        coords = generate_mock_multi_polygon(10.0, 20.0)
        geometry = {"type": "MultiPolygon", "coordinates": coords}
        assert len(coords) == 2
        assert point_in_geometry(GeoPoint(10.85, 20.0), geometry)
        assert not point_in_geometry(GeoPoint(10.6, 20.0), geometry)


class TestMockAlerts:

    def test_shape_matches_webhook_payload(self):
        alert = generate_mock_alert(rng=random.Random(7))

        assert extract_alert_id(alert).startswith("mock-alert-")
        assert alert["end"] - alert["start"] == 6 * 3600
        assert alert["description"][0]["language"] == "En"
        assert alert["alert"]["geometry"]["type"] in ("Polygon", "MultiPolygon")

    def test_named_event_and_overrides(self):
        alert = generate_mock_alert(
            alert_id="m-1", event="flood warning", severity="Extreme",
            source="UK Met Office", start=1000, use_multi_polygon=True,
        )

        assert alert["alert"]["id"] == "m-1"
        assert alert["description"][0]["event"] == "Flood Warning"
        assert alert["severity"] == "Extreme"
        assert alert["urgency"] == "Expected"
        assert alert["sender"] == "UK Met Office"
        assert alert["end"] == 1000 + 6 * 3600
        assert alert["alert"]["geometry"]["type"] == "MultiPolygon"

    def test_type_default_severity(self):
        alert = generate_mock_alert(event="Air Quality Alert")
        assert alert["severity"] == "Minor"

    def test_narrative_has_where_section(self):
        alert = generate_mock_alert(event="Tornado Warning", latitude=40.0, longitude=-74.0)
        assert extract_area(alert) == "Area at latitude 40.0000 and longitude -74.0000."

    def test_generic_narrative(self):
        alert = generate_mock_alert(event="Air Quality Alert")
        assert "AIR QUALITY ALERT FOR THE AREA" in alert["description"][0]["description"]

    def test_every_type_formats(self):
        for alert_type in ALERT_TYPES:
            formatted = format_alert_for_posting(generate_mock_alert(event=alert_type.event))
            assert not formatted.is_minimal
            assert alert_type.event in formatted.title

    def test_batch_is_repeatable_with_seed(self):
        first = generate_mock_alerts(3, rng=random.Random(42))
        second = generate_mock_alerts(3, rng=random.Random(42))

        assert len(first) == 3
        assert [a["severity"] for a in first] == [a["severity"] for a in second]
        assert [a["alert"]["geometry"] for a in first] == [a["alert"]["geometry"] for a in second]
