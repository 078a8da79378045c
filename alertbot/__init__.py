"""
alertbot — severe weather alert ingestion and chat publishing service.

Packages:
    core     — settings, logging, errors, request middleware
    spatial  — great-circle distance helpers
    alerts   — dedup, severity gate, geofencing, formatting, publishing
    api      — FastAPI webhook routers and schemas
"""

__version__ = "1.0.0"
