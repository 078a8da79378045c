"""
Pydantic schemas for the webhook API.

The inbound models are permissive (unknown keys are kept) because alert
providers add fields freely; they exist to reject wrong *types* and to
document the payload in the OpenAPI schema. Presence of ``alert.id`` is
checked separately so that a missing id is a 400, not a 422.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Inbound alert
# ---------------------------------------------------------------------------

class AlertGeometry(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["Polygon", "MultiPolygon"]
    coordinates: List[Any]


class AlertRef(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[str, int]] = Field(None, examples=["urn:oid:2.49.0.1.840.0.abc123"])
    geometry: Optional[AlertGeometry] = None


class AlertDescription(BaseModel):
    model_config = ConfigDict(extra="allow")

    language: Optional[str] = Field(None, examples=["En"])
    event: Optional[str] = Field(None, examples=["Tornado Warning"])
    headline: Optional[str] = None
    description: Optional[str] = None
    instruction: Optional[str] = None


class AlertWebhookPayload(BaseModel):
    """Webhook body as sent by the alert provider."""
    model_config = ConfigDict(extra="allow")

    alert: AlertRef
    msg_type: Optional[str] = Field(None, examples=["warning"])
    categories: Optional[List[str]] = None
    severity: Optional[str] = Field(None, examples=["Extreme"])
    urgency: Optional[str] = Field(None, examples=["Immediate"])
    certainty: Optional[str] = Field(None, examples=["Observed"])
    start: Optional[float] = Field(None, description="Unix seconds")
    end: Optional[float] = Field(None, description="Unix seconds")
    sender: Optional[str] = Field(None, examples=["NWS New York, NY"])
    description: Optional[List[AlertDescription]] = None


class MockAlertRequest(BaseModel):
    """Options for a synthetic alert (unused when the body is a full alert)."""
    model_config = ConfigDict(extra="ignore")

    alert_id: Optional[str] = None
    event: Optional[str] = Field(None, examples=["Tornado Warning"])
    severity: Optional[str] = Field(None, examples=["Extreme"])
    source: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90, examples=[40.7128])
    longitude: Optional[float] = Field(None, ge=-180, le=180, examples=[-74.0060])
    use_multi_polygon: Optional[bool] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class WebhookAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    alert_id: str = Field(..., alias="alertId")


class PipelineStatus(BaseModel):
    min_severity: str
    pending_tasks: int
    rate_limit: Dict[str, Any]
    recent: List[Dict[str, Any]]


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    version: str
    environment: str
    dedup_backend: str
