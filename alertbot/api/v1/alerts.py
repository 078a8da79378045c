"""
FastAPI routes: alert webhook ingestion.

Provides endpoints to:
    POST /alerts          — receive a provider alert (acknowledged immediately)
    POST /alerts/mock     — inject a synthetic alert (non-production only)
    GET  /alerts/status   — pipeline state: threshold, rate limit, recent outcomes

The webhook never waits for publishing: once ``alert.id`` is validated the
payload is handed to the dispatcher and the caller gets 200 straight away,
even if processing later fails.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError

from alertbot.alerts.mock_data import generate_mock_alert
from alertbot.alerts.processor import extract_alert_id
from alertbot.api.schemas import (
    AlertWebhookPayload,
    MockAlertRequest,
    PipelineStatus,
    WebhookAck,
)
from alertbot.core.errors import NotFoundError, ValidationError
from alertbot.services import AlertServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["alerts"])


def get_services(request: Request) -> AlertServices:
    return request.app.state.services


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Invalid alert data", reason="body is not valid JSON")


def validate_alert_payload(body: Any) -> str:
    """Check ``alert.id`` and field types; return the alert id."""
    alert_id = extract_alert_id(body)
    try:
        AlertWebhookPayload.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid alert data",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        )
    return alert_id


def _hand_off(services: AlertServices, alert_data: Dict[str, Any], alert_id: str) -> WebhookAck:
    task_id = services.dispatcher.submit(alert_data)
    logger.info(
        "Accepted alert %s (task %s)", alert_id, task_id,
        extra={"alert_id": alert_id},
    )
    return WebhookAck(alertId=alert_id)


@router.post("", response_model=WebhookAck)
async def receive_alert(
    request: Request,
    services: AlertServices = Depends(get_services),
):
    """Receive a weather alert from the provider webhook."""
    body = await _json_body(request)
    alert_id = validate_alert_payload(body)
    return _hand_off(services, body, alert_id)


@router.post("/mock", response_model=WebhookAck)
async def receive_mock_alert(
    request: Request,
    services: AlertServices = Depends(get_services),
):
    """
    Inject a synthetic alert (disabled in production).

    A body carrying ``alert.id`` is processed as-is; otherwise an alert is
    generated from ``MockAlertRequest`` options (an empty body is fine).
    """
    if services.settings.is_production:
        raise NotFoundError("Endpoint", path="/alerts/mock")

    body = await request.body()
    payload = await _json_body(request) if body.strip() else {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid alert data", reason="body must be a JSON object")

    if isinstance(payload.get("alert"), dict) and payload["alert"].get("id"):
        alert_data = payload
    else:
        try:
            options = MockAlertRequest.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid mock alert options",
                errors=e.errors(include_url=False, include_context=False, include_input=False),
            )
        alert_data = generate_mock_alert(
            alert_id=options.alert_id,
            event=options.event,
            severity=options.severity,
            source=options.source,
            latitude=options.latitude,
            longitude=options.longitude,
            use_multi_polygon=options.use_multi_polygon,
        )

    alert_id = validate_alert_payload(alert_data)
    return _hand_off(services, alert_data, alert_id)


@router.get("/status", response_model=PipelineStatus)
async def pipeline_status(services: AlertServices = Depends(get_services)):
    """Current threshold, rate-limit window and recent processing outcomes."""
    threshold = await services.threshold.get_threshold()
    return PipelineStatus(
        min_severity=threshold.label,
        pending_tasks=services.dispatcher.pending,
        rate_limit=services.rate_limit.snapshot(),
        recent=services.dispatcher.recent_outcomes(),
    )
