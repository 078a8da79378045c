"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Only conditions that abort an operation are exceptions. Expected pipeline
outcomes (duplicate alert, severity below threshold, rate limited, publish
failed) are returned as typed results by the processor and publisher.

Usage:
    from alertbot.core.errors import ValidationError, register_error_handlers

    raise ValidationError("Invalid alert data", field="alert.id")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from alertbot.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class AlertBotError(Exception):
    """Base exception for all service errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ValidationError(AlertBotError):
    """Malformed alert payload (400)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class NotFoundError(AlertBotError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, **identifiers},
        )


class AssetFetchError(AlertBotError):
    """Alert image could not be downloaded (502)."""

    def __init__(self, url: str, message: str = ""):
        super().__init__(
            message=f"Could not fetch image {url}: {message}",
            status_code=502,
            error_code="ASSET_FETCH_ERROR",
            details={"url": url},
        )
        self.url = url


class AuthExpiredError(AlertBotError):
    """Chat platform rejected the bot token and re-authentication failed (401)."""

    def __init__(self, message: str = "Bot authentication failed"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_EXPIRED",
        )


class UnknownAlertIdError(AlertBotError):
    """Committing an alert id that was never reserved (409)."""

    def __init__(self, alert_id: str):
        super().__init__(
            message=f"Alert {alert_id} has no active reservation",
            status_code=409,
            error_code="UNKNOWN_ALERT_ID",
            details={"alert_id": alert_id},
        )
        self.alert_id = alert_id


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }
    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(AlertBotError)
    async def handle_alertbot_error(request: Request, exc: AlertBotError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log("API Error [%s]: %s | details=%s", exc.error_code, exc.message, exc.details)
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message, exc.details, request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical("Unhandled exception: %s\n%s", exc, traceback.format_exc())
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _build_error_response(500, "INTERNAL_ERROR", message, request=request)
