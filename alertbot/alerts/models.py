"""
models.py — Data structures shared across the alert pipeline.

All models are plain dataclasses so they can be serialised to JSON
(``to_dict``) for API responses and log lines without a framework.

The inbound alert itself is **not** modelled here: providers send
slightly different shapes and the formatter reads it defensively as a
mapping. ``FormattedAlert`` keeps a reference to the raw payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from alertbot.spatial.geodesy import GeoPoint


# ═══════════════════════════════════════════════════════════════════════════
# Enumerations
# ═══════════════════════════════════════════════════════════════════════════

class Severity(IntEnum):
    """
    CAP severity ladder.

    Ordered so that comparison operators express "at least as severe as".
    """
    UNKNOWN = 0
    MINOR = 1
    MODERATE = 2
    SEVERE = 3
    EXTREME = 4

    @property
    def label(self) -> str:
        """Wire spelling, e.g. ``"Extreme"``."""
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Parse a provider string; anything unrecognised maps to UNKNOWN."""
        if isinstance(value, Severity):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        return cls.__members__.get(value.strip().upper(), cls.UNKNOWN)


class Urgency(str, Enum):
    IMMEDIATE = "Immediate"
    EXPECTED = "Expected"
    FUTURE = "Future"
    PAST = "Past"
    UNKNOWN = "Unknown"


class Certainty(str, Enum):
    OBSERVED = "Observed"
    LIKELY = "Likely"
    POSSIBLE = "Possible"
    UNLIKELY = "Unlikely"
    UNKNOWN = "Unknown"


class ProcessStatus(str, Enum):
    """Terminal status of one ``process_alert`` call."""
    PUBLISHED = "published"
    ALREADY_PROCESSED = "already_processed"
    SKIPPED_SEVERITY = "skipped_severity"
    PUBLISH_FAILED = "publish_failed"
    FAILED = "failed"


class PublishStatus(str, Enum):
    SENT = "sent"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


class DeliveryPath(str, Enum):
    """Which publisher stage delivered the message."""
    IMAGE = "image"
    TEXT = "text"


# ═══════════════════════════════════════════════════════════════════════════
# Subscribers
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class SubscriberPreferences:
    """Per-user filters applied after geofencing."""
    min_severity: Severity = Severity.MINOR
    alert_types: List[str] = field(default_factory=list)  # empty → all events
    muted_senders: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SubscriberPreferences":
        data = data or {}
        min_sev = data.get("min_severity", data.get("minSeverity"))
        return cls(
            min_severity=Severity.parse(min_sev) if min_sev else Severity.MINOR,
            alert_types=list(data.get("alert_types", data.get("alertTypes")) or []),
            muted_senders=list(data.get("muted_senders", data.get("mutedSenders")) or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_severity": self.min_severity.label,
            "alert_types": list(self.alert_types),
            "muted_senders": list(self.muted_senders),
        }


@dataclass
class Subscriber:
    """A chat user with a known (possibly absent) location."""
    user_id: str
    location: Optional[GeoPoint] = None
    preferences: SubscriberPreferences = field(default_factory=SubscriberPreferences)

    @property
    def has_location(self) -> bool:
        return self.location is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subscriber":
        """Accept store records in camelCase (``userId``) or snake_case."""
        return cls(
            user_id=str(data.get("user_id", data.get("userId", ""))),
            location=GeoPoint.from_mapping(data.get("location")),
            preferences=SubscriberPreferences.from_dict(data.get("preferences")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "location": self.location.to_dict() if self.location else None,
            "preferences": self.preferences.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Formatted alerts
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FormattedAlert:
    """A display-ready alert; built once by the formatter, never mutated."""
    title: str
    content: str
    icon: str
    severity: str
    urgency: str
    certainty: str
    start_time: Optional[int]
    end_time: Optional[int]
    source: str
    alert_id: str
    event: str
    coordinates: Optional[GeoPoint] = None
    is_minimal: bool = False
    alert_data: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "icon": self.icon,
            "severity": self.severity,
            "urgency": self.urgency,
            "certainty": self.certainty,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "source": self.source,
            "alert_id": self.alert_id,
            "event": self.event,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "is_minimal": self.is_minimal,
        }


@dataclass(frozen=True)
class NotificationAlert:
    """Compact variant for push-style notifications."""
    alert: FormattedAlert
    short_title: str
    short_content: str

    def to_dict(self) -> Dict[str, Any]:
        d = self.alert.to_dict()
        d["short_title"] = self.short_title
        d["short_content"] = self.short_content
        return d


# ═══════════════════════════════════════════════════════════════════════════
# Publish results
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class PublishResult:
    """Outcome of sending one alert to one destination."""
    status: PublishStatus
    alert_id: str = ""
    delivery: Optional[DeliveryPath] = None
    data: Optional[Any] = None
    error: Optional[str] = None
    retry_after_seconds: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status == PublishStatus.SENT

    @property
    def rate_limited(self) -> bool:
        return self.status == PublishStatus.RATE_LIMITED

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "alert_id": self.alert_id,
        }
        if self.delivery:
            d["delivery"] = self.delivery.value
        if self.data is not None:
            d["data"] = self.data
        if self.error:
            d["error"] = self.error
        if self.retry_after_seconds is not None:
            d["retry_after"] = self.retry_after_seconds
        return d


@dataclass
class RecipientResult:
    """One line of a bulk send tally."""
    user_id: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"user_id": self.user_id, "success": self.success}
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class BulkPublishResult:
    """Aggregate of a sequential send to many subscribers."""
    total: int = 0
    sent: int = 0
    failed: int = 0
    details: List[RecipientResult] = field(default_factory=list)
    rate_limited: bool = False
    retry_after: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.rate_limited and self.failed == 0

    @property
    def not_attempted(self) -> int:
        return self.total - self.sent - self.failed

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "success": self.success,
            "total": self.total,
            "sent": self.sent,
            "failed": self.failed,
            "details": [r.to_dict() for r in self.details],
        }
        if self.rate_limited:
            d["rate_limited"] = True
            d["retry_after"] = self.retry_after
        if self.error:
            d["error"] = self.error
        return d


# ═══════════════════════════════════════════════════════════════════════════
# Processing outcomes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ProcessOutcome:
    """Result of running one alert through the pipeline."""
    status: ProcessStatus
    alert_id: Optional[str] = None
    error: Optional[str] = None
    severity: Optional[str] = None
    publish: Optional[PublishResult] = None
    distribution: Optional[BulkPublishResult] = None

    @property
    def success(self) -> bool:
        return self.status in (
            ProcessStatus.PUBLISHED,
            ProcessStatus.ALREADY_PROCESSED,
            ProcessStatus.SKIPPED_SEVERITY,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "alert_id": self.alert_id,
        }
        if self.error:
            d["error"] = self.error
        if self.severity:
            d["severity"] = self.severity
        if self.publish:
            d["publish"] = self.publish.to_dict()
        if self.distribution:
            d["distribution"] = self.distribution.to_dict()
        return d


@dataclass
class BatchOutcome:
    """Tally for ``process_batch``; a failed alert never aborts the batch."""
    total: int = 0
    processed: int = 0
    failed: int = 0
    outcomes: List[ProcessOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "total": self.total,
            "processed": self.processed,
            "failed": self.failed,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
