"""
Alert data models.

This module defines the alert record, its lifecycle transitions and the
events published when an alert is acknowledged or escalated.

Models:
    AlertType: Kinds of health alert
    AlertSeverity: Severity levels (low < medium < high < critical)
    EscalationLevel: Responder tiers (care_circle, emergency_contact, emergency_services)
    EmergencyType: Kinds of emergency trigger
    Alert: Alert instance with monotonic acknowledged/escalated flags
    EscalationEvent: Fact published when an alert escalates
    AlertAcknowledgedEvent: Fact published when an alert is acknowledged
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Convert to aware UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AlertType(str, Enum):
    """
    Kinds of health alert.

    Attributes:
        VITAL_SIGNS: Out-of-range vital-sign reading.
        MEDICATION: Missed or late medication.
        APPOINTMENT: Upcoming or missed appointment.
        EMERGENCY: Explicit emergency trigger.
        DEVICE: Device fault or disconnection.
        CHECK_IN: Missed daily check-in.
        FALL_DETECTION: Fall detected by a device.
    """

    VITAL_SIGNS = "vital_signs"
    MEDICATION = "medication"
    APPOINTMENT = "appointment"
    EMERGENCY = "emergency"
    DEVICE = "device"
    CHECK_IN = "check_in"
    FALL_DETECTION = "fall_detection"

    @property
    def label(self) -> str:
        """Human-readable type name (underscores become spaces)."""
        return self.value.replace("_", " ")


class AlertSeverity(str, Enum):
    """
    Alert severity levels with a fixed ordering.

    Attributes:
        LOW: Informational, never alerts on its own.
        MEDIUM: Warrants an alert.
        HIGH: Urgent.
        CRITICAL: Bypasses severity filters and quiet hours.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Position in the ordering low < medium < high < critical."""
        return _SEVERITY_RANK[self]

    @property
    def is_critical(self) -> bool:
        """Check if this is the critical severity."""
        return self == AlertSeverity.CRITICAL

    @classmethod
    def highest(cls, severities: Iterable["AlertSeverity"]) -> "AlertSeverity":
        """
        Get the maximum severity, or LOW for an empty iterable.

        Args:
            severities: Severities to compare.

        Returns:
            AlertSeverity: The highest severity present.
        """
        highest = cls.LOW
        for severity in severities:
            if severity.rank > highest.rank:
                highest = severity
        return highest


_SEVERITY_RANK: Dict[AlertSeverity, int] = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}


class EscalationLevel(str, Enum):
    """
    Responder tier an alert is routed to.

    Attributes:
        CARE_CIRCLE: The subject's care-circle members.
        EMERGENCY_CONTACT: Named emergency contacts.
        EMERGENCY_SERVICES: External emergency services.
    """

    CARE_CIRCLE = "care_circle"
    EMERGENCY_CONTACT = "emergency_contact"
    EMERGENCY_SERVICES = "emergency_services"


class EmergencyType(str, Enum):
    """Kinds of emergency trigger."""

    FALL = "fall"
    ABNORMAL_VITALS = "abnormal_vitals"
    MISSED_CHECK_IN = "missed_check_in"
    MANUAL_ALERT = "manual_alert"
    DEVICE_ALERT = "device_alert"


class Alert(BaseModel):
    """
    Health alert instance.

    The acknowledged and escalated flags are monotonic: once set they are
    never cleared. Transitions return new instances.

    Attributes:
        id: Unique identifier.
        subject_id: The monitored individual.
        type: Kind of alert.
        severity: Severity level.
        message: Human-readable message.
        timestamp: When the alert was created.
        acknowledged: Whether someone has acknowledged it.
        acknowledged_by: Who acknowledged it.
        acknowledged_at: When it was acknowledged.
        escalated: Whether it has been escalated.
        escalation_level: Current escalation tier.
        escalated_at: When it was last escalated.
        related_data: Free-form context (anomalies, symptoms, location).

    Example:
        >>> alert = Alert(
        ...     subject_id="user-1",
        ...     type=AlertType.VITAL_SIGNS,
        ...     severity=AlertSeverity.CRITICAL,
        ...     message="heart rate is above normal range (150 > 100). Severity: critical.",
        ... )
        >>> acked = alert.acknowledge("carer-1")
        >>> acked.acknowledged
        True
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique alert identifier",
    )
    subject_id: str = Field(
        ...,
        description="Monitored individual the alert is about",
        min_length=1,
    )
    type: AlertType = Field(..., description="Kind of alert")
    severity: AlertSeverity = Field(..., description="Severity level")
    message: str = Field(..., description="Human-readable message", min_length=1)
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the alert was created",
    )
    acknowledged: bool = Field(default=False, description="Acknowledged flag")
    acknowledged_by: Optional[str] = Field(
        default=None, description="Who acknowledged the alert"
    )
    acknowledged_at: Optional[datetime] = Field(
        default=None, description="When the alert was acknowledged"
    )
    escalated: bool = Field(default=False, description="Escalated flag")
    escalation_level: Optional[EscalationLevel] = Field(
        default=None, description="Current escalation tier"
    )
    escalated_at: Optional[datetime] = Field(
        default=None, description="When the alert was last escalated"
    )
    related_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Context such as anomalies, symptoms or location",
    )

    @field_validator("timestamp", "acknowledged_at", "escalated_at")
    @classmethod
    def normalize_times(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Store all times as aware UTC."""
        return as_utc(v) if v is not None else None

    @property
    def is_pending(self) -> bool:
        """Check if the alert still awaits acknowledgment."""
        return not self.acknowledged

    def acknowledge(
        self, acknowledged_by: str, acknowledged_at: Optional[datetime] = None
    ) -> "Alert":
        """
        Mark the alert acknowledged.

        Acknowledging twice keeps the first acknowledger and time.

        Args:
            acknowledged_by: Who acknowledged the alert.
            acknowledged_at: When (defaults to now).

        Returns:
            Alert: The acknowledged alert.
        """
        if self.acknowledged:
            return self
        return self.model_copy(
            update={
                "acknowledged": True,
                "acknowledged_by": acknowledged_by,
                "acknowledged_at": as_utc(acknowledged_at) if acknowledged_at else utc_now(),
            }
        )

    def escalate(
        self, level: EscalationLevel, escalated_at: Optional[datetime] = None
    ) -> "Alert":
        """
        Mark the alert escalated to a tier.

        Re-escalation overwrites the level; the escalated flag stays set.

        Args:
            level: Target escalation tier.
            escalated_at: When (defaults to now).

        Returns:
            Alert: The escalated alert.
        """
        return self.model_copy(
            update={
                "escalated": True,
                "escalation_level": level,
                "escalated_at": as_utc(escalated_at) if escalated_at else utc_now(),
            }
        )


class EscalationEvent(BaseModel):
    """
    Immutable fact published when an alert escalates.

    Consumed by the fan-out path to notify responders outside the direct
    care relationship.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    alert_id: str = Field(..., description="Escalated alert")
    subject_id: str = Field(..., description="Monitored individual")
    escalation_level: EscalationLevel = Field(..., description="Target tier")
    severity: AlertSeverity = Field(..., description="Alert severity")
    alert_type: AlertType = Field(..., description="Alert type")
    message: str = Field(..., description="Alert message")
    timestamp: datetime = Field(default_factory=utc_now, description="Escalation time")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store the escalation time as aware UTC."""
        return as_utc(v)

    @classmethod
    def from_alert(cls, alert: Alert) -> "EscalationEvent":
        """
        Build the event for an escalated alert.

        Args:
            alert: An alert with escalation_level set.

        Returns:
            EscalationEvent: The event.
        """
        if alert.escalation_level is None:
            raise ValueError(f"Alert {alert.id} has no escalation level")
        return cls(
            alert_id=alert.id,
            subject_id=alert.subject_id,
            escalation_level=alert.escalation_level,
            severity=alert.severity,
            alert_type=alert.type,
            message=alert.message,
            timestamp=alert.escalated_at or utc_now(),
        )


class AlertAcknowledgedEvent(BaseModel):
    """Fact published when an alert is acknowledged."""

    model_config = {"frozen": True, "extra": "forbid"}

    alert_id: str = Field(..., description="Acknowledged alert")
    subject_id: str = Field(..., description="Monitored individual")
    acknowledged_by: str = Field(..., description="Who acknowledged")
    acknowledged_at: datetime = Field(..., description="When")
    care_circle_members: List[str] = Field(
        default_factory=list,
        description="Care-circle member ids at acknowledgment time",
    )
