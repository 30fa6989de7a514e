"""
Notification data models.

This module defines delivery channels, recipient profiles and preferences,
and the attempt records written for every send.

Models:
    NotificationChannel: push, sms, email
    NotificationStatus: sent, delivered, failed, retrying
    NotificationAttempt: One send on one channel to one recipient
    RecipientProfile: Contact points for a recipient
    QuietHours: Local time window in which non-critical alerts are held
    AlertTypePreference: Per-type enablement and severity allow-list
    RecipientPreferences: All of a recipient's notification preferences
    CareCircleMember: Membership of a recipient in a subject's care circle
    DeliveryStats: Aggregated delivery statistics
"""

import re
from datetime import datetime, time
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from carewatch.models.alerts import AlertSeverity, AlertType, utc_now

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class NotificationChannel(str, Enum):
    """
    Delivery channels supported by the platform.

    Attributes:
        PUSH: Mobile push, addressed by phone number.
        SMS: Text message, addressed by phone number.
        EMAIL: Email, addressed by email address.
    """

    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"

    @classmethod
    def all(cls) -> List["NotificationChannel"]:
        """Every channel, in declaration order."""
        return list(cls)


class NotificationStatus(str, Enum):
    """
    Outcome of a single send.

    Attributes:
        SENT: Accepted by the transport, delivery not confirmed.
        DELIVERED: Delivery confirmed by the transport.
        FAILED: Failed with no retries left.
        RETRYING: Failed and will be retried.
    """

    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETRYING = "retrying"

    @property
    def is_success(self) -> bool:
        """Check if the send reached the transport."""
        return self in (NotificationStatus.SENT, NotificationStatus.DELIVERED)


class NotificationAttempt(BaseModel):
    """
    Record of one send on one channel.

    Retries produce new records linked by alert_id, recipient_id and
    channel; earlier records are never mutated.

    Attributes:
        id: Unique attempt identifier.
        alert_id: Alert being delivered.
        recipient_id: Recipient user id.
        contact: Phone number or email address used.
        channel: Delivery channel.
        status: Outcome of this send.
        attempt_number: 1 for the first send, incremented per retry.
        retry_count: Failed sends consumed on this channel.
        sent_at: When the send started.
        delivered_at: When the transport confirmed delivery.
        failure_reason: Transport error text for failed sends.
        latency_ms: Send-to-transport-acknowledgment time.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(
        default_factory=lambda: f"notif-{uuid4().hex[:16]}",
        description="Unique attempt identifier",
    )
    alert_id: str = Field(..., description="Alert being delivered")
    recipient_id: str = Field(..., description="Recipient user id")
    contact: str = Field(..., description="Phone number or email address")
    channel: NotificationChannel = Field(..., description="Delivery channel")
    status: NotificationStatus = Field(..., description="Outcome of this send")
    attempt_number: int = Field(default=1, description="Send number", ge=1)
    retry_count: int = Field(default=0, description="Failed sends consumed", ge=0)
    sent_at: datetime = Field(default_factory=utc_now, description="Send start time")
    delivered_at: Optional[datetime] = Field(
        default=None, description="Transport delivery confirmation time"
    )
    failure_reason: Optional[str] = Field(
        default=None, description="Transport error text"
    )
    latency_ms: float = Field(default=0.0, description="Send latency (ms)", ge=0)

    @property
    def succeeded(self) -> bool:
        """Check if this send reached the transport."""
        return self.status.is_success


class RecipientProfile(BaseModel):
    """Contact points for a notification recipient."""

    model_config = {"frozen": True, "extra": "forbid"}

    recipient_id: str = Field(..., description="Recipient user id", min_length=1)
    display_name: Optional[str] = Field(default=None, description="Name shown to others")
    phone: Optional[str] = Field(default=None, description="Phone number for push/sms")
    email: Optional[str] = Field(default=None, description="Email address")

    def contact_for(self, channel: NotificationChannel) -> Optional[str]:
        """
        Get the contact point used for a channel.

        Args:
            channel: Delivery channel.

        Returns:
            Optional[str]: Phone for push/sms, email for email, else None.
        """
        if channel == NotificationChannel.EMAIL:
            return self.email or None
        return self.phone or None


class QuietHours(BaseModel):
    """
    Local time window [start, end) in which non-critical alerts are held.

    A window with start later than end wraps past midnight. A window with
    start equal to end is empty.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    start: str = Field(..., description="Window start, HH:MM")
    end: str = Field(..., description="Window end (exclusive), HH:MM")

    @field_validator("start", "end")
    @classmethod
    def validate_hhmm(cls, value: str) -> str:
        """Require 24-hour HH:MM."""
        if not _HHMM.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value

    @property
    def start_time(self) -> time:
        """Window start as a time."""
        hours, minutes = self.start.split(":")
        return time(int(hours), int(minutes))

    @property
    def end_time(self) -> time:
        """Window end as a time."""
        hours, minutes = self.end.split(":")
        return time(int(hours), int(minutes))


class AlertTypePreference(BaseModel):
    """Per-alert-type preference."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(default=True, description="Whether this type is delivered")
    severities: Optional[List[AlertSeverity]] = Field(
        default=None,
        description="Allowed severities; None allows all",
    )


class RecipientPreferences(BaseModel):
    """
    A recipient's notification preferences.

    A missing preferences record is a separate case (send everything on
    every channel) handled by the preference filter.

    Attributes:
        recipient_id: Recipient user id.
        channels: Enabled channels; None means every channel.
        alert_types: Per-type preferences; types not listed are enabled.
        quiet_hours: Optional quiet window.
        timezone: IANA zone the quiet window is expressed in.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    recipient_id: str = Field(..., description="Recipient user id")
    channels: Optional[List[NotificationChannel]] = Field(
        default=None,
        description="Enabled channels; None means every channel",
    )
    alert_types: Dict[AlertType, AlertTypePreference] = Field(
        default_factory=dict,
        description="Per-type preferences",
    )
    quiet_hours: Optional[QuietHours] = Field(default=None, description="Quiet window")
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone for quiet hours; None uses the clock as given",
    )

    def type_preference(self, alert_type: AlertType) -> Optional[AlertTypePreference]:
        """Get the preference for one alert type, if configured."""
        return self.alert_types.get(alert_type)


class CareCircleMember(BaseModel):
    """Membership of a recipient in a subject's care circle."""

    model_config = {"frozen": True, "extra": "forbid"}

    recipient_id: str = Field(..., description="Member user id")
    can_receive_alerts: bool = Field(
        default=True, description="Whether alerts are delivered to this member"
    )


class ChannelStats(BaseModel):
    """Delivery counts for one channel."""

    model_config = {"frozen": True, "extra": "forbid"}

    total: int = 0
    delivered: int = 0
    failed: int = 0


class DeliveryStats(BaseModel):
    """Aggregated delivery statistics over a set of attempts."""

    model_config = {"frozen": True, "extra": "forbid"}

    total: int = Field(default=0, description="Attempts counted")
    delivered: int = Field(default=0, description="Attempts delivered")
    failed: int = Field(default=0, description="Attempts failed")
    average_latency_ms: float = Field(default=0.0, description="Mean latency (ms)")
    sla_violations: int = Field(default=0, description="Attempts over the SLA")
    by_channel: Dict[NotificationChannel, ChannelStats] = Field(
        default_factory=dict,
        description="Counts per channel",
    )
