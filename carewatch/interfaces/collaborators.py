"""
Protocols for the external collaborators of the alerting pipeline.

The pipeline depends only on these protocols. Redis and PostgreSQL
implementations live in carewatch.storage, transport gateways in
carewatch.notification.gateways, and tests supply in-memory fakes.

Collaborators:
    ProfileStore: Baselines, preferences, recipient profiles, care circles
    AlertStore: Alert records and their lifecycle updates
    AttemptStore: Notification attempt history
    TransportGateway: One channel's send capability
    EventBus: Fire-and-forget fact publication
    MetricsSink: Best-effort metric recording
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from carewatch.models.alerts import Alert, EscalationLevel
from carewatch.models.notifications import (
    CareCircleMember,
    NotificationAttempt,
    RecipientPreferences,
    RecipientProfile,
)
from carewatch.models.vitals import BaselineRanges


class GatewayResult(BaseModel):
    """
    Outcome of one transport send.

    Attributes:
        accepted: Whether the transport accepted the message.
        delivered: Whether the transport confirmed delivery.
        latency_ms: Time the transport took to respond.
        error: Error text when not accepted.
        provider_message_id: Transport-side message id, if any.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    accepted: bool = Field(..., description="Accepted by the transport")
    delivered: bool = Field(default=False, description="Delivery confirmed")
    latency_ms: Optional[float] = Field(default=None, description="Transport latency (ms)")
    error: Optional[str] = Field(default=None, description="Error text")
    provider_message_id: Optional[str] = Field(
        default=None, description="Transport message id"
    )


@runtime_checkable
class ProfileStore(Protocol):
    """Read access to user-owned data: baselines, preferences, contacts."""

    async def get_baseline(self, subject_id: str) -> Optional[BaselineRanges]:
        """Get a subject's personalized ranges, if any."""
        ...

    async def get_preferences(self, recipient_id: str) -> Optional[RecipientPreferences]:
        """Get a recipient's preferences; None when never configured."""
        ...

    async def get_recipient(self, recipient_id: str) -> Optional[RecipientProfile]:
        """Get a recipient's contact points."""
        ...

    async def get_care_circle(self, subject_id: str) -> List[CareCircleMember]:
        """Get the care-circle members of a subject."""
        ...

    async def get_emergency_contacts(self, subject_id: str) -> List[str]:
        """Get recipient ids of a subject's emergency contacts."""
        ...


@runtime_checkable
class AlertStore(Protocol):
    """Alert persistence."""

    async def create(self, alert: Alert) -> str:
        """Persist a new alert and return its id."""
        ...

    async def get(self, alert_id: str, timestamp: Optional[datetime] = None) -> Optional[Alert]:
        """Get an alert by id (and creation timestamp when given)."""
        ...

    async def acknowledge(
        self, alert_id: str, acknowledged_by: str, timestamp: Optional[datetime] = None
    ) -> Optional[Alert]:
        """Mark an alert acknowledged; None if unknown."""
        ...

    async def escalate(
        self, alert_id: str, level: EscalationLevel, timestamp: Optional[datetime] = None
    ) -> Optional[Alert]:
        """Mark an alert escalated to a level; None if unknown."""
        ...

    async def list_by_subject(self, subject_id: str) -> List[Alert]:
        """List a subject's alerts, newest first."""
        ...

    async def list_by_status(self, acknowledged: bool) -> List[Alert]:
        """List alerts by acknowledgment status, newest first."""
        ...


@runtime_checkable
class AttemptStore(Protocol):
    """Notification attempt history."""

    async def record(self, attempt: NotificationAttempt) -> None:
        """Persist one attempt."""
        ...


@runtime_checkable
class TransportGateway(Protocol):
    """Send capability for one channel."""

    async def send(
        self,
        contact: str,
        message: str,
        correlation_id: str,
        subject: Optional[str] = None,
    ) -> GatewayResult:
        """
        Send a message to a contact point.

        Args:
            contact: Phone number or email address.
            message: Message body.
            correlation_id: Alert id, echoed to the transport.
            subject: Subject line (email only).

        Returns:
            GatewayResult: Outcome of the send. May also raise TransportError.
        """
        ...


@runtime_checkable
class EventBus(Protocol):
    """Fire-and-forget fact publication; failures are logged, not raised."""

    async def publish(self, topic: str, payload: Dict[str, object]) -> None:
        """Publish a payload on a topic."""
        ...


@runtime_checkable
class MetricsSink(Protocol):
    """Best-effort metric recording."""

    async def record(self, name: str, dims: Dict[str, str], value: float) -> None:
        """Record one metric sample."""
        ...
