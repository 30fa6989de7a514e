"""
Alert manager for alert lifecycle management.

This module provides the AlertManager class which orchestrates the alert
lifecycle: creation from readings or emergency triggers, acknowledgment,
escalation and the periodic escalation check.

Key Features:
    - Turns readings into vital_signs alerts when anomalies warrant it
    - Validates type, severity and escalation level before any state change
    - Acknowledgment and escalation are monotonic; re-escalation overwrites
      the level with a warning
    - Publishes lifecycle events for the notification fan-out

Event topics:
    - alerts.created: {"alert": ...}
    - alerts.acknowledged: AlertAcknowledgedEvent
    - alerts.escalated: EscalationEvent

Example:
    >>> manager = AlertManager(alert_store, profile_store, event_bus)
    >>> outcome = await manager.process_reading("user-1", reading)
    >>> if outcome.alert:
    ...     await manager.escalate_alert(outcome.alert.id, manual=False)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog
from pydantic import BaseModel, Field

from carewatch.detection.detector import AnomalyDetector
from carewatch.detection.escalation import (
    DEFAULT_ESCALATION_MINUTES,
    alerts_needing_escalation,
    parse_escalation_level,
    select_escalation_level,
)
from carewatch.detection.evaluator import build_vital_signs_alert, should_alert
from carewatch.errors import AlertNotFoundError, AlertValidationError
from carewatch.interfaces.collaborators import AlertStore, EventBus, ProfileStore
from carewatch.models.alerts import (
    Alert,
    AlertAcknowledgedEvent,
    AlertSeverity,
    AlertType,
    EmergencyType,
    EscalationEvent,
    EscalationLevel,
    utc_now,
)
from carewatch.models.vitals import AnomalyResult, VitalReading

logger = structlog.get_logger(__name__)


TOPIC_ALERT_CREATED = "alerts.created"
TOPIC_ALERT_ACKNOWLEDGED = "alerts.acknowledged"
TOPIC_ALERT_ESCALATED = "alerts.escalated"


class ReadingOutcome(BaseModel):
    """Result of processing one reading."""

    model_config = {"frozen": True}

    subject_id: str = Field(..., description="Monitored individual")
    anomalies: List[AnomalyResult] = Field(default_factory=list)
    alert_triggered: bool = Field(default=False, description="Whether an alert was created")
    alert: Optional[Alert] = Field(default=None, description="The created alert")


def _parse_alert_type(value: AlertType | str) -> AlertType:
    try:
        return AlertType(value)
    except ValueError as e:
        raise AlertValidationError(f"Invalid alert type: {value!r}") from e


def _parse_severity(value: AlertSeverity | str) -> AlertSeverity:
    try:
        return AlertSeverity(value)
    except ValueError as e:
        raise AlertValidationError(f"Invalid severity: {value!r}") from e


def _parse_emergency_type(value: EmergencyType | str) -> EmergencyType:
    try:
        return EmergencyType(value)
    except ValueError as e:
        raise AlertValidationError(f"Invalid emergency type: {value!r}") from e


class AlertManager:
    """
    Orchestrates the alert lifecycle.

    Attributes:
        alert_store: Alert persistence.
        profile_store: Baselines and care circles.
        event_bus: Lifecycle event publication.
        detector: Anomaly detector for readings.
        escalation_minutes: Age at which pending alerts escalate.
    """

    def __init__(
        self,
        alert_store: AlertStore,
        profile_store: ProfileStore,
        event_bus: EventBus,
        detector: Optional[AnomalyDetector] = None,
        escalation_minutes: int = DEFAULT_ESCALATION_MINUTES,
    ) -> None:
        """
        Initialize the AlertManager.

        Args:
            alert_store: Alert persistence.
            profile_store: Baselines and care circles.
            event_bus: Lifecycle event publication.
            detector: Anomaly detector (defaults to population ranges).
            escalation_minutes: Age at which pending alerts escalate.
        """
        self.alert_store = alert_store
        self.profile_store = profile_store
        self.event_bus = event_bus
        self.detector = detector or AnomalyDetector()
        self.escalation_minutes = escalation_minutes

        logger.info("alert_manager_initialized", escalation_minutes=escalation_minutes)

    async def _publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """Publish an event; the alert record stays the source of truth."""
        try:
            await self.event_bus.publish(topic, payload)
        except Exception as e:
            logger.warning("lifecycle_event_dropped", topic=topic, error=str(e))

    async def process_reading(self, subject_id: str, reading: VitalReading) -> ReadingOutcome:
        """
        Detect anomalies in a reading and create an alert when warranted.

        Args:
            subject_id: Monitored individual.
            reading: The reading.

        Returns:
            ReadingOutcome: Anomalies and the created alert, if any.
        """
        baseline = await self.profile_store.get_baseline(subject_id)
        anomalies = self.detector.detect(reading, baseline)

        if not should_alert(anomalies):
            logger.debug(
                "reading_processed_no_alert",
                subject_id=subject_id,
                anomalies=len(anomalies),
            )
            return ReadingOutcome(subject_id=subject_id, anomalies=anomalies)

        alert = build_vital_signs_alert(subject_id, anomalies, timestamp=reading.timestamp)
        await self._persist_new(alert)

        return ReadingOutcome(
            subject_id=subject_id,
            anomalies=anomalies,
            alert_triggered=True,
            alert=alert,
        )

    async def _persist_new(self, alert: Alert) -> None:
        await self.alert_store.create(alert)
        logger.info(
            "alert_created",
            alert_id=alert.id,
            subject_id=alert.subject_id,
            type=alert.type.value,
            severity=alert.severity.value,
        )
        await self._publish(TOPIC_ALERT_CREATED, {"alert": alert.model_dump(mode="json")})

    async def create_alert(
        self,
        subject_id: str,
        alert_type: AlertType | str,
        severity: AlertSeverity | str,
        message: str,
        related_data: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> Alert:
        """
        Validate and persist a new alert.

        Raises:
            AlertValidationError: If subject, type, severity or message is invalid.
        """
        if not subject_id:
            raise AlertValidationError("Missing subject id")
        if not message or not message.strip():
            raise AlertValidationError("Missing alert message")

        alert = Alert(
            subject_id=subject_id,
            type=_parse_alert_type(alert_type),
            severity=_parse_severity(severity),
            message=message,
            timestamp=timestamp or utc_now(),
            acknowledged=False,
            escalated=False,
            related_data=related_data or {},
        )
        await self._persist_new(alert)
        return alert

    async def trigger_emergency(
        self,
        subject_id: str,
        emergency_type: EmergencyType | str,
        severity: AlertSeverity | str,
        symptoms: Optional[Sequence[str]] = None,
        location: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> Alert:
        """
        Create an emergency alert that is escalated from the start.

        Critical emergencies stay critical and go to emergency services;
        every other severity becomes high and goes to emergency contacts.

        Raises:
            AlertValidationError: If subject, emergency type or severity is invalid.
        """
        if not subject_id:
            raise AlertValidationError("Missing subject id")
        kind = _parse_emergency_type(emergency_type)
        requested = _parse_severity(severity)

        alert_severity = (
            AlertSeverity.CRITICAL if requested.is_critical else AlertSeverity.HIGH
        )
        message = f"Emergency: {kind.value.replace('_', ' ')}"
        if symptoms:
            message = f"{message} - Symptoms: {', '.join(symptoms)}"

        now = timestamp or utc_now()
        alert = Alert(
            subject_id=subject_id,
            type=AlertType.EMERGENCY,
            severity=alert_severity,
            message=message,
            timestamp=now,
            related_data={
                "emergency_type": kind.value,
                "requested_severity": requested.value,
                "symptoms": list(symptoms or []),
                "location": location,
            },
        ).escalate(select_escalation_level(alert_severity), now)

        await self._persist_new(alert)
        await self._publish(
            TOPIC_ALERT_ESCALATED, EscalationEvent.from_alert(alert).model_dump(mode="json")
        )

        logger.warning(
            "emergency_triggered",
            alert_id=alert.id,
            subject_id=subject_id,
            emergency_type=kind.value,
            severity=alert_severity.value,
            escalation_level=alert.escalation_level.value if alert.escalation_level else None,
        )
        return alert

    async def acknowledge_alert(
        self,
        alert_id: str,
        acknowledged_by: str,
        timestamp: Optional[datetime] = None,
        acknowledged_at: Optional[datetime] = None,
    ) -> Alert:
        """
        Acknowledge an alert and notify the care circle via an event.

        Acknowledging an already acknowledged alert returns it unchanged
        and publishes nothing.

        Args:
            alert_id: Alert id.
            acknowledged_by: Who acknowledged.
            timestamp: Creation timestamp pinning the alert, if known.
            acknowledged_at: Acknowledgment time (defaults to now).

        Raises:
            AlertNotFoundError: If the alert does not exist.
        """
        if not acknowledged_by:
            raise AlertValidationError("Missing acknowledging user")

        existing = await self.alert_store.get(alert_id, timestamp)
        if existing is None:
            raise AlertNotFoundError(alert_id)
        if existing.acknowledged:
            logger.info(
                "alert_already_acknowledged",
                alert_id=alert_id,
                acknowledged_by=existing.acknowledged_by,
            )
            return existing

        acknowledged_at = acknowledged_at or utc_now()
        alert = await self.alert_store.acknowledge(
            alert_id, acknowledged_by, timestamp, acknowledged_at=acknowledged_at
        )
        if alert is None:
            raise AlertNotFoundError(alert_id)

        members = await self.profile_store.get_care_circle(alert.subject_id)
        event = AlertAcknowledgedEvent(
            alert_id=alert.id,
            subject_id=alert.subject_id,
            acknowledged_by=acknowledged_by,
            acknowledged_at=alert.acknowledged_at or acknowledged_at,
            care_circle_members=[m.recipient_id for m in members],
        )

        logger.info("alert_acknowledged", alert_id=alert.id, acknowledged_by=acknowledged_by)
        await self._publish(TOPIC_ALERT_ACKNOWLEDGED, event.model_dump(mode="json"))
        return alert

    async def escalate_alert(
        self,
        alert_id: str,
        level: Optional[EscalationLevel | str] = None,
        timestamp: Optional[datetime] = None,
        manual: bool = True,
        escalated_at: Optional[datetime] = None,
    ) -> Alert:
        """
        Escalate an alert and publish an EscalationEvent.

        Args:
            alert_id: Alert id.
            level: Explicit level; otherwise chosen by policy.
            timestamp: Creation timestamp pinning the alert, if known.
            manual: Whether a person invoked the escalation.
            escalated_at: Escalation time (defaults to now).

        Returns:
            Alert: The escalated alert.

        Raises:
            AlertValidationError: If level is invalid.
            AlertNotFoundError: If the alert does not exist.
        """
        requested = parse_escalation_level(level) if level is not None else None

        existing = await self.alert_store.get(alert_id, timestamp)
        if existing is None:
            raise AlertNotFoundError(alert_id)

        target = select_escalation_level(existing.severity, manual=manual, requested=requested)

        if existing.escalated:
            logger.warning(
                "alert_already_escalated",
                alert_id=alert_id,
                previous_level=existing.escalation_level.value if existing.escalation_level else None,
                new_level=target.value,
            )

        alert = await self.alert_store.escalate(
            alert_id, target, timestamp, escalated_at=escalated_at or utc_now()
        )
        if alert is None:
            raise AlertNotFoundError(alert_id)

        logger.info(
            "alert_escalated",
            alert_id=alert.id,
            subject_id=alert.subject_id,
            escalation_level=target.value,
            manual=manual,
        )
        await self._publish(
            TOPIC_ALERT_ESCALATED, EscalationEvent.from_alert(alert).model_dump(mode="json")
        )
        return alert

    async def check_escalations(self, now: Optional[datetime] = None) -> List[Alert]:
        """
        Escalate pending alerts that have waited past the escalation window.

        Args:
            now: Current time (defaults to now).

        Returns:
            List[Alert]: Alerts escalated by this check.
        """
        pending = await self.alert_store.list_by_status(acknowledged=False)
        due = alerts_needing_escalation(pending, now, self.escalation_minutes)

        escalated: List[Alert] = []
        for alert in due:
            try:
                escalated.append(
                    await self.escalate_alert(alert.id, manual=False, escalated_at=now)
                )
            except AlertNotFoundError:
                logger.warning("escalation_candidate_vanished", alert_id=alert.id)

        if escalated:
            logger.info("escalation_check_complete", escalated=len(escalated), pending=len(pending))
        return escalated


async def create_alert_manager(
    alert_store: AlertStore,
    profile_store: ProfileStore,
    event_bus: EventBus,
    detector: Optional[AnomalyDetector] = None,
    escalation_minutes: int = DEFAULT_ESCALATION_MINUTES,
) -> AlertManager:
    """
    Factory function to create an AlertManager.

    Returns:
        AlertManager: A new manager instance.
    """
    return AlertManager(
        alert_store=alert_store,
        profile_store=profile_store,
        event_bus=event_bus,
        detector=detector,
        escalation_minutes=escalation_minutes,
    )
