"""
Per-event entry points.

Each function handles one event end to end and is stateless between calls.
Collaborators come from a ClientBundle: pass one explicitly, or omit it to
use the process-wide bundle from get_client_bundle().

Lifecycle events published by the alert manager are routed back into this
module by handle_event():

    alerts.created       -> send_alert_notifications
    alerts.acknowledged  -> notify_alert_acknowledged
    alerts.escalated     -> notify_escalation

Example:
    >>> outcome = await record_vital_signs("subject-1", reading, bundle=bundle)
    >>> if outcome.alert:
    ...     attempts = await send_alert_notifications(outcome.alert, bundle=bundle)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog

from carewatch.clients import ClientBundle, get_client_bundle
from carewatch.detection.manager import (
    TOPIC_ALERT_ACKNOWLEDGED,
    TOPIC_ALERT_CREATED,
    TOPIC_ALERT_ESCALATED,
    ReadingOutcome,
)
from carewatch.models.alerts import (
    Alert,
    AlertAcknowledgedEvent,
    AlertSeverity,
    EmergencyType,
    EscalationEvent,
    EscalationLevel,
)
from carewatch.models.notifications import NotificationAttempt, NotificationChannel
from carewatch.models.vitals import VitalReading

logger = structlog.get_logger(__name__)


def default_channels(severity: AlertSeverity) -> List[NotificationChannel]:
    """
    Channels used for a new alert before recipient preferences apply.

    Critical and high reach every channel, medium goes to push and email,
    low to push only.
    """
    if severity in (AlertSeverity.CRITICAL, AlertSeverity.HIGH):
        return NotificationChannel.all()
    if severity == AlertSeverity.MEDIUM:
        return [NotificationChannel.PUSH, NotificationChannel.EMAIL]
    return [NotificationChannel.PUSH]


async def _resolve(bundle: Optional[ClientBundle]) -> ClientBundle:
    return bundle if bundle is not None else await get_client_bundle()


def _summarize(attempts: Sequence[NotificationAttempt]) -> Dict[str, int]:
    return {
        "total": len(attempts),
        "successful": sum(1 for a in attempts if a.succeeded),
        "failed": sum(1 for a in attempts if not a.succeeded),
    }


async def record_vital_signs(
    subject_id: str,
    reading: VitalReading,
    bundle: Optional[ClientBundle] = None,
) -> ReadingOutcome:
    """
    Check a reading against the subject's ranges and raise an alert if needed.

    The created alert is announced on alerts.created; delivery to the care
    circle is handled by send_alert_notifications.

    Args:
        subject_id: Monitored individual.
        reading: The reading.
        bundle: Collaborators (defaults to the process-wide bundle).

    Returns:
        ReadingOutcome: Anomalies and the created alert, if any.
    """
    bundle = await _resolve(bundle)
    return await bundle.manager.process_reading(subject_id, reading)


async def send_alert_notifications(
    alert: Alert,
    bundle: Optional[ClientBundle] = None,
    channels: Optional[Sequence[NotificationChannel]] = None,
    now: Optional[datetime] = None,
) -> List[NotificationAttempt]:
    """
    Deliver a new alert to the subject's care circle.

    Only members allowed to receive alerts are considered. Each member's
    preferences then narrow the severity-based default channels.

    Args:
        alert: The new alert.
        bundle: Collaborators (defaults to the process-wide bundle).
        channels: Channel override; defaults to default_channels(severity).
        now: Evaluation time for quiet hours.

    Returns:
        List[NotificationAttempt]: Final attempts across all members.
    """
    bundle = await _resolve(bundle)

    members = await bundle.profile_store.get_care_circle(alert.subject_id)
    eligible = [m.recipient_id for m in members if m.can_receive_alerts]
    if not eligible:
        logger.info(
            "no_eligible_care_circle_members",
            alert_id=alert.id,
            subject_id=alert.subject_id,
            members=len(members),
        )
        return []

    requested = list(channels) if channels is not None else default_channels(alert.severity)
    attempts = await bundle.notifier.notify_group(eligible, alert, requested, now=now)

    summary = _summarize(attempts)
    logger.info("alert_notifications_sent", alert_id=alert.id, **summary)
    if summary["failed"]:
        logger.warning(
            "alert_notifications_partially_failed",
            alert_id=alert.id,
            failed=[
                {"recipient_id": a.recipient_id, "channel": a.channel.value}
                for a in attempts
                if not a.succeeded
            ],
        )
    return attempts


async def acknowledge_alert(
    alert_id: str,
    acknowledged_by: str,
    timestamp: Optional[datetime] = None,
    bundle: Optional[ClientBundle] = None,
) -> Alert:
    """
    Acknowledge an alert.

    Raises:
        AlertNotFoundError: If the alert does not exist.
    """
    bundle = await _resolve(bundle)
    return await bundle.manager.acknowledge_alert(alert_id, acknowledged_by, timestamp)


async def escalate_alert(
    alert_id: str,
    level: Optional[EscalationLevel | str] = None,
    timestamp: Optional[datetime] = None,
    bundle: Optional[ClientBundle] = None,
) -> Alert:
    """
    Manually escalate an alert.

    Raises:
        AlertValidationError: If the level is invalid.
        AlertNotFoundError: If the alert does not exist.
    """
    bundle = await _resolve(bundle)
    return await bundle.manager.escalate_alert(alert_id, level, timestamp, manual=True)


async def trigger_emergency(
    subject_id: str,
    emergency_type: EmergencyType | str,
    severity: AlertSeverity | str,
    symptoms: Optional[Sequence[str]] = None,
    location: Optional[Dict[str, Any]] = None,
    bundle: Optional[ClientBundle] = None,
) -> Alert:
    """
    Raise an emergency for a subject.

    The alert is created escalated; responders are reached through the
    alerts.created and alerts.escalated events.

    Raises:
        AlertValidationError: If the emergency type or severity is invalid.
    """
    bundle = await _resolve(bundle)
    return await bundle.manager.trigger_emergency(
        subject_id, emergency_type, severity, symptoms=symptoms, location=location
    )


async def notify_alert_acknowledged(
    payload: Dict[str, Any],
    bundle: Optional[ClientBundle] = None,
) -> List[NotificationAttempt]:
    """
    Tell the care circle that an alert was acknowledged.

    Args:
        payload: A serialized AlertAcknowledgedEvent.
        bundle: Collaborators (defaults to the process-wide bundle).

    Returns:
        List[NotificationAttempt]: Attempts made; empty if the alert is gone.
    """
    bundle = await _resolve(bundle)
    event = AlertAcknowledgedEvent.model_validate(payload)

    alert = await bundle.alert_store.get(event.alert_id)
    if alert is None:
        logger.error("acknowledged_alert_not_found", alert_id=event.alert_id)
        return []

    attempts = await bundle.notifier.notify_acknowledgment(event, alert)
    logger.info("acknowledgment_notifications_sent", alert_id=alert.id, **_summarize(attempts))
    return attempts


async def notify_escalation(
    payload: Dict[str, Any],
    bundle: Optional[ClientBundle] = None,
) -> List[NotificationAttempt]:
    """
    Notify the responders for an escalated alert.

    Args:
        payload: A serialized EscalationEvent.
        bundle: Collaborators (defaults to the process-wide bundle).

    Returns:
        List[NotificationAttempt]: Attempts made.
    """
    bundle = await _resolve(bundle)
    event = EscalationEvent.model_validate(payload)

    alert = await bundle.alert_store.get(event.alert_id)
    attempts = await bundle.notifier.notify_escalation(event, alert)
    logger.info(
        "escalation_notifications_sent",
        alert_id=event.alert_id,
        level=event.escalation_level.value,
        **_summarize(attempts),
    )
    return attempts


async def run_escalation_check(
    now: Optional[datetime] = None,
    bundle: Optional[ClientBundle] = None,
) -> List[Alert]:
    """
    Escalate pending alerts that have waited too long.

    Returns:
        List[Alert]: Alerts escalated by this run.
    """
    bundle = await _resolve(bundle)
    return await bundle.manager.check_escalations(now)


async def handle_event(
    topic: str,
    payload: Dict[str, Any],
    bundle: Optional[ClientBundle] = None,
) -> List[NotificationAttempt]:
    """
    Route a published lifecycle event to its handler.

    Args:
        topic: Event topic.
        payload: Event payload as published.
        bundle: Collaborators (defaults to the process-wide bundle).

    Returns:
        List[NotificationAttempt]: Attempts made by the handler.
    """
    if topic == TOPIC_ALERT_CREATED:
        return await send_alert_notifications(Alert.model_validate(payload["alert"]), bundle)
    if topic == TOPIC_ALERT_ACKNOWLEDGED:
        return await notify_alert_acknowledged(payload, bundle)
    if topic == TOPIC_ALERT_ESCALATED:
        return await notify_escalation(payload, bundle)

    logger.warning("unhandled_event_topic", topic=topic)
    return []
