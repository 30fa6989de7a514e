"""
Care-circle fan-out.

Delivers one alert to a group of recipients, honouring each recipient's
preferences, and broadcasts acknowledgment and escalation follow-ups.

Preferences are read from the profile store on every call so that a change
takes effect on the next alert.

Example:
    >>> notifier = CareCircleNotifier(profile_store, engine)
    >>> attempts = await notifier.notify_group(["carer-1", "carer-2"], alert)
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import structlog

from carewatch.errors import DeliveryTimeoutError
from carewatch.interfaces.collaborators import ProfileStore
from carewatch.models.alerts import (
    Alert,
    AlertAcknowledgedEvent,
    AlertSeverity,
    EscalationEvent,
    EscalationLevel,
    utc_now,
)
from carewatch.models.notifications import NotificationAttempt, NotificationChannel
from carewatch.notification.delivery import DeliveryEngine
from carewatch.notification.preferences import channels_for, suppression_reason

logger = structlog.get_logger(__name__)


ACKNOWLEDGMENT_CHANNELS = [NotificationChannel.PUSH, NotificationChannel.EMAIL]


class CareCircleNotifier:
    """
    Preference-aware group delivery.

    Attributes:
        profile_store: Source of preferences, profiles and group membership.
        engine: Per-recipient delivery engine.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        engine: DeliveryEngine,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.profile_store = profile_store
        self.engine = engine
        self._clock = clock

    async def _plan_recipient(
        self,
        recipient_id: str,
        alert: Alert,
        requested: Optional[Sequence[NotificationChannel]],
        now: datetime,
    ) -> List[NotificationChannel]:
        """
        Get the channels one recipient should be reached on, empty when suppressed.

        A failed preference lookup is treated as no preferences, so the
        recipient is still notified on every requested channel.
        """
        try:
            preferences = await self.profile_store.get_preferences(recipient_id)
        except Exception as e:
            logger.error(
                "preferences_lookup_failed",
                recipient_id=recipient_id,
                alert_id=alert.id,
                error=str(e),
            )
            preferences = None

        reason = suppression_reason(preferences, alert, now)
        if reason is not None:
            logger.info(
                "notification_suppressed",
                recipient_id=recipient_id,
                alert_id=alert.id,
                reason=reason,
            )
            return []

        channels = channels_for(preferences, alert)
        if requested is not None:
            wanted = set(requested)
            channels = [c for c in channels if c in wanted]
        return channels

    async def _deliver(
        self,
        recipient_id: str,
        alert: Alert,
        channels: List[NotificationChannel],
    ) -> List[NotificationAttempt]:
        try:
            return await self.engine.send(recipient_id, alert, channels)
        except DeliveryTimeoutError as e:
            logger.error(
                "recipient_delivery_timed_out",
                recipient_id=recipient_id,
                alert_id=alert.id,
                partial_attempts=len(e.attempts),
            )
            return e.attempts
        except Exception as e:
            logger.error(
                "recipient_delivery_failed",
                recipient_id=recipient_id,
                alert_id=alert.id,
                error=str(e),
            )
            return []

    async def notify_group(
        self,
        recipient_ids: Sequence[str],
        alert: Alert,
        channels: Optional[Sequence[NotificationChannel]] = None,
        now: Optional[datetime] = None,
    ) -> List[NotificationAttempt]:
        """
        Deliver an alert to every eligible recipient in parallel.

        Args:
            recipient_ids: Recipients to consider.
            alert: The alert.
            channels: Requested channels, None for whatever preferences allow.
            now: Evaluation time for quiet hours (defaults to the clock).

        Returns:
            List[NotificationAttempt]: Final attempts of all recipients,
                flattened in recipient order. Timed-out recipients
                contribute their partial attempts.
        """
        now = now or self._clock()

        plans = await asyncio.gather(
            *(self._plan_recipient(rid, alert, channels, now) for rid in recipient_ids)
        )
        eligible = [(rid, plan) for rid, plan in zip(recipient_ids, plans) if plan]

        if not eligible:
            logger.info(
                "notification_group_empty",
                alert_id=alert.id,
                considered=len(recipient_ids),
            )
            return []

        results = await asyncio.gather(
            *(self._deliver(rid, alert, plan) for rid, plan in eligible)
        )
        attempts = [attempt for batch in results for attempt in batch]

        logger.info(
            "notification_group_complete",
            alert_id=alert.id,
            considered=len(recipient_ids),
            notified=len(eligible),
            attempts=len(attempts),
        )
        return attempts

    async def _display_name(self, recipient_id: str) -> Optional[str]:
        try:
            profile = await self.profile_store.get_recipient(recipient_id)
        except Exception as e:
            logger.warning("display_name_lookup_failed", recipient_id=recipient_id, error=str(e))
            return None
        return profile.display_name if profile is not None else None

    async def notify_acknowledgment(
        self,
        event: AlertAcknowledgedEvent,
        alert: Alert,
    ) -> List[NotificationAttempt]:
        """
        Tell the rest of the care circle that an alert is being handled.

        The acknowledger is excluded. The broadcast is a low-severity alert
        sent on push and email.

        Args:
            event: The acknowledgment event.
            alert: The acknowledged alert.

        Returns:
            List[NotificationAttempt]: Attempts made.
        """
        recipients = [
            member for member in event.care_circle_members if member != event.acknowledged_by
        ]
        if not recipients:
            return []

        who = await self._display_name(event.acknowledged_by) or "A care circle member"
        subject = await self._display_name(event.subject_id) or event.subject_id

        broadcast = alert.model_copy(
            update={
                "severity": AlertSeverity.LOW,
                "message": (
                    f"{who} has acknowledged the {alert.type.label} alert for {subject}. "
                    "The situation is being handled."
                ),
            }
        )

        logger.info(
            "acknowledgment_broadcast",
            alert_id=event.alert_id,
            acknowledged_by=event.acknowledged_by,
            recipients=len(recipients),
        )
        return await self.notify_group(recipients, broadcast, ACKNOWLEDGMENT_CHANNELS)

    async def notify_escalation(
        self,
        event: EscalationEvent,
        alert: Optional[Alert] = None,
    ) -> List[NotificationAttempt]:
        """
        Notify the responders for an escalation level.

        care_circle goes to the subject's care-circle members that receive
        alerts. emergency_contact and emergency_services go to the subject's
        emergency contacts; dispatching emergency services happens outside
        this system and is only logged.

        Args:
            event: The escalation event.
            alert: The escalated alert, rebuilt from the event when omitted.

        Returns:
            List[NotificationAttempt]: Attempts made.
        """
        if alert is None:
            alert = Alert(
                id=event.alert_id,
                subject_id=event.subject_id,
                type=event.alert_type,
                severity=event.severity,
                message=event.message,
                escalated=True,
                escalation_level=event.escalation_level,
                escalated_at=event.timestamp,
            )

        if event.escalation_level == EscalationLevel.CARE_CIRCLE:
            members = await self.profile_store.get_care_circle(event.subject_id)
            recipients = [m.recipient_id for m in members if m.can_receive_alerts]
        else:
            recipients = await self.profile_store.get_emergency_contacts(event.subject_id)
            if event.escalation_level == EscalationLevel.EMERGENCY_SERVICES:
                logger.warning(
                    "emergency_services_requested",
                    alert_id=event.alert_id,
                    subject_id=event.subject_id,
                    severity=event.severity.value,
                )

        if not recipients:
            logger.warning(
                "escalation_no_recipients",
                alert_id=event.alert_id,
                subject_id=event.subject_id,
                level=event.escalation_level.value,
            )
            return []

        return await self.notify_group(recipients, alert)
