"""
Multi-channel notification delivery engine.

This module provides the DeliveryEngine class which sends one alert to one
recipient on several channels, persists every attempt, retries failures
and records delivery metrics.

Key Features:
    - Contact resolution: phone for push and SMS, email address for email
    - Initial sends run concurrently under one aggregate timeout
    - On timeout, unfinished sends are cancelled, finished ones are
      persisted and DeliveryTimeoutError carries them to the caller
    - Failed channels are retried after the batch, one at a time, up to
      max_attempts sends per channel
    - Attempt-store and metric failures never fail the call

Retry accounting (max_attempts=3):
    fail, fail, deliver  -> final attempt delivered, retry_count=2
    fail, fail, fail     -> final attempt failed, retry_count=3

Example:
    >>> engine = DeliveryEngine(profile_store, gateways, attempt_store, monitor)
    >>> attempts = await engine.send("carer-1", alert, [NotificationChannel.SMS])
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from carewatch.config.models import DeliveryConfig
from carewatch.errors import DeliveryTimeoutError
from carewatch.interfaces.collaborators import (
    AttemptStore,
    GatewayResult,
    ProfileStore,
    TransportGateway,
)
from carewatch.models.alerts import Alert, AlertSeverity, utc_now
from carewatch.models.notifications import (
    NotificationAttempt,
    NotificationChannel,
    NotificationStatus,
    RecipientProfile,
)
from carewatch.notification.monitoring import DeliveryMonitor

logger = structlog.get_logger(__name__)


DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_ATTEMPTS = 3

SEVERITY_MARKERS: Dict[AlertSeverity, str] = {
    AlertSeverity.LOW: "ℹ️",
    AlertSeverity.MEDIUM: "⚠️",
    AlertSeverity.HIGH: "🚨",
    AlertSeverity.CRITICAL: "🆘",
}


def format_message(alert: Alert) -> str:
    """Prefix the alert message with its severity marker."""
    return f"{SEVERITY_MARKERS[alert.severity]} {alert.message}"


def email_subject(alert: Alert) -> str:
    """Subject line for email notifications."""
    return f"Health Alert: {alert.type.label}"


class DeliveryEngine:
    """
    Sends an alert to one recipient across channels.

    Attributes:
        profile_store: Source of recipient contact points.
        gateways: One transport gateway per channel.
        attempt_store: Attempt persistence.
        monitor: Delivery metrics.
        timeout_seconds: Aggregate bound for the initial batch.
        max_attempts: Total sends per channel, including the first.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        gateways: Mapping[NotificationChannel, TransportGateway],
        attempt_store: AttemptStore,
        monitor: Optional[DeliveryMonitor] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the delivery engine.

        Args:
            profile_store: Source of recipient contact points.
            gateways: One transport gateway per channel.
            attempt_store: Attempt persistence.
            monitor: Delivery metrics (defaults to a monitor without a sink).
            timeout_seconds: Aggregate bound for the initial batch.
            max_attempts: Total sends per channel, including the first.
            clock: Source of attempt timestamps.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.profile_store = profile_store
        self.gateways = dict(gateways)
        self.attempt_store = attempt_store
        self.monitor = monitor or DeliveryMonitor()
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self._clock = clock

        logger.info(
            "delivery_engine_initialized",
            channels=[c.value for c in self.gateways],
            timeout_seconds=timeout_seconds,
            max_attempts=max_attempts,
        )

    def _resolve_targets(
        self,
        recipient_id: str,
        profile: RecipientProfile,
        channels: Sequence[NotificationChannel],
    ) -> List[Tuple[NotificationChannel, str]]:
        """Pair each requested channel with its contact point, once per channel."""
        targets: List[Tuple[NotificationChannel, str]] = []
        seen = set()

        for channel in channels:
            channel = NotificationChannel(channel)
            if channel in seen:
                continue
            seen.add(channel)

            contact = profile.contact_for(channel)
            if contact is None:
                logger.debug(
                    "notification_channel_no_contact",
                    recipient_id=recipient_id,
                    channel=channel.value,
                )
                continue
            if channel not in self.gateways:
                logger.warning(
                    "notification_channel_no_gateway",
                    recipient_id=recipient_id,
                    channel=channel.value,
                )
                continue
            targets.append((channel, contact))

        return targets

    async def _send_once(
        self,
        recipient_id: str,
        alert: Alert,
        channel: NotificationChannel,
        contact: str,
        message: str,
        subject: Optional[str],
        attempt_number: int,
        prior_failures: int,
    ) -> NotificationAttempt:
        """
        Perform one send and describe it as an attempt record.

        Transport errors become failed attempts; they are never raised.
        """
        sent_at = self._clock()
        started = time.perf_counter()
        result: Optional[GatewayResult] = None
        failure_reason: Optional[str] = None

        try:
            result = await self.gateways[channel].send(
                contact,
                message,
                alert.id,
                subject=subject if channel == NotificationChannel.EMAIL else None,
            )
            if not result.accepted:
                failure_reason = result.error or "Rejected by transport"
        except Exception as e:
            failure_reason = str(e) or type(e).__name__

        elapsed_ms = (time.perf_counter() - started) * 1000
        latency_ms = (
            result.latency_ms if result is not None and result.latency_ms is not None else elapsed_ms
        )

        if failure_reason is None and result is not None:
            return NotificationAttempt(
                alert_id=alert.id,
                recipient_id=recipient_id,
                contact=contact,
                channel=channel,
                status=(
                    NotificationStatus.DELIVERED if result.delivered else NotificationStatus.SENT
                ),
                attempt_number=attempt_number,
                retry_count=prior_failures,
                sent_at=sent_at,
                delivered_at=self._clock() if result.delivered else None,
                latency_ms=max(latency_ms, 0.0),
            )

        failures = prior_failures + 1
        status = (
            NotificationStatus.RETRYING
            if failures < self.max_attempts
            else NotificationStatus.FAILED
        )
        logger.warning(
            "notification_attempt_failed",
            alert_id=alert.id,
            recipient_id=recipient_id,
            channel=channel.value,
            attempt=attempt_number,
            will_retry=status == NotificationStatus.RETRYING,
            error=failure_reason,
        )
        return NotificationAttempt(
            alert_id=alert.id,
            recipient_id=recipient_id,
            contact=contact,
            channel=channel,
            status=status,
            attempt_number=attempt_number,
            retry_count=failures,
            sent_at=sent_at,
            failure_reason=failure_reason,
            latency_ms=max(latency_ms, 0.0),
        )

    async def _record(self, attempt: NotificationAttempt) -> None:
        """Persist an attempt and emit its metrics; neither may fail delivery."""
        try:
            await self.attempt_store.record(attempt)
        except Exception as e:
            logger.error(
                "notification_attempt_persist_failed",
                attempt_id=attempt.id,
                alert_id=attempt.alert_id,
                channel=attempt.channel.value,
                error=str(e),
            )
        await self.monitor.record_attempt(attempt)

    async def send(
        self,
        recipient_id: str,
        alert: Alert,
        channels: Sequence[NotificationChannel],
    ) -> List[NotificationAttempt]:
        """
        Deliver an alert to one recipient.

        Args:
            recipient_id: Recipient user id.
            alert: The alert to deliver.
            channels: Requested channels.

        Returns:
            List[NotificationAttempt]: The final attempt for each channel
                that had a contact point. Every attempt, retries included,
                has been persisted.

        Raises:
            DeliveryTimeoutError: If the initial batch exceeded the
                aggregate timeout. Carries the attempts that completed.
        """
        profile = await self.profile_store.get_recipient(recipient_id)
        if profile is None:
            logger.error("notification_recipient_not_found", recipient_id=recipient_id)
            return []

        targets = self._resolve_targets(recipient_id, profile, channels)
        if not targets:
            logger.info(
                "notification_no_reachable_channels",
                recipient_id=recipient_id,
                alert_id=alert.id,
                requested=[NotificationChannel(c).value for c in channels],
            )
            return []

        message = format_message(alert)
        subject = email_subject(alert)

        tasks = [
            asyncio.create_task(
                self._send_once(
                    recipient_id, alert, channel, contact, message, subject,
                    attempt_number=1, prior_failures=0,
                )
            )
            for channel, contact in targets
        ]
        done, pending = await asyncio.wait(tasks, timeout=self.timeout_seconds)
        completed = [task.result() for task in tasks if task in done]

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            # No retries follow a timeout
            partial = [
                a.model_copy(update={"status": NotificationStatus.FAILED})
                if a.status == NotificationStatus.RETRYING
                else a
                for a in completed
            ]
            for attempt in partial:
                await self._record(attempt)

            logger.error(
                "notification_delivery_timeout",
                recipient_id=recipient_id,
                alert_id=alert.id,
                timeout_seconds=self.timeout_seconds,
                completed=len(partial),
                cancelled=len(pending),
            )
            raise DeliveryTimeoutError(recipient_id, self.timeout_seconds, partial)

        for attempt in completed:
            await self._record(attempt)

        final: List[NotificationAttempt] = []
        for attempt in completed:
            current = attempt
            while current.status == NotificationStatus.RETRYING:
                logger.info(
                    "notification_retry",
                    alert_id=alert.id,
                    recipient_id=recipient_id,
                    channel=current.channel.value,
                    attempt=current.attempt_number + 1,
                )
                current = await self._send_once(
                    recipient_id,
                    alert,
                    current.channel,
                    current.contact,
                    message,
                    subject,
                    attempt_number=current.attempt_number + 1,
                    prior_failures=current.retry_count,
                )
                await self._record(current)
            final.append(current)

        logger.info(
            "notification_delivery_complete",
            recipient_id=recipient_id,
            alert_id=alert.id,
            succeeded=sum(1 for a in final if a.succeeded),
            failed=sum(1 for a in final if not a.succeeded),
        )
        return final


def create_delivery_engine(
    profile_store: ProfileStore,
    gateways: Mapping[NotificationChannel, TransportGateway],
    attempt_store: AttemptStore,
    monitor: Optional[DeliveryMonitor] = None,
    config: Optional[DeliveryConfig] = None,
) -> DeliveryEngine:
    """
    Factory function to create a DeliveryEngine from configuration.

    Returns:
        DeliveryEngine: A new engine instance.
    """
    config = config or DeliveryConfig()
    return DeliveryEngine(
        profile_store=profile_store,
        gateways=gateways,
        attempt_store=attempt_store,
        monitor=monitor or DeliveryMonitor(sla_seconds=config.sla_seconds),
        timeout_seconds=config.timeout_seconds,
        max_attempts=config.max_attempts,
    )
