"""
Notification delivery monitoring.

Emits per-attempt delivery metrics and summarizes attempt history.

Metrics (all keyed by channel):
    - NotificationAttempt: 1 per attempt, dims channel and status
    - NotificationLatency: latency in ms of successful sends
    - NotificationWithinSLA: 1 when a successful send met the SLA, else 0
    - NotificationFailure: 1 per failed send, dims channel and attempt
    - NotificationSuccess: 1 per successful send

Metric emission is best-effort: sink failures are logged and never raised.
"""

from typing import Dict, List, Optional, Sequence

import structlog

from carewatch.interfaces.collaborators import MetricsSink
from carewatch.models.notifications import (
    ChannelStats,
    DeliveryStats,
    NotificationAttempt,
    NotificationChannel,
    NotificationStatus,
)

logger = structlog.get_logger(__name__)

DEFAULT_SLA_SECONDS = 30.0


def is_within_sla(attempt: NotificationAttempt, sla_seconds: float = DEFAULT_SLA_SECONDS) -> bool:
    """Check whether an attempt's latency met the delivery SLA."""
    return attempt.latency_ms <= sla_seconds * 1000


def summarize_attempts(
    attempts: Sequence[NotificationAttempt],
    sla_seconds: float = DEFAULT_SLA_SECONDS,
) -> DeliveryStats:
    """
    Aggregate delivery statistics over attempts.

    Average latency and SLA violations only count successful sends.

    Args:
        attempts: Attempts to summarize.
        sla_seconds: Delivery latency target.

    Returns:
        DeliveryStats: Totals, per-channel counts and latency figures.
    """
    counts: Dict[NotificationChannel, Dict[str, int]] = {}
    latencies: List[float] = []
    delivered = failed = violations = 0

    for attempt in attempts:
        channel_counts = counts.setdefault(
            attempt.channel, {"total": 0, "delivered": 0, "failed": 0}
        )
        channel_counts["total"] += 1

        if attempt.status == NotificationStatus.DELIVERED:
            delivered += 1
            channel_counts["delivered"] += 1
        elif attempt.status == NotificationStatus.FAILED:
            failed += 1
            channel_counts["failed"] += 1

        if attempt.succeeded:
            latencies.append(attempt.latency_ms)
            if not is_within_sla(attempt, sla_seconds):
                violations += 1

    return DeliveryStats(
        total=len(attempts),
        delivered=delivered,
        failed=failed,
        average_latency_ms=sum(latencies) / len(latencies) if latencies else 0.0,
        sla_violations=violations,
        by_channel={channel: ChannelStats(**c) for channel, c in counts.items()},
    )


class DeliveryMonitor:
    """
    Records delivery metrics for each notification attempt.

    Attributes:
        metrics_sink: Destination for metric samples, or None to disable.
        sla_seconds: Delivery latency target.
    """

    def __init__(
        self,
        metrics_sink: Optional[MetricsSink] = None,
        sla_seconds: float = DEFAULT_SLA_SECONDS,
    ) -> None:
        self.metrics_sink = metrics_sink
        self.sla_seconds = sla_seconds

    async def _emit(self, name: str, dims: Dict[str, str], value: float) -> None:
        if self.metrics_sink is None:
            return
        try:
            await self.metrics_sink.record(name, dims, value)
        except Exception as e:
            logger.warning("delivery_metric_dropped", metric=name, error=str(e))

    async def record_attempt(self, attempt: NotificationAttempt) -> None:
        """
        Emit the metrics for one attempt. Never raises.

        Args:
            attempt: The recorded attempt.
        """
        channel = attempt.channel.value
        status = attempt.status.value

        await self._emit("NotificationAttempt", {"channel": channel, "status": status}, 1)

        if attempt.succeeded:
            within_sla = is_within_sla(attempt, self.sla_seconds)
            await self._emit(
                "NotificationLatency", {"channel": channel, "status": status}, attempt.latency_ms
            )
            await self._emit("NotificationWithinSLA", {"channel": channel}, 1 if within_sla else 0)
            await self._emit("NotificationSuccess", {"channel": channel}, 1)
            if not within_sla:
                logger.warning(
                    "notification_sla_exceeded",
                    attempt_id=attempt.id,
                    alert_id=attempt.alert_id,
                    channel=channel,
                    latency_ms=attempt.latency_ms,
                    sla_seconds=self.sla_seconds,
                )
        else:
            await self._emit(
                "NotificationFailure",
                {"channel": channel, "attempt": str(attempt.attempt_number)},
                1,
            )
