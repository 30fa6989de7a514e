"""
Notification attempt storage backed by PostgreSQL.

Every attempt is append-only; retries are separate rows sharing the
alert, recipient and channel.
"""

from datetime import datetime
from typing import List

import structlog

from carewatch.errors import DependencyError
from carewatch.models.notifications import DeliveryStats, NotificationAttempt
from carewatch.notification.monitoring import DEFAULT_SLA_SECONDS, summarize_attempts
from carewatch.storage.postgres_client import PostgresClient, PostgresClientError

logger = structlog.get_logger(__name__)


class AttemptStorage:
    """
    Attempt persistence and history queries.

    Driver errors are raised as DependencyError.

    Attributes:
        postgres_client: Connected PostgreSQL client.
    """

    def __init__(self, postgres_client: PostgresClient) -> None:
        self.postgres_client = postgres_client

    async def record(self, attempt: NotificationAttempt) -> None:
        """
        Persist one attempt.

        Raises:
            DependencyError: If the database is unavailable.
        """
        try:
            await self.postgres_client.insert_attempt(attempt)
        except PostgresClientError as e:
            raise DependencyError(f"Attempt store unavailable: {e}") from e

    async def history(
        self, recipient_id: str, start_time: datetime, end_time: datetime
    ) -> List[NotificationAttempt]:
        """Get a recipient's attempts in a time range, newest first."""
        try:
            return await self.postgres_client.query_attempts(recipient_id, start_time, end_time)
        except PostgresClientError as e:
            raise DependencyError(f"Attempt store unavailable: {e}") from e

    async def for_alert(self, alert_id: str) -> List[NotificationAttempt]:
        """Get every attempt made for an alert, oldest first."""
        try:
            return await self.postgres_client.query_attempts_for_alert(alert_id)
        except PostgresClientError as e:
            raise DependencyError(f"Attempt store unavailable: {e}") from e

    async def stats(
        self,
        recipient_id: str,
        start_time: datetime,
        end_time: datetime,
        sla_seconds: float = DEFAULT_SLA_SECONDS,
    ) -> DeliveryStats:
        """
        Summarize a recipient's delivery history.

        Args:
            recipient_id: Recipient user id.
            start_time: Range start (inclusive).
            end_time: Range end (inclusive).
            sla_seconds: Delivery latency target.

        Returns:
            DeliveryStats: Aggregated counts and latency.
        """
        attempts = await self.history(recipient_id, start_time, end_time)
        stats = summarize_attempts(attempts, sla_seconds)
        logger.debug(
            "delivery_stats_computed",
            recipient_id=recipient_id,
            total=stats.total,
            delivered=stats.delivered,
            failed=stats.failed,
        )
        return stats

    async def purge_expired(self) -> int:
        """Delete attempts past the configured retention period."""
        try:
            return await self.postgres_client.purge_expired_attempts()
        except PostgresClientError as e:
            raise DependencyError(f"Attempt store unavailable: {e}") from e
