"""
Alert storage backed by Redis.

This module provides the AlertStorage class which persists alerts and
applies lifecycle updates (acknowledgment, escalation) to stored records.

Key Features:
    - Lookup by id, optionally pinned to the creation timestamp
    - Indices by subject and by acknowledgment status
    - Acknowledgment keeps the first acknowledger
    - Escalation overwrites the level and keeps the escalated flag

Example:
    >>> storage = AlertStorage(redis_client)
    >>> await storage.create(alert)
    >>> escalated = await storage.escalate(alert.id, EscalationLevel.CARE_CIRCLE)
"""

from datetime import datetime
from typing import List, Optional

import structlog

from carewatch.errors import DependencyError
from carewatch.models.alerts import Alert, EscalationLevel, as_utc
from carewatch.storage.redis_client import RedisClient, RedisClientError

logger = structlog.get_logger(__name__)


class AlertStorage:
    """
    Alert persistence with lifecycle updates.

    Driver errors are raised as DependencyError.

    Attributes:
        redis_client: Redis client holding alert records and indices.
    """

    def __init__(self, redis_client: RedisClient) -> None:
        """
        Initialize the alert storage.

        Args:
            redis_client: Connected Redis client.
        """
        self.redis_client = redis_client
        logger.debug("alert_storage_initialized")

    async def _save(self, alert: Alert) -> None:
        try:
            await self.redis_client.save_alert(alert)
        except RedisClientError as e:
            raise DependencyError(f"Alert store unavailable: {e}") from e

    async def create(self, alert: Alert) -> str:
        """
        Persist a new alert.

        Returns:
            str: The alert id.
        """
        await self._save(alert)
        logger.info(
            "alert_saved",
            alert_id=alert.id,
            subject_id=alert.subject_id,
            type=alert.type.value,
            severity=alert.severity.value,
        )
        return alert.id

    async def get(
        self, alert_id: str, timestamp: Optional[datetime] = None
    ) -> Optional[Alert]:
        """
        Get an alert by id.

        Args:
            alert_id: Alert id.
            timestamp: When given, the alert must have been created at
                exactly this time.

        Returns:
            Optional[Alert]: The alert, or None if not found.
        """
        try:
            alert = await self.redis_client.get_alert(alert_id)
        except RedisClientError as e:
            raise DependencyError(f"Alert store unavailable: {e}") from e

        if alert is None:
            return None
        if timestamp is not None and alert.timestamp != as_utc(timestamp):
            logger.debug(
                "alert_timestamp_mismatch",
                alert_id=alert_id,
                requested=timestamp.isoformat(),
                stored=alert.timestamp.isoformat(),
            )
            return None
        return alert

    async def acknowledge(
        self,
        alert_id: str,
        acknowledged_by: str,
        timestamp: Optional[datetime] = None,
        acknowledged_at: Optional[datetime] = None,
    ) -> Optional[Alert]:
        """
        Mark an alert acknowledged.

        Returns:
            Optional[Alert]: The updated alert, or None if not found.
        """
        alert = await self.get(alert_id, timestamp)
        if alert is None:
            return None
        if alert.acknowledged:
            return alert

        updated = alert.acknowledge(acknowledged_by, acknowledged_at)
        await self._save(updated)
        return updated

    async def escalate(
        self,
        alert_id: str,
        level: EscalationLevel,
        timestamp: Optional[datetime] = None,
        escalated_at: Optional[datetime] = None,
    ) -> Optional[Alert]:
        """
        Mark an alert escalated to a level.

        Returns:
            Optional[Alert]: The updated alert, or None if not found.
        """
        alert = await self.get(alert_id, timestamp)
        if alert is None:
            return None

        updated = alert.escalate(level, escalated_at)
        await self._save(updated)
        return updated

    async def list_by_subject(self, subject_id: str) -> List[Alert]:
        """List a subject's alerts, newest first."""
        try:
            return await self.redis_client.get_alerts_by_subject(subject_id)
        except RedisClientError as e:
            raise DependencyError(f"Alert store unavailable: {e}") from e

    async def list_by_status(self, acknowledged: bool) -> List[Alert]:
        """List acknowledged or pending alerts, newest first."""
        try:
            return await self.redis_client.get_alerts_by_status(acknowledged)
        except RedisClientError as e:
            raise DependencyError(f"Alert store unavailable: {e}") from e


async def create_alert_storage(redis_client: RedisClient) -> AlertStorage:
    """
    Factory function to create AlertStorage.

    Args:
        redis_client: Connected Redis client.

    Returns:
        AlertStorage: A new storage instance.
    """
    return AlertStorage(redis_client)
