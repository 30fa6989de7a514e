"""
Async Redis client for alert and profile state.

This module provides a Redis client for storing and retrieving alerts,
recipient profiles and preferences, baselines and care circles. It also
publishes pipeline events over pub/sub and keeps capped metric lists.

Key Patterns:
    - Alerts: `alert:{alert_id}` (JSON), `alerts:by_subject:{subject_id}` (set),
              `alerts:pending` / `alerts:acknowledged` (sets)
    - Recipients: `recipient:{recipient_id}` (JSON)
    - Preferences: `preferences:{recipient_id}` (JSON)
    - Baselines: `baseline:{subject_id}` (JSON)
    - Care circles: `care_circle:{subject_id}` (JSON list)
    - Emergency contacts: `emergency_contacts:{subject_id}` (JSON list)
    - Metrics: `metrics:{name}` (list with LTRIM)
    - Pub/Sub channels: `events:{topic}`

Example:
    >>> from carewatch.config.models import RedisConnectionConfig
    >>> from carewatch.storage.redis_client import RedisClient
    >>>
    >>> client = RedisClient(RedisConnectionConfig(url="redis://localhost:6379"))
    >>> await client.connect()
    >>> await client.save_alert(alert)
    >>> stored = await client.get_alert(alert.id)
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from carewatch.config.models import RedisConnectionConfig, RedisStorageConfig
from carewatch.models.alerts import Alert
from carewatch.models.notifications import (
    CareCircleMember,
    RecipientPreferences,
    RecipientProfile,
)
from carewatch.models.vitals import BaselineRanges

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RedisClientError(Exception):
    """Base exception for Redis client errors."""

    pass


class RedisConnectionException(RedisClientError):
    """Raised when Redis connection fails."""

    pass


class RedisOperationError(RedisClientError):
    """Raised when a Redis operation fails."""

    pass


class RedisClient:
    """
    Async Redis client for CareWatch state.

    Attributes:
        config: Redis connection configuration.
        storage_config: Redis storage configuration (TTLs, retention).
        _pool: Connection pool for efficient connection reuse.
        _client: Redis client instance.
        _connected: Whether the client is connected.

    Example:
        >>> client = RedisClient(RedisConnectionConfig())
        >>> await client.connect()
        >>> try:
        ...     await client.set_preferences(prefs)
        ... finally:
        ...     await client.disconnect()
    """

    # Key prefixes
    KEY_ALERT = "alert"
    KEY_ALERTS_BY_SUBJECT = "alerts:by_subject"
    KEY_ALERTS_PENDING = "alerts:pending"
    KEY_ALERTS_ACKNOWLEDGED = "alerts:acknowledged"
    KEY_RECIPIENT = "recipient"
    KEY_PREFERENCES = "preferences"
    KEY_BASELINE = "baseline"
    KEY_CARE_CIRCLE = "care_circle"
    KEY_EMERGENCY_CONTACTS = "emergency_contacts"
    KEY_METRICS = "metrics"

    # Pub/sub channel prefix
    CHANNEL_EVENTS = "events"

    def __init__(
        self,
        config: Optional[RedisConnectionConfig] = None,
        storage_config: Optional[RedisStorageConfig] = None,
        client: Optional[Redis] = None,  # type: ignore[type-arg]
    ) -> None:
        """
        Initialize the Redis client.

        Args:
            config: Redis connection configuration containing URL, db, and pool settings.
            storage_config: Optional storage configuration. Defaults to
                           RedisStorageConfig() if not provided.
            client: An already constructed asyncio Redis client (created with
                    decode_responses=True). When given, connect() only verifies it.
        """
        self.config = config or RedisConnectionConfig()
        self.storage_config = storage_config or RedisStorageConfig()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client  # type: ignore[type-arg]
        self._owns_client = client is None
        self._connected: bool = False

        logger.info(
            "redis_client_initialized",
            url=self.config.url,
            db=self.config.db,
            injected=client is not None,
        )

    @property
    def is_connected(self) -> bool:
        """
        Check if the client is connected to Redis.

        Returns:
            bool: True if connected, False otherwise.
        """
        return self._connected and self._client is not None

    async def connect(self) -> None:
        """
        Establish connection to Redis.

        Creates a connection pool and initializes the Redis client, unless a
        client was injected.

        Raises:
            RedisConnectionException: If connection fails.
        """
        if self._connected:
            logger.warning("redis_already_connected")
            return

        try:
            if self._client is None:
                self._pool = ConnectionPool.from_url(
                    self.config.url,
                    db=self.config.db,
                    max_connections=self.config.max_connections,
                    socket_timeout=self.config.socket_timeout,
                    socket_connect_timeout=self.config.socket_timeout,
                    decode_responses=True,
                )
                self._client = Redis(connection_pool=self._pool)

            # Verify connection with ping
            await self._client.ping()
            self._connected = True

            logger.info("redis_connected", url=self.config.url, db=self.config.db)

        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            self._connected = False
            logger.error(
                "redis_connection_failed",
                url=self.config.url,
                error=str(e),
            )
            raise RedisConnectionException(
                f"Failed to connect to Redis at {self.config.url}: {e}"
            ) from e

    async def disconnect(self) -> None:
        """
        Close Redis connection and release resources.

        Injected clients are left open for their owner. Safe to call
        multiple times.
        """
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.warning("redis_close_error", error=str(e))
            finally:
                self._client = None

        if self._pool is not None:
            try:
                await self._pool.aclose()
            except Exception as e:
                logger.warning("redis_pool_close_error", error=str(e))
            finally:
                self._pool = None

        self._connected = False
        logger.info("redis_disconnected")

    async def ping(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            bool: True if Redis responds to PING, False otherwise.
        """
        if not self._client:
            return False

        try:
            await self._client.ping()
            return True
        except RedisError as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False

    def _require_connection(self) -> Redis:  # type: ignore[type-arg]
        """
        Ensure client is connected and return the Redis instance.

        Raises:
            RedisConnectionException: If not connected.
        """
        if not self._connected or self._client is None:
            raise RedisConnectionException("Redis client is not connected")
        return self._client

    # =========================================================================
    # GENERIC JSON DOCUMENTS
    # =========================================================================

    async def _set_json(self, key: str, payload: str, ttl: Optional[int] = None) -> None:
        """Store a JSON document under a key."""
        client = self._require_connection()
        try:
            await client.set(key, payload, ex=ttl)
            logger.debug("redis_document_stored", key=key)
        except RedisError as e:
            logger.error("redis_document_store_failed", key=key, error=str(e))
            raise RedisOperationError(f"Failed to store {key}: {e}") from e

    async def _get_model(self, key: str, model: Type[ModelT]) -> Optional[ModelT]:
        """
        Load a Pydantic model stored as JSON.

        Returns:
            Optional[ModelT]: The model, or None if missing or unreadable.
        """
        client = self._require_connection()
        try:
            data = await client.get(key)
        except RedisError as e:
            logger.error("redis_document_retrieve_failed", key=key, error=str(e))
            raise RedisOperationError(f"Failed to retrieve {key}: {e}") from e

        if data is None:
            return None

        try:
            return model.model_validate_json(data)
        except ValidationError as e:
            logger.warning("redis_document_invalid", key=key, error=str(e))
            return None

    async def _get_json_list(self, key: str) -> List[Any]:
        """Load a JSON list; missing or malformed keys yield an empty list."""
        client = self._require_connection()
        try:
            data = await client.get(key)
        except RedisError as e:
            logger.error("redis_document_retrieve_failed", key=key, error=str(e))
            raise RedisOperationError(f"Failed to retrieve {key}: {e}") from e

        if data is None:
            return []
        try:
            value = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("redis_document_invalid", key=key, error=str(e))
            return []
        return value if isinstance(value, list) else []

    # =========================================================================
    # ALERTS
    # =========================================================================

    def _alert_key(self, alert_id: str) -> str:
        """Redis key for an alert: `alert:{alert_id}`."""
        return f"{self.KEY_ALERT}:{alert_id}"

    async def save_alert(self, alert: Alert) -> None:
        """
        Store an alert and update its indices atomically.

        The alert is indexed by subject and by acknowledgment status; a
        status change moves it between the pending and acknowledged sets.

        Args:
            alert: The Alert to store.

        Raises:
            RedisConnectionException: If not connected.
            RedisOperationError: If the operation fails.
        """
        client = self._require_connection()
        ttl = self.storage_config.alert_ttl_days * 86400
        status_key, other_key = (
            (self.KEY_ALERTS_ACKNOWLEDGED, self.KEY_ALERTS_PENDING)
            if alert.acknowledged
            else (self.KEY_ALERTS_PENDING, self.KEY_ALERTS_ACKNOWLEDGED)
        )

        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._alert_key(alert.id), alert.model_dump_json(), ex=ttl)
                pipe.sadd(f"{self.KEY_ALERTS_BY_SUBJECT}:{alert.subject_id}", alert.id)
                pipe.sadd(status_key, alert.id)
                pipe.srem(other_key, alert.id)
                await pipe.execute()

            logger.debug(
                "alert_stored",
                alert_id=alert.id,
                subject_id=alert.subject_id,
                acknowledged=alert.acknowledged,
                escalated=alert.escalated,
            )

        except RedisError as e:
            logger.error("alert_store_failed", alert_id=alert.id, error=str(e))
            raise RedisOperationError(f"Failed to store alert {alert.id}: {e}") from e

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        """
        Retrieve an alert by id.

        Returns:
            Optional[Alert]: The alert, or None if not found.
        """
        return await self._get_model(self._alert_key(alert_id), Alert)

    async def _get_alerts(self, index_key: str) -> List[Alert]:
        """Load every alert referenced by an index set, newest first."""
        client = self._require_connection()
        try:
            alert_ids = await client.smembers(index_key)
        except RedisError as e:
            logger.error("alert_index_read_failed", key=index_key, error=str(e))
            raise RedisOperationError(f"Failed to read {index_key}: {e}") from e

        alerts: List[Alert] = []
        for alert_id in alert_ids:
            alert = await self.get_alert(alert_id)
            if alert is not None:
                alerts.append(alert)
        alerts.sort(key=lambda a: a.timestamp, reverse=True)
        return alerts

    async def get_alerts_by_subject(self, subject_id: str) -> List[Alert]:
        """Get all alerts for a subject, newest first."""
        return await self._get_alerts(f"{self.KEY_ALERTS_BY_SUBJECT}:{subject_id}")

    async def get_alerts_by_status(self, acknowledged: bool) -> List[Alert]:
        """Get acknowledged or pending alerts, newest first."""
        key = self.KEY_ALERTS_ACKNOWLEDGED if acknowledged else self.KEY_ALERTS_PENDING
        return await self._get_alerts(key)

    # =========================================================================
    # PROFILES, PREFERENCES, BASELINES, CARE CIRCLES
    # =========================================================================

    async def set_recipient(self, profile: RecipientProfile) -> None:
        """Store a recipient's contact points."""
        await self._set_json(
            f"{self.KEY_RECIPIENT}:{profile.recipient_id}", profile.model_dump_json()
        )

    async def get_recipient(self, recipient_id: str) -> Optional[RecipientProfile]:
        """Get a recipient's contact points."""
        return await self._get_model(f"{self.KEY_RECIPIENT}:{recipient_id}", RecipientProfile)

    async def set_preferences(self, preferences: RecipientPreferences) -> None:
        """Store a recipient's notification preferences."""
        await self._set_json(
            f"{self.KEY_PREFERENCES}:{preferences.recipient_id}",
            preferences.model_dump_json(),
        )

    async def get_preferences(self, recipient_id: str) -> Optional[RecipientPreferences]:
        """Get a recipient's preferences; None when never configured."""
        return await self._get_model(
            f"{self.KEY_PREFERENCES}:{recipient_id}", RecipientPreferences
        )

    async def set_baseline(self, subject_id: str, baseline: BaselineRanges) -> None:
        """Store a subject's personalized ranges."""
        await self._set_json(f"{self.KEY_BASELINE}:{subject_id}", baseline.model_dump_json())

    async def get_baseline(self, subject_id: str) -> Optional[BaselineRanges]:
        """Get a subject's personalized ranges."""
        return await self._get_model(f"{self.KEY_BASELINE}:{subject_id}", BaselineRanges)

    async def set_care_circle(self, subject_id: str, members: List[CareCircleMember]) -> None:
        """Replace a subject's care circle."""
        payload = json.dumps([m.model_dump(mode="json") for m in members])
        await self._set_json(f"{self.KEY_CARE_CIRCLE}:{subject_id}", payload)

    async def get_care_circle(self, subject_id: str) -> List[CareCircleMember]:
        """Get a subject's care-circle members."""
        raw = await self._get_json_list(f"{self.KEY_CARE_CIRCLE}:{subject_id}")
        members: List[CareCircleMember] = []
        for item in raw:
            try:
                members.append(CareCircleMember.model_validate(item))
            except ValidationError as e:
                logger.warning("care_circle_member_invalid", subject_id=subject_id, error=str(e))
        return members

    async def set_emergency_contacts(self, subject_id: str, recipient_ids: List[str]) -> None:
        """Replace a subject's emergency contacts."""
        await self._set_json(
            f"{self.KEY_EMERGENCY_CONTACTS}:{subject_id}", json.dumps(recipient_ids)
        )

    async def get_emergency_contacts(self, subject_id: str) -> List[str]:
        """Get recipient ids of a subject's emergency contacts."""
        raw = await self._get_json_list(f"{self.KEY_EMERGENCY_CONTACTS}:{subject_id}")
        return [str(item) for item in raw]

    # =========================================================================
    # PUB/SUB AND METRICS
    # =========================================================================

    async def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        """
        Publish an event on `events:{topic}`.

        Args:
            topic: Event topic (e.g., "alerts.escalated").
            payload: JSON-serializable payload.

        Returns:
            int: Number of subscribers that received the message.

        Raises:
            RedisOperationError: If the publish fails.
        """
        client = self._require_connection()
        channel = f"{self.CHANNEL_EVENTS}:{topic}"
        try:
            receivers = await client.publish(channel, json.dumps(payload, default=str))
            logger.debug("event_published", channel=channel, receivers=receivers)
            return receivers
        except RedisError as e:
            logger.error("event_publish_failed", channel=channel, error=str(e))
            raise RedisOperationError(f"Failed to publish to {channel}: {e}") from e

    async def push_metric(self, name: str, sample: Dict[str, Any]) -> None:
        """
        Append a metric sample to `metrics:{name}`, keeping the newest N.

        Raises:
            RedisOperationError: If the operation fails.
        """
        client = self._require_connection()
        key = f"{self.KEY_METRICS}:{name}"
        retention = self.storage_config.metric_retention
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, json.dumps(sample, default=str))
                pipe.ltrim(key, -retention, -1)
                await pipe.execute()
        except RedisError as e:
            raise RedisOperationError(f"Failed to record metric {name}: {e}") from e

    async def get_metric_samples(self, name: str, count: int = 100) -> List[Dict[str, Any]]:
        """Get the newest samples of a metric, oldest first."""
        client = self._require_connection()
        key = f"{self.KEY_METRICS}:{name}"
        try:
            raw = await client.lrange(key, -count, -1)
        except RedisError as e:
            raise RedisOperationError(f"Failed to read metric {name}: {e}") from e
        return [json.loads(item) for item in raw]


async def create_redis_client(
    config: RedisConnectionConfig,
    storage_config: Optional[RedisStorageConfig] = None,
) -> RedisClient:
    """
    Factory function to create and connect a Redis client.

    Args:
        config: Redis connection configuration.
        storage_config: Optional storage configuration.

    Returns:
        RedisClient: A connected Redis client.

    Raises:
        RedisConnectionException: If connection fails.
    """
    client = RedisClient(config, storage_config)
    await client.connect()
    return client
