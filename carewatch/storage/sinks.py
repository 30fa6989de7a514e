"""
Redis-backed event bus and metrics sink.

Both are best-effort. The event bus logs and swallows publish failures;
the metrics sink raises DependencyError, which the delivery monitor
absorbs so metric problems never reach the notification path.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog

from carewatch.errors import DependencyError
from carewatch.storage.redis_client import RedisClient, RedisClientError

logger = structlog.get_logger(__name__)


class RedisEventBus:
    """
    Fire-and-forget event publication over Redis pub/sub.

    Example:
        >>> bus = RedisEventBus(redis_client)
        >>> await bus.publish("alerts.escalated", event.model_dump(mode="json"))
    """

    def __init__(self, redis_client: RedisClient) -> None:
        self.redis_client = redis_client

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """Publish a payload; failures are logged and not raised."""
        try:
            await self.redis_client.publish(topic, payload)
        except RedisClientError as e:
            logger.warning("event_publish_dropped", topic=topic, error=str(e))


class RedisMetricsSink:
    """
    Append-only metric recording into capped Redis lists.

    Each sample carries its dimensions, value and a UTC timestamp.
    """

    def __init__(self, redis_client: RedisClient) -> None:
        self.redis_client = redis_client

    async def record(self, name: str, dims: Dict[str, str], value: float) -> None:
        """
        Record one metric sample.

        Raises:
            DependencyError: If Redis is unavailable.
        """
        sample = {
            "dims": dims,
            "value": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.redis_client.push_metric(name, sample)
        except RedisClientError as e:
            raise DependencyError(f"Metric {name} not recorded: {e}") from e
