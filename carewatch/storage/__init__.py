"""
Storage clients for CareWatch.

Modules:
    redis_client: Alerts, profiles, preferences, care circles, pub/sub, metrics
    postgres_client: Notification attempt history
    sinks: Redis-backed event bus and metrics sink
"""

from carewatch.storage.postgres_client import (
    PostgresClient,
    PostgresClientError,
    PostgresConnectionException,
    PostgresOperationError,
    create_postgres_client,
)
from carewatch.storage.redis_client import (
    RedisClient,
    RedisClientError,
    RedisConnectionException,
    RedisOperationError,
    create_redis_client,
)
from carewatch.storage.sinks import RedisEventBus, RedisMetricsSink

__all__: list[str] = [
    "PostgresClient",
    "PostgresClientError",
    "PostgresConnectionException",
    "PostgresOperationError",
    "create_postgres_client",
    "RedisClient",
    "RedisClientError",
    "RedisConnectionException",
    "RedisOperationError",
    "create_redis_client",
    "RedisEventBus",
    "RedisMetricsSink",
]
