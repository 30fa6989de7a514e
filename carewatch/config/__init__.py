"""
Configuration management for CareWatch.

This module handles loading and validating configuration from YAML files.
All configuration values are validated using Pydantic models to ensure
type safety and catch configuration errors early.

Configuration is loaded from YAML files in the config/ directory:
    - detection.yaml: Default vital-sign ranges and escalation timing
    - notifications.yaml: Delivery timeouts, retries and gateways
    - service.yaml: Logging and storage settings

Environment variables can override connection settings:
    - REDIS_URL: Redis connection URL
    - DATABASE_URL: PostgreSQL connection URL
    - LOG_LEVEL: Application log level

Example:
    >>> from carewatch.config import load_config
    >>> config = load_config()
    >>> config.detection.escalation.after_minutes
    30
"""

from carewatch.config.loader import ConfigLoadError, ConfigLoader, load_config
from carewatch.config.models import (
    AppConfig,
    DeliveryConfig,
    DetectionConfig,
    EscalationConfig,
    GatewayConfig,
    GatewayProvider,
    LogFormat,
    LoggingConfig,
    LogLevel,
    NotificationsConfig,
    PostgresConnectionConfig,
    PostgresStorageConfig,
    RangeConfig,
    RedisConnectionConfig,
    RedisStorageConfig,
    ServiceConfig,
    StorageConfig,
)

__all__ = [
    "ConfigLoadError",
    "ConfigLoader",
    "load_config",
    "AppConfig",
    "DeliveryConfig",
    "DetectionConfig",
    "EscalationConfig",
    "GatewayConfig",
    "GatewayProvider",
    "LogFormat",
    "LoggingConfig",
    "LogLevel",
    "NotificationsConfig",
    "PostgresConnectionConfig",
    "PostgresStorageConfig",
    "RangeConfig",
    "RedisConnectionConfig",
    "RedisStorageConfig",
    "ServiceConfig",
    "StorageConfig",
]
