"""
Process-wide client bundle.

Holds the connected storage clients, gateways and the components built on
them. Entry points in carewatch.pipeline obtain the bundle through
get_client_bundle(), which builds it once per process and reuses it.
Tests and embedding applications construct a ClientBundle directly and pass
it in.

Example:
    >>> bundle = await get_client_bundle()
    >>> await bundle.manager.process_reading("subject-1", reading)
    >>> await close_client_bundle()
"""

import asyncio
import threading
from typing import Dict, Optional

import structlog

from carewatch.config.loader import load_config
from carewatch.config.models import AppConfig
from carewatch.detection.detector import create_detector
from carewatch.detection.manager import AlertManager
from carewatch.detection.storage import AlertStorage
from carewatch.interfaces.collaborators import (
    AlertStore,
    AttemptStore,
    EventBus,
    MetricsSink,
    ProfileStore,
    TransportGateway,
)
from carewatch.logging_config import setup_logging
from carewatch.models.notifications import NotificationChannel
from carewatch.notification.delivery import DeliveryEngine, create_delivery_engine
from carewatch.notification.fanout import CareCircleNotifier
from carewatch.notification.gateways import build_gateways
from carewatch.notification.monitoring import DeliveryMonitor
from carewatch.notification.storage import AttemptStorage
from carewatch.storage.postgres_client import PostgresClient, create_postgres_client
from carewatch.storage.redis_client import RedisClient, create_redis_client
from carewatch.storage.sinks import RedisEventBus, RedisMetricsSink

logger = structlog.get_logger(__name__)


class ClientBundle:
    """
    Wired collaborators for the alerting pipeline.

    Attributes:
        config: Application configuration.
        profile_store: Baselines, preferences, profiles and care circles.
        alert_store: Alert persistence.
        attempt_store: Notification attempt persistence.
        event_bus: Lifecycle event publication.
        gateways: One transport gateway per channel.
        monitor: Delivery metrics.
        manager: Alert lifecycle.
        engine: Per-recipient delivery.
        notifier: Care-circle fan-out.
    """

    def __init__(
        self,
        config: AppConfig,
        profile_store: ProfileStore,
        alert_store: AlertStore,
        attempt_store: AttemptStore,
        event_bus: EventBus,
        gateways: Dict[NotificationChannel, TransportGateway],
        metrics_sink: Optional[MetricsSink] = None,
        redis_client: Optional[RedisClient] = None,
        postgres_client: Optional[PostgresClient] = None,
    ) -> None:
        """
        Wire the pipeline components over already constructed collaborators.

        Args:
            config: Application configuration.
            profile_store: Baselines, preferences, profiles and care circles.
            alert_store: Alert persistence.
            attempt_store: Notification attempt persistence.
            event_bus: Lifecycle event publication.
            gateways: One transport gateway per channel.
            metrics_sink: Metric destination, None to disable metrics.
            redis_client: Owned Redis client, closed by close().
            postgres_client: Owned PostgreSQL client, closed by close().
        """
        self.config = config
        self.profile_store = profile_store
        self.alert_store = alert_store
        self.attempt_store = attempt_store
        self.event_bus = event_bus
        self.gateways = gateways
        self.redis_client = redis_client
        self.postgres_client = postgres_client

        delivery = config.notifications.delivery
        self.monitor = DeliveryMonitor(metrics_sink, sla_seconds=delivery.sla_seconds)
        self.manager = AlertManager(
            alert_store=alert_store,
            profile_store=profile_store,
            event_bus=event_bus,
            detector=create_detector(config.detection),
            escalation_minutes=config.detection.escalation.after_minutes,
        )
        self.engine: DeliveryEngine = create_delivery_engine(
            profile_store=profile_store,
            gateways=gateways,
            attempt_store=attempt_store,
            monitor=self.monitor,
            config=delivery,
        )
        self.notifier = CareCircleNotifier(profile_store, self.engine)

    @classmethod
    async def create(cls, config: AppConfig) -> "ClientBundle":
        """
        Connect Redis and PostgreSQL and build the production bundle.

        Raises:
            RedisConnectionException: If Redis is unreachable.
            PostgresConnectionException: If PostgreSQL is unreachable.
        """
        storage = config.service.storage
        redis_client = await create_redis_client(config.redis, storage.redis)
        postgres_client: Optional[PostgresClient] = None
        try:
            postgres_client = await create_postgres_client(config.postgres, storage.postgres)
            await postgres_client.ensure_schema()
        except Exception as e:
            logger.error("client_bundle_create_failed", error=str(e))
            if postgres_client is not None:
                await postgres_client.disconnect()
            await redis_client.disconnect()
            raise

        bundle = cls(
            config=config,
            profile_store=redis_client,
            alert_store=AlertStorage(redis_client),
            attempt_store=AttemptStorage(postgres_client),
            event_bus=RedisEventBus(redis_client),
            gateways=build_gateways(config.notifications),
            metrics_sink=RedisMetricsSink(redis_client),
            redis_client=redis_client,
            postgres_client=postgres_client,
        )
        logger.info("client_bundle_created", channels=[c.value for c in bundle.gateways])
        return bundle

    async def close(self) -> None:
        """Close gateways and owned storage clients."""
        for channel, gateway in self.gateways.items():
            close = getattr(gateway, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning("gateway_close_failed", channel=channel.value, error=str(e))

        if self.postgres_client is not None:
            await self.postgres_client.disconnect()
        if self.redis_client is not None:
            await self.redis_client.disconnect()

        logger.info("client_bundle_closed")


_bundle: Optional[ClientBundle] = None
_bundle_lock: Optional[asyncio.Lock] = None
_guard = threading.Lock()


def _creation_lock() -> asyncio.Lock:
    global _bundle_lock
    with _guard:
        if _bundle_lock is None:
            _bundle_lock = asyncio.Lock()
        return _bundle_lock


async def get_client_bundle(config: Optional[AppConfig] = None) -> ClientBundle:
    """
    Get the process-wide bundle, building it on first use.

    Args:
        config: Configuration for the first build; loaded from CONFIG_PATH
            when omitted. Ignored once the bundle exists.

    Returns:
        ClientBundle: The shared bundle.
    """
    global _bundle
    if _bundle is not None:
        return _bundle

    async with _creation_lock():
        if _bundle is None:
            if config is None:
                config = load_config()
                setup_logging(config.log_level, config.service.logging.format)
            _bundle = await ClientBundle.create(config)
    return _bundle


async def close_client_bundle() -> None:
    """Close and forget the process-wide bundle."""
    global _bundle, _bundle_lock
    async with _creation_lock():
        if _bundle is not None:
            await _bundle.close()
            _bundle = None
    with _guard:
        _bundle_lock = None
