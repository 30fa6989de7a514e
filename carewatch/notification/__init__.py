"""
Notification routing and delivery.

Modules:
    preferences: Per-recipient suppression and channel selection
    gateways: Push, SMS and email transports
    delivery: Multi-channel delivery with timeout and retries
    fanout: Care-circle group delivery and follow-up broadcasts
    monitoring: Delivery metrics and statistics
    storage: PostgreSQL-backed attempt history
"""

from carewatch.notification.delivery import (
    DeliveryEngine,
    create_delivery_engine,
    email_subject,
    format_message,
)
from carewatch.notification.fanout import CareCircleNotifier
from carewatch.notification.gateways import HttpGateway, LogGateway, build_gateways
from carewatch.notification.monitoring import (
    DeliveryMonitor,
    is_within_sla,
    summarize_attempts,
)
from carewatch.notification.preferences import (
    channels_for,
    is_within_quiet_hours,
    should_send,
    suppression_reason,
)
from carewatch.notification.storage import AttemptStorage

__all__: list[str] = [
    "DeliveryEngine",
    "create_delivery_engine",
    "email_subject",
    "format_message",
    "CareCircleNotifier",
    "HttpGateway",
    "LogGateway",
    "build_gateways",
    "DeliveryMonitor",
    "is_within_sla",
    "summarize_attempts",
    "channels_for",
    "is_within_quiet_hours",
    "should_send",
    "suppression_reason",
    "AttemptStorage",
]
