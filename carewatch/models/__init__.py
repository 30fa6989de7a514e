"""
Data models for CareWatch.

All models are Pydantic models; records that must not change after creation
are frozen and transitions return copies.

Modules:
    alerts: Alert record, lifecycle enums and events
    vitals: Readings, baselines and anomaly results
    notifications: Channels, preferences and delivery attempts
"""

from carewatch.models.alerts import (
    Alert,
    AlertAcknowledgedEvent,
    AlertSeverity,
    AlertType,
    EmergencyType,
    EscalationEvent,
    EscalationLevel,
    as_utc,
    utc_now,
)
from carewatch.models.notifications import (
    AlertTypePreference,
    CareCircleMember,
    ChannelStats,
    DeliveryStats,
    NotificationAttempt,
    NotificationChannel,
    NotificationStatus,
    QuietHours,
    RecipientPreferences,
    RecipientProfile,
)
from carewatch.models.vitals import (
    AnomalyResult,
    BaselineRanges,
    BloodPressure,
    MetricRange,
    ReadingSource,
    VitalMetric,
    VitalReading,
)

__all__: list[str] = [
    # Alerts
    "Alert",
    "AlertAcknowledgedEvent",
    "AlertSeverity",
    "AlertType",
    "EmergencyType",
    "EscalationEvent",
    "EscalationLevel",
    "as_utc",
    "utc_now",
    # Notifications
    "AlertTypePreference",
    "CareCircleMember",
    "ChannelStats",
    "DeliveryStats",
    "NotificationAttempt",
    "NotificationChannel",
    "NotificationStatus",
    "QuietHours",
    "RecipientPreferences",
    "RecipientProfile",
    # Vitals
    "AnomalyResult",
    "BaselineRanges",
    "BloodPressure",
    "MetricRange",
    "ReadingSource",
    "VitalMetric",
    "VitalReading",
]
