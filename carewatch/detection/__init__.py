"""
Anomaly detection and alert lifecycle.

Modules:
    detector: Reading to classified anomalies
    evaluator: Alert decision and vital_signs alert composition
    escalation: Escalation level policy and overdue alert selection
    prioritization: Alert ordering and consolidation
    storage: Redis-backed alert store
    manager: Alert lifecycle orchestration
"""

from carewatch.detection.detector import (
    DEFAULT_NORMAL_RANGES,
    AnomalyDetector,
    create_detector,
    determine_severity,
)
from carewatch.detection.escalation import (
    alerts_needing_escalation,
    select_escalation_level,
)
from carewatch.detection.evaluator import (
    build_vital_signs_alert,
    highest_severity,
    should_alert,
)
from carewatch.detection.manager import AlertManager, ReadingOutcome, create_alert_manager
from carewatch.detection.prioritization import (
    calculate_alert_priority,
    consolidate_alerts,
    create_consolidated_message,
    prioritize_alerts,
)
from carewatch.detection.storage import AlertStorage, create_alert_storage

__all__: list[str] = [
    "DEFAULT_NORMAL_RANGES",
    "AnomalyDetector",
    "create_detector",
    "determine_severity",
    "alerts_needing_escalation",
    "select_escalation_level",
    "build_vital_signs_alert",
    "highest_severity",
    "should_alert",
    "AlertManager",
    "ReadingOutcome",
    "create_alert_manager",
    "calculate_alert_priority",
    "consolidate_alerts",
    "create_consolidated_message",
    "prioritize_alerts",
    "AlertStorage",
    "create_alert_storage",
]
