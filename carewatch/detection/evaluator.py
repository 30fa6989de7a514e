"""
Alert decision for vital-sign anomalies.

This module is the only gate between detection and alert creation: it
decides whether a set of anomalies warrants an alert and, when it does,
composes the vital_signs alert for the caller to persist.

Example:
    >>> anomalies = detector.detect(reading, baseline)
    >>> if should_alert(anomalies):
    ...     alert = build_vital_signs_alert("user-1", anomalies)
"""

from datetime import datetime
from typing import List, Optional, Sequence

from carewatch.models.alerts import Alert, AlertSeverity, AlertType, utc_now
from carewatch.models.vitals import AnomalyResult


# Lowest anomaly severity that produces an alert
ALERT_SEVERITY_FLOOR = AlertSeverity.MEDIUM


def should_alert(anomalies: Sequence[AnomalyResult]) -> bool:
    """
    Decide whether anomalies warrant an alert.

    Args:
        anomalies: Detected anomalies.

    Returns:
        bool: True iff any anomaly is medium severity or above.
    """
    return any(a.severity.rank >= ALERT_SEVERITY_FLOOR.rank for a in anomalies)


def highest_severity(anomalies: Sequence[AnomalyResult]) -> AlertSeverity:
    """
    Get the highest anomaly severity.

    Args:
        anomalies: Detected anomalies.

    Returns:
        AlertSeverity: Maximum severity present, or LOW when empty.
    """
    return AlertSeverity.highest(a.severity for a in anomalies)


def _leading_anomaly(anomalies: Sequence[AnomalyResult]) -> AnomalyResult:
    """First anomaly carrying the highest severity."""
    top = highest_severity(anomalies)
    return next(a for a in anomalies if a.severity == top)


def build_vital_signs_alert(
    subject_id: str,
    anomalies: Sequence[AnomalyResult],
    timestamp: Optional[datetime] = None,
    severity: Optional[AlertSeverity] = None,
) -> Alert:
    """
    Compose a vital_signs alert from anomalies.

    The alert starts unacknowledged and unescalated. Its message leads with
    the most severe anomaly; related_data carries every anomaly and the
    leading metric, which alert consolidation keys on.

    Args:
        subject_id: Monitored individual.
        anomalies: Non-empty list of anomalies.
        timestamp: Alert time (defaults to now).
        severity: Caller override; defaults to the highest anomaly severity.

    Returns:
        Alert: The new alert (not yet persisted).

    Raises:
        ValueError: If anomalies is empty.
    """
    if not anomalies:
        raise ValueError("Cannot build a vital signs alert without anomalies")

    leading = _leading_anomaly(anomalies)
    message = leading.description
    others = len(anomalies) - 1
    if others:
        message = f"{message} {others} other reading{'s' if others > 1 else ''} out of range."

    related: List[dict] = [a.to_related_data() for a in anomalies]

    return Alert(
        subject_id=subject_id,
        type=AlertType.VITAL_SIGNS,
        severity=severity or highest_severity(anomalies),
        message=message,
        timestamp=timestamp or utc_now(),
        acknowledged=False,
        escalated=False,
        related_data={
            "metric": leading.metric.value,
            "anomalies": related,
        },
    )
