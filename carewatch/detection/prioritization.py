"""
Alert prioritization and consolidation.

Orders alerts for display and groups related alerts so a care circle sees
one summary instead of a burst of near-identical notifications.

Example:
    >>> ordered = prioritize_alerts(alerts)
    >>> for group in consolidate_alerts(ordered):
    ...     print(create_consolidated_message(group))
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set

from carewatch.models.alerts import Alert, AlertSeverity, AlertType, as_utc, utc_now

SEVERITY_PRIORITY: Dict[AlertSeverity, int] = {
    AlertSeverity.CRITICAL: 4,
    AlertSeverity.HIGH: 3,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 1,
}

TYPE_PRIORITY: Dict[AlertType, int] = {
    AlertType.EMERGENCY: 7,
    AlertType.FALL_DETECTION: 6,
    AlertType.VITAL_SIGNS: 5,
    AlertType.CHECK_IN: 4,
    AlertType.MEDICATION: 3,
    AlertType.DEVICE: 2,
    AlertType.APPOINTMENT: 1,
}

ESCALATED_BONUS = 20
UNACKNOWLEDGED_BONUS = 10
MAX_RECENCY_SCORE = 5.0

DEFAULT_CONSOLIDATION_WINDOW = timedelta(minutes=15)

# related_data key identifying "the same issue" per alert type
_RELATED_KEYS: Dict[AlertType, str] = {
    AlertType.VITAL_SIGNS: "metric",
    AlertType.MEDICATION: "medication_id",
    AlertType.DEVICE: "device_id",
}


def calculate_alert_priority(alert: Alert, now: Optional[datetime] = None) -> float:
    """
    Score an alert; higher is more urgent.

    Severity dominates (x10), then type, with bonuses for escalated and
    unacknowledged alerts and a small recency score that decays over
    five hours.

    Args:
        alert: The alert to score.
        now: Current time (defaults to now).

    Returns:
        float: Priority score.
    """
    now = as_utc(now) if now else utc_now()
    age_minutes = (now - alert.timestamp).total_seconds() / 60
    recency = max(0.0, MAX_RECENCY_SCORE - age_minutes / 60)

    return (
        SEVERITY_PRIORITY[alert.severity] * 10
        + TYPE_PRIORITY[alert.type]
        + (ESCALATED_BONUS if alert.escalated else 0)
        + (UNACKNOWLEDGED_BONUS if not alert.acknowledged else 0)
        + recency
    )


def prioritize_alerts(alerts: Sequence[Alert], now: Optional[datetime] = None) -> List[Alert]:
    """
    Sort alerts by priority, highest first; ties go to the newer alert.

    Args:
        alerts: Alerts to sort.
        now: Current time (defaults to now).

    Returns:
        List[Alert]: A new sorted list.
    """
    now = as_utc(now) if now else utc_now()
    return sorted(
        alerts,
        key=lambda a: (calculate_alert_priority(a, now), a.timestamp),
        reverse=True,
    )


def are_alerts_related(
    first: Alert,
    second: Alert,
    window: timedelta = DEFAULT_CONSOLIDATION_WINDOW,
) -> bool:
    """
    Check whether two alerts describe the same ongoing issue.

    Related alerts share subject and type, lie within the window of each
    other, and, for vital signs, medication and device alerts, refer to the
    same metric, medication or device.
    """
    if first.subject_id != second.subject_id or first.type != second.type:
        return False

    if abs(first.timestamp - second.timestamp) > window:
        return False

    key = _RELATED_KEYS.get(first.type)
    if key and first.related_data and second.related_data:
        return first.related_data.get(key) == second.related_data.get(key)

    return True


def consolidate_alerts(
    alerts: Sequence[Alert],
    window: timedelta = DEFAULT_CONSOLIDATION_WINDOW,
) -> List[List[Alert]]:
    """
    Group related alerts.

    Each group starts at the first unassigned alert, in input order, and
    collects every later unassigned alert related to it.

    Args:
        alerts: Alerts to group.
        window: Maximum time between related alerts.

    Returns:
        List[List[Alert]]: Groups in order of their first alert.
    """
    groups: List[List[Alert]] = []
    processed: Set[str] = set()

    for alert in alerts:
        if alert.id in processed:
            continue

        group = [alert]
        processed.add(alert.id)

        for other in alerts:
            if other.id in processed:
                continue
            if are_alerts_related(alert, other, window):
                group.append(other)
                processed.add(other.id)

        groups.append(group)

    return groups


def create_consolidated_message(alerts: Sequence[Alert]) -> str:
    """
    Summarize a group of related alerts in one message.

    Example:
        >>> create_consolidated_message([a1, a2, a3])
        '3 vital signs alerts (high severity): heart rate is above ... and 2 more'
    """
    if not alerts:
        return ""
    if len(alerts) == 1:
        return alerts[0].message

    first = alerts[0]
    count = len(alerts)
    top = AlertSeverity.highest(a.severity for a in alerts)

    return (
        f"{count} {first.type.label} alerts ({top.value} severity): "
        f"{first.message} and {count - 1} more"
    )
