"""
Escalation policy.

Selects the responder tier for an escalation and finds alerts that have
waited too long without acknowledgment.

Policy:
    - An explicitly requested level always wins
    - A manually invoked escalation targets the care circle first
    - Critical alerts go to emergency services
    - Everything else goes to emergency contacts
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from carewatch.errors import AlertValidationError
from carewatch.models.alerts import Alert, AlertSeverity, EscalationLevel, as_utc, utc_now

DEFAULT_ESCALATION_MINUTES = 30


def parse_escalation_level(level: EscalationLevel | str) -> EscalationLevel:
    """
    Validate an escalation level.

    Raises:
        AlertValidationError: If the level is not one of care_circle,
            emergency_contact, emergency_services.
    """
    try:
        return EscalationLevel(level)
    except ValueError as e:
        valid = ", ".join(lvl.value for lvl in EscalationLevel)
        raise AlertValidationError(
            f"Invalid escalation level {level!r}. Must be one of: {valid}"
        ) from e


def select_escalation_level(
    severity: AlertSeverity,
    manual: bool = False,
    requested: Optional[EscalationLevel | str] = None,
) -> EscalationLevel:
    """
    Choose the escalation tier for an alert.

    Args:
        severity: Alert severity.
        manual: Whether a person invoked the escalation.
        requested: Explicit level from the caller.

    Returns:
        EscalationLevel: The selected tier.

    Raises:
        AlertValidationError: If requested is not a valid level.

    Example:
        >>> select_escalation_level(AlertSeverity.CRITICAL)
        <EscalationLevel.EMERGENCY_SERVICES: 'emergency_services'>
        >>> select_escalation_level(AlertSeverity.CRITICAL, manual=True)
        <EscalationLevel.CARE_CIRCLE: 'care_circle'>
    """
    if requested is not None:
        return parse_escalation_level(requested)
    if manual:
        return EscalationLevel.CARE_CIRCLE
    if severity == AlertSeverity.CRITICAL:
        return EscalationLevel.EMERGENCY_SERVICES
    return EscalationLevel.EMERGENCY_CONTACT


def alerts_needing_escalation(
    alerts: Sequence[Alert],
    now: Optional[datetime] = None,
    escalation_minutes: int = DEFAULT_ESCALATION_MINUTES,
) -> List[Alert]:
    """
    Find alerts that should escalate automatically.

    An alert qualifies when it is neither escalated nor acknowledged, is
    medium severity or above, and is at least escalation_minutes old.

    Args:
        alerts: Candidate alerts.
        now: Current time (defaults to now).
        escalation_minutes: Minimum age before escalation.

    Returns:
        List[Alert]: Alerts to escalate, in input order.
    """
    now = as_utc(now) if now else utc_now()
    threshold = timedelta(minutes=escalation_minutes)

    return [
        alert
        for alert in alerts
        if not alert.escalated
        and not alert.acknowledged
        and alert.severity != AlertSeverity.LOW
        and now - alert.timestamp >= threshold
    ]
