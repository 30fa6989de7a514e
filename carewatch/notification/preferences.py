"""
Recipient preference filter.

Decides whether a recipient should get an alert and on which channels.

Decision order:
    1. No stored preferences: send on every channel
    2. Alert type explicitly disabled: suppress (critical included)
    3. Critical severity: send on every channel, ignoring the severity
       allow-list, quiet hours and the recipient's channel subset
    4. Severity not in the type's allow-list: suppress
    5. Inside the quiet-hours window: suppress

Quiet hours are [start, end) in the recipient's local time. A window with
start later than end wraps past midnight; start equal to end is empty.

Example:
    >>> prefs = RecipientPreferences(
    ...     recipient_id="carer-1",
    ...     quiet_hours=QuietHours(start="22:00", end="06:00"),
    ... )
    >>> should_send(prefs, medium_alert, datetime(2024, 1, 1, 23, 30))
    False
"""

from datetime import datetime, time
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from carewatch.models.alerts import Alert
from carewatch.models.notifications import (
    NotificationChannel,
    QuietHours,
    RecipientPreferences,
)

logger = structlog.get_logger(__name__)


SUPPRESSED_TYPE_DISABLED = "type_disabled"
SUPPRESSED_SEVERITY = "severity_not_allowed"
SUPPRESSED_QUIET_HOURS = "quiet_hours"


def is_within_quiet_hours(quiet_hours: QuietHours, local_time: time) -> bool:
    """
    Check whether a local clock time falls inside a quiet window.

    Args:
        quiet_hours: The window.
        local_time: Recipient-local time of day.

    Returns:
        bool: True inside [start, end).

    Example:
        >>> qh = QuietHours(start="22:00", end="06:00")
        >>> is_within_quiet_hours(qh, time(2, 0)), is_within_quiet_hours(qh, time(7, 0))
        (True, False)
    """
    start = quiet_hours.start_time
    end = quiet_hours.end_time
    current = local_time.replace(second=0, microsecond=0, tzinfo=None)

    if start == end:
        return False
    if start < end:
        return start <= current < end
    # Wraps midnight
    return current >= start or current < end


def local_time_for(preferences: RecipientPreferences, now: datetime) -> time:
    """
    Convert an instant to the recipient's local time of day.

    Naive datetimes and recipients without a timezone use the clock as given.
    """
    if preferences.timezone and now.tzinfo is not None:
        try:
            return now.astimezone(ZoneInfo(preferences.timezone)).time()
        except ZoneInfoNotFoundError:
            logger.warning(
                "recipient_timezone_unknown",
                recipient_id=preferences.recipient_id,
                timezone=preferences.timezone,
            )
    return now.time()


def suppression_reason(
    preferences: Optional[RecipientPreferences],
    alert: Alert,
    now: datetime,
) -> Optional[str]:
    """
    Explain why an alert would be suppressed for a recipient.

    Args:
        preferences: Recipient preferences, None when never configured.
        alert: The alert.
        now: Current time.

    Returns:
        Optional[str]: A suppression reason, or None when the alert is sent.
    """
    if preferences is None:
        return None

    type_pref = preferences.type_preference(alert.type)
    if type_pref is not None and not type_pref.enabled:
        return SUPPRESSED_TYPE_DISABLED

    if alert.severity.is_critical:
        return None

    if (
        type_pref is not None
        and type_pref.severities is not None
        and alert.severity not in type_pref.severities
    ):
        return SUPPRESSED_SEVERITY

    if preferences.quiet_hours is not None and is_within_quiet_hours(
        preferences.quiet_hours, local_time_for(preferences, now)
    ):
        return SUPPRESSED_QUIET_HOURS

    return None


def should_send(
    preferences: Optional[RecipientPreferences],
    alert: Alert,
    now: datetime,
) -> bool:
    """Decide whether a recipient should receive an alert."""
    return suppression_reason(preferences, alert, now) is None


def channels_for(
    preferences: Optional[RecipientPreferences],
    alert: Alert,
) -> List[NotificationChannel]:
    """
    Get the channels a recipient should be reached on.

    Args:
        preferences: Recipient preferences, None when never configured.
        alert: The alert.

    Returns:
        List[NotificationChannel]: Channels in platform order. Critical
            alerts and recipients without preferences get every channel.
    """
    if preferences is None or alert.severity.is_critical or preferences.channels is None:
        return NotificationChannel.all()

    enabled = set(preferences.channels)
    return [channel for channel in NotificationChannel if channel in enabled]
