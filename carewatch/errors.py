"""
Error taxonomy for the alerting and notification pipeline.

Detection and decision functions never raise. Transport failures are
captured per attempt and never propagate; only the aggregate delivery
timeout surfaces to callers as DeliveryTimeoutError.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from carewatch.models.notifications import NotificationAttempt


class CareWatchError(Exception):
    """Base exception for CareWatch errors."""

    pass


class AlertValidationError(CareWatchError):
    """Raised when an alert type, severity or escalation level is invalid."""

    pass


class AlertNotFoundError(CareWatchError):
    """
    Raised when acknowledging or escalating an unknown alert.

    Attributes:
        alert_id: The requested alert id.
    """

    def __init__(self, alert_id: str, message: Optional[str] = None) -> None:
        self.alert_id = alert_id
        super().__init__(message or f"Alert not found: {alert_id}")


class TransportError(CareWatchError):
    """
    Raised by a transport gateway when a single channel send fails.

    The delivery engine records it on the attempt and retries; it is never
    raised out of the engine.
    """

    pass


class DeliveryTimeoutError(CareWatchError):
    """
    Raised when the aggregate delivery bound expires.

    Attributes:
        recipient_id: Recipient whose delivery timed out.
        timeout_seconds: The bound that was exceeded.
        attempts: Attempts that completed before the deadline. They have
            already been persisted.
    """

    def __init__(
        self,
        recipient_id: str,
        timeout_seconds: float,
        attempts: Optional[List["NotificationAttempt"]] = None,
    ) -> None:
        self.recipient_id = recipient_id
        self.timeout_seconds = timeout_seconds
        self.attempts = list(attempts or [])
        super().__init__(
            f"Notification delivery to {recipient_id} exceeded {timeout_seconds}s "
            f"({len(self.attempts)} attempts completed)"
        )


class DependencyError(CareWatchError):
    """Raised when a store, bus or gateway dependency is unreachable."""

    pass
