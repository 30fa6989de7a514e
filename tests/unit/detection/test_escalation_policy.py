"""Tests for escalation policy and alert prioritization."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from carewatch.detection.escalation import (
    alerts_needing_escalation,
    parse_escalation_level,
    select_escalation_level,
)
from carewatch.detection.prioritization import (
    are_alerts_related,
    calculate_alert_priority,
    consolidate_alerts,
    create_consolidated_message,
    prioritize_alerts,
)
from carewatch.errors import AlertValidationError
from carewatch.models.alerts import Alert, AlertSeverity, AlertType, EscalationLevel

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _alert(
    severity: AlertSeverity = AlertSeverity.HIGH,
    alert_type: AlertType = AlertType.VITAL_SIGNS,
    minutes_ago: float = 0,
    subject_id: str = "subject-1",
    **fields,
) -> Alert:
    return Alert(
        subject_id=subject_id,
        type=alert_type,
        severity=severity,
        message=fields.pop("message", f"{alert_type.label} alert"),
        timestamp=NOW - timedelta(minutes=minutes_ago),
        **fields,
    )


class TestSelectEscalationLevel:
    def test_requested_level_wins(self) -> None:
        level = select_escalation_level(
            AlertSeverity.CRITICAL, manual=True, requested="emergency_contact"
        )
        assert level == EscalationLevel.EMERGENCY_CONTACT

    def test_manual_goes_to_care_circle(self) -> None:
        assert select_escalation_level(AlertSeverity.CRITICAL, manual=True) == EscalationLevel.CARE_CIRCLE

    def test_automatic_critical_goes_to_emergency_services(self) -> None:
        assert select_escalation_level(AlertSeverity.CRITICAL) == EscalationLevel.EMERGENCY_SERVICES

    @pytest.mark.parametrize(
        "severity", [AlertSeverity.LOW, AlertSeverity.MEDIUM, AlertSeverity.HIGH]
    )
    def test_automatic_non_critical_goes_to_emergency_contact(self, severity: AlertSeverity) -> None:
        assert select_escalation_level(severity) == EscalationLevel.EMERGENCY_CONTACT

    def test_invalid_level_rejected(self) -> None:
        with pytest.raises(AlertValidationError, match="Invalid escalation level"):
            parse_escalation_level("police")


class TestAlertsNeedingEscalation:
    def test_selects_old_pending_alerts(self) -> None:
        due = _alert(minutes_ago=31)
        fresh = _alert(minutes_ago=5)
        low = _alert(severity=AlertSeverity.LOW, minutes_ago=60)
        acked = _alert(minutes_ago=60, acknowledged=True, acknowledged_by="carer-1")
        escalated = _alert(
            minutes_ago=60, escalated=True, escalation_level=EscalationLevel.CARE_CIRCLE
        )

        selected = alerts_needing_escalation([due, fresh, low, acked, escalated], now=NOW)

        assert selected == [due]

    def test_window_boundary_is_inclusive(self) -> None:
        alert = _alert(minutes_ago=30)
        assert alerts_needing_escalation([alert], now=NOW) == [alert]

    def test_custom_window(self) -> None:
        alert = _alert(minutes_ago=10)
        assert alerts_needing_escalation([alert], now=NOW, escalation_minutes=5) == [alert]

    def test_naive_times_are_treated_as_utc(self) -> None:
        alert = Alert(
            subject_id="subject-1",
            type=AlertType.VITAL_SIGNS,
            severity=AlertSeverity.HIGH,
            message="HR 130",
            timestamp=datetime(2024, 3, 1, 11, 0),
        )

        assert alert.timestamp == datetime(2024, 3, 1, 11, 0, tzinfo=timezone.utc)
        assert alerts_needing_escalation([alert], now=NOW) == [alert]
        assert alerts_needing_escalation([alert], now=datetime(2024, 3, 1, 12, 0)) == [alert]


class TestPrioritization:
    def test_priority_components(self) -> None:
        alert = _alert(severity=AlertSeverity.CRITICAL, alert_type=AlertType.EMERGENCY)
        # 4*10 + 7 + unacknowledged 10 + recency 5
        assert calculate_alert_priority(alert, NOW) == pytest.approx(62.0)

    def test_escalated_bonus_and_decay(self) -> None:
        alert = _alert(
            severity=AlertSeverity.LOW,
            alert_type=AlertType.APPOINTMENT,
            minutes_ago=120,
            escalated=True,
            escalation_level=EscalationLevel.CARE_CIRCLE,
        )
        # 1*10 + 1 + 20 + 10 + (5 - 2)
        assert calculate_alert_priority(alert, NOW) == pytest.approx(44.0)

    def test_severity_dominates_ordering(self) -> None:
        medium = _alert(severity=AlertSeverity.MEDIUM, alert_type=AlertType.EMERGENCY)
        critical = _alert(severity=AlertSeverity.CRITICAL, alert_type=AlertType.APPOINTMENT)
        high = _alert(severity=AlertSeverity.HIGH, alert_type=AlertType.DEVICE)

        assert prioritize_alerts([medium, critical, high], NOW) == [critical, high, medium]

    def test_naive_alert_time_is_scored(self) -> None:
        alert = Alert(
            subject_id="subject-1",
            type=AlertType.EMERGENCY,
            severity=AlertSeverity.CRITICAL,
            message="fall",
            timestamp=datetime(2024, 3, 1, 12, 0),
        )
        assert calculate_alert_priority(alert, NOW) == pytest.approx(62.0)


class TestConsolidation:
    def test_related_requires_same_metric(self) -> None:
        hr1 = _alert(related_data={"metric": "heart_rate"})
        hr2 = _alert(minutes_ago=5, related_data={"metric": "heart_rate"})
        temp = _alert(minutes_ago=2, related_data={"metric": "temperature"})

        assert are_alerts_related(hr1, hr2) is True
        assert are_alerts_related(hr1, temp) is False

    def test_outside_window_not_related(self) -> None:
        assert are_alerts_related(_alert(), _alert(minutes_ago=20)) is False

    def test_different_subjects_not_related(self) -> None:
        assert are_alerts_related(_alert(), _alert(subject_id="subject-2")) is False

    def test_groups_in_input_order(self) -> None:
        a = _alert(related_data={"metric": "heart_rate"})
        b = _alert(minutes_ago=1, related_data={"metric": "temperature"})
        c = _alert(minutes_ago=2, related_data={"metric": "heart_rate"})

        assert consolidate_alerts([a, b, c]) == [[a, c], [b]]

    def test_consolidated_message(self) -> None:
        alerts = [
            _alert(severity=AlertSeverity.MEDIUM, message="heart rate is above normal range"),
            _alert(severity=AlertSeverity.HIGH),
            _alert(severity=AlertSeverity.LOW),
        ]

        assert create_consolidated_message(alerts) == (
            "3 vital signs alerts (high severity): heart rate is above normal range and 2 more"
        )

    def test_single_alert_message_unchanged(self) -> None:
        alert = _alert(message="only one")
        assert create_consolidated_message([alert]) == "only one"
        assert create_consolidated_message([]) == ""
