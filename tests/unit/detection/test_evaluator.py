"""Tests for alert decision and vital_signs alert composition."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from carewatch.detection.detector import AnomalyDetector
from carewatch.detection.evaluator import (
    build_vital_signs_alert,
    highest_severity,
    should_alert,
)
from carewatch.models.alerts import AlertSeverity, AlertType
from carewatch.models.vitals import (
    AnomalyResult,
    BloodPressure,
    MetricRange,
    VitalMetric,
    VitalReading,
)

READING_TIME = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


def _anomaly(severity: AlertSeverity, metric: VitalMetric = VitalMetric.HEART_RATE) -> AnomalyResult:
    return AnomalyResult(
        metric=metric,
        value=110,
        expected_range=MetricRange(min=60, max=100),
        severity=severity,
        timestamp=READING_TIME,
        description=f"{metric.label} is above normal range (110 > 100). Severity: {severity.value}.",
    )


class TestShouldAlert:
    def test_empty_does_not_alert(self) -> None:
        assert should_alert([]) is False

    def test_low_only_does_not_alert(self) -> None:
        assert should_alert([_anomaly(AlertSeverity.LOW), _anomaly(AlertSeverity.LOW)]) is False

    @pytest.mark.parametrize(
        "severity", [AlertSeverity.MEDIUM, AlertSeverity.HIGH, AlertSeverity.CRITICAL]
    )
    def test_medium_or_above_alerts(self, severity: AlertSeverity) -> None:
        assert should_alert([_anomaly(AlertSeverity.LOW), _anomaly(severity)]) is True


class TestHighestSeverity:
    def test_empty_is_low(self) -> None:
        assert highest_severity([]) == AlertSeverity.LOW

    def test_picks_maximum(self) -> None:
        anomalies = [
            _anomaly(AlertSeverity.MEDIUM),
            _anomaly(AlertSeverity.CRITICAL),
            _anomaly(AlertSeverity.HIGH),
        ]
        assert highest_severity(anomalies) == AlertSeverity.CRITICAL


class TestBuildVitalSignsAlert:
    def test_single_anomaly(self) -> None:
        [anomaly] = AnomalyDetector().detect(VitalReading(heart_rate=150, timestamp=READING_TIME))

        alert = build_vital_signs_alert("subject-1", [anomaly], timestamp=READING_TIME)

        assert alert.type == AlertType.VITAL_SIGNS
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.subject_id == "subject-1"
        assert alert.timestamp == READING_TIME
        assert alert.acknowledged is False
        assert alert.escalated is False
        assert alert.message == "heart rate is above normal range (150 > 100). Severity: critical."
        assert alert.related_data["metric"] == "heart_rate"
        assert len(alert.related_data["anomalies"]) == 1

    def test_leading_anomaly_is_the_most_severe(self) -> None:
        reading = VitalReading(
            heart_rate=105,
            blood_pressure=BloodPressure(systolic=200, diastolic=80),
            timestamp=READING_TIME,
        )
        anomalies = AnomalyDetector().detect(reading)

        alert = build_vital_signs_alert("subject-1", anomalies)

        assert alert.related_data["metric"] == "systolic_blood_pressure"
        assert alert.message.startswith("systolic blood pressure is above normal range")
        assert alert.message.endswith("1 other reading out of range.")

    def test_explicit_severity_wins(self) -> None:
        alert = build_vital_signs_alert(
            "subject-1", [_anomaly(AlertSeverity.MEDIUM)], severity=AlertSeverity.HIGH
        )
        assert alert.severity == AlertSeverity.HIGH

    def test_empty_anomalies_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_vital_signs_alert("subject-1", [])
