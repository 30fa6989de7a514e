"""
Tests for the anomaly detector in `carewatch/detection/detector.py`.

Covers:
- Severity bucketing by percent deviation (including boundaries)
- Default ranges and per-metric baseline overrides
- Weight only evaluated against a baseline range
- Output order and description text
- Configuration overrides via create_detector
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from carewatch.config.models import DetectionConfig, RangeConfig
from carewatch.detection.detector import (
    AnomalyDetector,
    create_detector,
    determine_severity,
    percent_deviation,
)
from carewatch.models.alerts import AlertSeverity
from carewatch.models.vitals import (
    BaselineRanges,
    BloodPressure,
    MetricRange,
    VitalMetric,
    VitalReading,
)

READING_TIME = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


@pytest.fixture
def detector() -> AnomalyDetector:
    return AnomalyDetector()


class TestDetermineSeverity:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (104, AlertSeverity.LOW),       # 10%
            (105, AlertSeverity.MEDIUM),    # 12.5%
            (110, AlertSeverity.MEDIUM),    # 25%
            (111, AlertSeverity.HIGH),      # 27.5%
            (120, AlertSeverity.HIGH),      # 50%
            (121, AlertSeverity.CRITICAL),  # 52.5%
            (150, AlertSeverity.CRITICAL),  # 125%
            (50, AlertSeverity.MEDIUM),     # 25% below
        ],
    )
    def test_buckets_against_default_heart_rate(self, value: float, expected: AlertSeverity) -> None:
        assert determine_severity(value, 60, 100) == expected

    def test_in_range_is_low(self) -> None:
        assert determine_severity(80, 60, 100) == AlertSeverity.LOW
        assert percent_deviation(80, 60, 100) == 0

    def test_percent_is_relative_to_range_width(self) -> None:
        assert percent_deviation(150, 60, 100) == pytest.approx(125.0)
        assert percent_deviation(140, 60, 100) == pytest.approx(100.0)

    @given(
        low=st.floats(min_value=-1000, max_value=1000, allow_nan=False),
        width=st.floats(min_value=0.5, max_value=500, allow_nan=False),
        value=st.floats(min_value=-5000, max_value=5000, allow_nan=False),
    )
    def test_severity_matches_percent_buckets(self, low: float, width: float, value: float) -> None:
        high = low + width
        percent = percent_deviation(value, low, high)
        severity = determine_severity(value, low, high)

        if percent > 50:
            assert severity == AlertSeverity.CRITICAL
        elif percent > 25:
            assert severity == AlertSeverity.HIGH
        elif percent > 10:
            assert severity == AlertSeverity.MEDIUM
        else:
            assert severity == AlertSeverity.LOW

    @given(
        value=st.floats(min_value=60, max_value=100, allow_nan=False),
    )
    def test_in_range_values_never_detected(self, value: float) -> None:
        detector = AnomalyDetector()
        assert detector.detect(VitalReading(heart_rate=value)) == []


class TestDetect:
    def test_normal_reading_has_no_anomalies(self, detector: AnomalyDetector) -> None:
        reading = VitalReading(
            heart_rate=72,
            blood_pressure=BloodPressure(systolic=120, diastolic=80),
            temperature=98.6,
            oxygen_saturation=98,
        )
        assert detector.detect(reading) == []

    def test_high_heart_rate_against_baseline(self, detector: AnomalyDetector) -> None:
        baseline = BaselineRanges(heart_rate=MetricRange(min=60, max=100))
        reading = VitalReading(heart_rate=150, timestamp=READING_TIME)

        [anomaly] = detector.detect(reading, baseline)

        assert anomaly.metric == VitalMetric.HEART_RATE
        assert anomaly.severity == AlertSeverity.CRITICAL
        assert anomaly.value == 150
        assert anomaly.timestamp == READING_TIME
        assert anomaly.description == (
            "heart rate is above normal range (150 > 100). Severity: critical."
        )

    def test_low_value_description(self, detector: AnomalyDetector) -> None:
        [anomaly] = detector.detect(VitalReading(oxygen_saturation=90))

        assert anomaly.metric == VitalMetric.OXYGEN_SATURATION
        assert anomaly.description == (
            "oxygen saturation is below normal range (90 < 95). Severity: critical."
        )

    def test_blood_pressure_yields_two_independent_results(self, detector: AnomalyDetector) -> None:
        reading = VitalReading(blood_pressure=BloodPressure(systolic=180, diastolic=100))

        anomalies = detector.detect(reading)

        assert [a.metric for a in anomalies] == [
            VitalMetric.SYSTOLIC_BLOOD_PRESSURE,
            VitalMetric.DIASTOLIC_BLOOD_PRESSURE,
        ]
        assert anomalies[0].severity == AlertSeverity.CRITICAL  # 40/50 = 80%
        assert anomalies[1].severity == AlertSeverity.HIGH  # 10/30 = 33%

    def test_output_follows_metric_order(self, detector: AnomalyDetector) -> None:
        reading = VitalReading(
            oxygen_saturation=80,
            temperature=104,
            heart_rate=40,
        )

        metrics = [a.metric for a in detector.detect(reading)]

        assert metrics == [
            VitalMetric.HEART_RATE,
            VitalMetric.TEMPERATURE,
            VitalMetric.OXYGEN_SATURATION,
        ]

    def test_baseline_overrides_only_its_metrics(self, detector: AnomalyDetector) -> None:
        baseline = BaselineRanges(heart_rate=MetricRange(min=40, max=60))
        reading = VitalReading(heart_rate=72, temperature=103)

        anomalies = detector.detect(reading, baseline)

        assert [a.metric for a in anomalies] == [
            VitalMetric.HEART_RATE,
            VitalMetric.TEMPERATURE,
        ]
        assert anomalies[0].expected_range == MetricRange(min=40, max=60)

    def test_weight_ignored_without_baseline(self, detector: AnomalyDetector) -> None:
        assert detector.detect(VitalReading(weight=400)) == []

    def test_weight_checked_against_baseline(self, detector: AnomalyDetector) -> None:
        baseline = BaselineRanges(weight=MetricRange(min=150, max=170))

        [anomaly] = detector.detect(VitalReading(weight=180), baseline)

        assert anomaly.metric == VitalMetric.WEIGHT
        assert anomaly.severity == AlertSeverity.HIGH  # 10/20 = 50%


class TestCreateDetector:
    def test_config_ranges_replace_defaults(self) -> None:
        config = DetectionConfig(
            normal_ranges={"heart_rate": RangeConfig(min=50, max=90)},
        )
        detector = create_detector(config)

        assert detector.expected_range(VitalMetric.HEART_RATE) == MetricRange(min=50, max=90)
        assert detector.expected_range(VitalMetric.TEMPERATURE) == MetricRange(min=97.0, max=99.5)

    def test_unknown_metric_names_are_ignored(self) -> None:
        config = DetectionConfig(
            normal_ranges={"glucose": RangeConfig(min=70, max=140)},
        )
        detector = create_detector(config)

        assert detector.expected_range(VitalMetric.HEART_RATE) == MetricRange(min=60, max=100)
