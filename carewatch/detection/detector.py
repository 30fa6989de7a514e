"""
Vital-sign anomaly detector.

This module provides the AnomalyDetector class which compares a reading
against personalized baseline ranges, falling back to population defaults,
and classifies every out-of-range metric by severity.

Key Features:
    - Deterministic output order (heart rate, systolic, diastolic,
      temperature, oxygen saturation, weight)
    - Blood pressure yields independent systolic and diastolic results
    - Weight is only checked against a personalized baseline
    - Severity from percent deviation outside the range

Severity buckets (percent of range width outside the range):
    - percent <= 10: low
    - 10 < percent <= 25: medium
    - 25 < percent <= 50: high
    - percent > 50: critical

Example:
    >>> detector = AnomalyDetector()
    >>> anomalies = detector.detect(VitalReading(heart_rate=150))
    >>> anomalies[0].severity
    <AlertSeverity.CRITICAL: 'critical'>
"""

from typing import Dict, List, Mapping, Optional

import structlog

from carewatch.config.models import DetectionConfig
from carewatch.models.alerts import AlertSeverity
from carewatch.models.vitals import (
    AnomalyResult,
    BaselineRanges,
    MetricRange,
    VitalMetric,
    VitalReading,
)

logger = structlog.get_logger(__name__)


# Population defaults. Weight is listed for completeness but never applied
# without a personalized baseline.
DEFAULT_NORMAL_RANGES: Dict[VitalMetric, MetricRange] = {
    VitalMetric.HEART_RATE: MetricRange(min=60, max=100),
    VitalMetric.SYSTOLIC_BLOOD_PRESSURE: MetricRange(min=90, max=140),
    VitalMetric.DIASTOLIC_BLOOD_PRESSURE: MetricRange(min=60, max=90),
    VitalMetric.TEMPERATURE: MetricRange(min=97.0, max=99.5),
    VitalMetric.OXYGEN_SATURATION: MetricRange(min=95, max=100),
    VitalMetric.WEIGHT: MetricRange(min=100, max=300),
}

# Metrics that only have a meaningful range per individual
BASELINE_ONLY_METRICS = frozenset({VitalMetric.WEIGHT})


def percent_deviation(value: float, min_value: float, max_value: float) -> float:
    """
    Compute how far a value lies outside a range, as percent of its width.

    Args:
        value: Observed value.
        min_value: Range minimum.
        max_value: Range maximum.

    Returns:
        float: 0 for in-range values, otherwise deviation / width * 100.
    """
    deviation = max(min_value - value, value - max_value, 0)
    return deviation / (max_value - min_value) * 100


def determine_severity(value: float, min_value: float, max_value: float) -> AlertSeverity:
    """
    Classify a value by its percent deviation outside [min, max].

    Args:
        value: Observed value.
        min_value: Range minimum.
        max_value: Range maximum.

    Returns:
        AlertSeverity: Severity bucket.

    Example:
        >>> determine_severity(150, 60, 100)
        <AlertSeverity.CRITICAL: 'critical'>
    """
    percent = percent_deviation(value, min_value, max_value)

    if percent > 50:
        return AlertSeverity.CRITICAL
    elif percent > 25:
        return AlertSeverity.HIGH
    elif percent > 10:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def _format_number(value: float) -> str:
    """Render whole numbers without a trailing .0."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def describe_anomaly(
    metric: VitalMetric,
    value: float,
    min_value: float,
    max_value: float,
    severity: AlertSeverity,
) -> str:
    """
    Build the human-readable description for an anomaly.

    Example:
        >>> describe_anomaly(VitalMetric.HEART_RATE, 150, 60, 100, AlertSeverity.CRITICAL)
        'heart rate is above normal range (150 > 100). Severity: critical.'
    """
    shown = _format_number(value)
    if value < min_value:
        return (
            f"{metric.label} is below normal range "
            f"({shown} < {_format_number(min_value)}). Severity: {severity.value}."
        )
    if value > max_value:
        return (
            f"{metric.label} is above normal range "
            f"({shown} > {_format_number(max_value)}). Severity: {severity.value}."
        )
    return f"{metric.label} is within normal range."


class AnomalyDetector:
    """
    Stateless detector mapping a reading to classified anomalies.

    Attributes:
        default_ranges: Population ranges used when a subject has no
            personalized range for a metric.

    Example:
        >>> detector = AnomalyDetector()
        >>> baseline = BaselineRanges(heart_rate=MetricRange(min=60, max=100))
        >>> detector.detect(VitalReading(heart_rate=72), baseline)
        []
    """

    def __init__(
        self,
        default_ranges: Optional[Mapping[VitalMetric, MetricRange]] = None,
    ) -> None:
        """
        Initialize the detector.

        Args:
            default_ranges: Overrides for the population defaults. Metrics
                not listed keep DEFAULT_NORMAL_RANGES.
        """
        self.default_ranges: Dict[VitalMetric, MetricRange] = dict(DEFAULT_NORMAL_RANGES)
        if default_ranges:
            self.default_ranges.update(default_ranges)

    def expected_range(
        self,
        metric: VitalMetric,
        baseline: Optional[BaselineRanges] = None,
    ) -> Optional[MetricRange]:
        """
        Resolve the range a metric is compared against.

        Args:
            metric: The metric.
            baseline: Personalized ranges, if any.

        Returns:
            Optional[MetricRange]: The personalized range, else the default,
                else None for baseline-only metrics without a baseline.
        """
        if baseline is not None:
            personal = baseline.range_for(metric)
            if personal is not None:
                return personal
        if metric in BASELINE_ONLY_METRICS:
            return None
        return self.default_ranges.get(metric)

    def detect(
        self,
        reading: VitalReading,
        baseline: Optional[BaselineRanges] = None,
    ) -> List[AnomalyResult]:
        """
        Detect out-of-range metrics in a reading.

        Args:
            reading: The vital-sign reading.
            baseline: Personalized ranges for the subject, if any.

        Returns:
            List[AnomalyResult]: One result per out-of-range metric, in
                VitalMetric declaration order. Empty when all present
                metrics are in range.
        """
        anomalies: List[AnomalyResult] = []

        for metric in VitalMetric:
            value = reading.value_of(metric)
            if value is None:
                continue

            expected = self.expected_range(metric, baseline)
            if expected is None or expected.contains(value):
                continue

            severity = determine_severity(value, expected.min, expected.max)
            anomalies.append(
                AnomalyResult(
                    metric=metric,
                    value=value,
                    expected_range=expected,
                    severity=severity,
                    timestamp=reading.timestamp,
                    description=describe_anomaly(
                        metric, value, expected.min, expected.max, severity
                    ),
                )
            )

        if anomalies:
            logger.debug(
                "vital_anomalies_detected",
                count=len(anomalies),
                metrics=[a.metric.value for a in anomalies],
                personalized=baseline is not None,
            )

        return anomalies


def create_detector(config: Optional[DetectionConfig] = None) -> AnomalyDetector:
    """
    Factory function to create an AnomalyDetector from configuration.

    Args:
        config: Detection configuration. Unknown metric names are ignored.

    Returns:
        AnomalyDetector: A new detector instance.
    """
    overrides: Dict[VitalMetric, MetricRange] = {}
    if config is not None:
        for name, range_config in config.normal_ranges.items():
            try:
                metric = VitalMetric(name)
            except ValueError:
                logger.warning("unknown_metric_range_ignored", metric=name)
                continue
            overrides[metric] = MetricRange(min=range_config.min, max=range_config.max)
    return AnomalyDetector(default_ranges=overrides)
