"""
Vital-sign data models.

This module defines readings, per-subject baseline ranges and the anomaly
results produced by the detector.

Models:
    VitalMetric: Metric identifiers in detection order
    ReadingSource: Provenance of a reading (manual, device)
    BloodPressure: Systolic/diastolic pair
    VitalReading: Immutable snapshot of zero or more metrics
    MetricRange: Inclusive normal range for one metric
    BaselineRanges: Personalized ranges for one subject
    AnomalyResult: One metric found outside its expected range
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from carewatch.models.alerts import AlertSeverity, as_utc, utc_now


class VitalMetric(str, Enum):
    """
    Vital-sign metrics, declared in detection order.

    Attributes:
        HEART_RATE: Beats per minute.
        SYSTOLIC_BLOOD_PRESSURE: mmHg.
        DIASTOLIC_BLOOD_PRESSURE: mmHg.
        TEMPERATURE: Degrees Fahrenheit.
        OXYGEN_SATURATION: SpO2 percent.
        WEIGHT: Pounds.
    """

    HEART_RATE = "heart_rate"
    SYSTOLIC_BLOOD_PRESSURE = "systolic_blood_pressure"
    DIASTOLIC_BLOOD_PRESSURE = "diastolic_blood_pressure"
    TEMPERATURE = "temperature"
    OXYGEN_SATURATION = "oxygen_saturation"
    WEIGHT = "weight"

    @property
    def label(self) -> str:
        """Human-readable metric name."""
        return self.value.replace("_", " ")


class ReadingSource(str, Enum):
    """Where a reading came from."""

    MANUAL = "manual"
    DEVICE = "device"


class BloodPressure(BaseModel):
    """Blood pressure pair in mmHg."""

    model_config = {"frozen": True, "extra": "forbid"}

    systolic: float = Field(..., description="Systolic pressure (mmHg)")
    diastolic: float = Field(..., description="Diastolic pressure (mmHg)")


class VitalReading(BaseModel):
    """
    Snapshot of vital signs for one subject.

    Any metric may be absent; absent metrics never produce anomalies.

    Attributes:
        heart_rate: Beats per minute.
        blood_pressure: Systolic/diastolic pair.
        temperature: Body temperature in Fahrenheit.
        oxygen_saturation: SpO2 percent.
        weight: Body weight in pounds.
        timestamp: When the reading was taken.
        source: Manual entry or automated device.

    Example:
        >>> reading = VitalReading(
        ...     heart_rate=150,
        ...     blood_pressure=BloodPressure(systolic=120, diastolic=80),
        ...     source=ReadingSource.DEVICE,
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    heart_rate: Optional[float] = Field(default=None, description="Heart rate (bpm)")
    blood_pressure: Optional[BloodPressure] = Field(
        default=None, description="Blood pressure (mmHg)"
    )
    temperature: Optional[float] = Field(default=None, description="Temperature (F)")
    oxygen_saturation: Optional[float] = Field(
        default=None, description="Oxygen saturation (%)"
    )
    weight: Optional[float] = Field(default=None, description="Weight (lb)")
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the reading was taken (naive values are UTC)",
    )
    source: ReadingSource = Field(
        default=ReadingSource.MANUAL,
        description="Provenance of the reading",
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store the reading time as aware UTC."""
        return as_utc(v)

    def value_of(self, metric: VitalMetric) -> Optional[float]:
        """
        Get the value recorded for a metric.

        Args:
            metric: The metric to look up.

        Returns:
            Optional[float]: The value, or None if not present.
        """
        if metric == VitalMetric.SYSTOLIC_BLOOD_PRESSURE:
            return self.blood_pressure.systolic if self.blood_pressure else None
        if metric == VitalMetric.DIASTOLIC_BLOOD_PRESSURE:
            return self.blood_pressure.diastolic if self.blood_pressure else None
        return getattr(self, metric.value)


class MetricRange(BaseModel):
    """Inclusive normal range for one metric."""

    model_config = {"frozen": True, "extra": "forbid"}

    min: float = Field(..., description="Lowest normal value")
    max: float = Field(..., description="Highest normal value")

    @model_validator(mode="after")
    def validate_bounds(self) -> "MetricRange":
        """A range must have a positive width for percent deviation."""
        if self.max <= self.min:
            raise ValueError(f"max ({self.max}) must be greater than min ({self.min})")
        return self

    def contains(self, value: float) -> bool:
        """Check whether a value lies inside [min, max]."""
        return self.min <= value <= self.max


class BaselineRanges(BaseModel):
    """
    Personalized ranges for one monitored individual.

    Any metric left unset falls back to the population default. Weight is
    only evaluated when a weight range is set here.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    heart_rate: Optional[MetricRange] = None
    systolic_blood_pressure: Optional[MetricRange] = None
    diastolic_blood_pressure: Optional[MetricRange] = None
    temperature: Optional[MetricRange] = None
    oxygen_saturation: Optional[MetricRange] = None
    weight: Optional[MetricRange] = None

    def range_for(self, metric: VitalMetric) -> Optional[MetricRange]:
        """Get the personalized range for a metric, if any."""
        return getattr(self, metric.value)


class AnomalyResult(BaseModel):
    """
    A single metric found outside its expected range.

    Attributes:
        metric: Which metric deviated.
        value: Observed value.
        expected_range: The range the value was compared against.
        severity: Severity bucket from percent deviation.
        timestamp: Timestamp of the reading.
        description: Human-readable description.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    metric: VitalMetric = Field(..., description="Metric that deviated")
    value: float = Field(..., description="Observed value")
    expected_range: MetricRange = Field(..., description="Range compared against")
    severity: AlertSeverity = Field(..., description="Severity bucket")
    timestamp: datetime = Field(..., description="Reading timestamp")
    description: str = Field(..., description="Human-readable description")

    def to_related_data(self) -> Dict[str, object]:
        """Serialize for embedding in an alert's related data."""
        return self.model_dump(mode="json")
