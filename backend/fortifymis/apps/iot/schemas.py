from __future__ import annotations

from datetime import datetime
import math
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fortifymis.schemas import Pagination

from .models import SensorAlertSeverity, SensorAlertStatus, SensorStatus, SensorType
from .predictive import RiskLevel

MAX_BATCH_READINGS = 1000


# ---------------------------------------------------------------------------
# SENSORS
# ---------------------------------------------------------------------------


class _Thresholds(BaseModel):
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None
    critical_min: Optional[float] = None
    critical_max: Optional[float] = None

    @model_validator(mode="after")
    def check_threshold_order(self):
        pairs = (
            ("min_threshold", "max_threshold"),
            ("critical_min", "critical_max"),
            ("critical_min", "min_threshold"),
            ("max_threshold", "critical_max"),
        )
        for low_name, high_name in pairs:
            low, high = getattr(self, low_name), getattr(self, high_name)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{low_name} must not exceed {high_name}")
        return self


class SensorCreate(_Thresholds):
    equipment_id: Optional[str] = None
    device_id: str = Field(min_length=3, max_length=64)
    sensor_type: SensorType
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    location: str = Field(min_length=3, max_length=255)
    unit: str = ""
    sampling_interval_seconds: int = Field(default=60, gt=0)
    calibration_date: Optional[datetime] = None
    next_calibration_due: Optional[datetime] = None
    metadata: Optional[dict] = None
    # Only honoured for system administrators.
    mill_id: Optional[str] = None


class SensorUpdate(_Thresholds):
    equipment_id: Optional[str] = None
    location: Optional[str] = Field(default=None, min_length=3, max_length=255)
    unit: Optional[str] = None
    sampling_interval_seconds: Optional[int] = Field(default=None, gt=0)
    status: Optional[SensorStatus] = None
    is_active: Optional[bool] = None
    calibration_date: Optional[datetime] = None
    next_calibration_due: Optional[datetime] = None
    metadata: Optional[dict] = None


class SensorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mill_id: str
    equipment_id: Optional[str] = None
    device_id: str
    sensor_type: SensorType
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    location: str
    unit: str
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None
    critical_min: Optional[float] = None
    critical_max: Optional[float] = None
    sampling_interval_seconds: int
    status: SensorStatus
    is_active: bool
    calibration_date: Optional[datetime] = None
    next_calibration_due: Optional[datetime] = None
    last_reading_at: Optional[datetime] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# READINGS
# ---------------------------------------------------------------------------


class ReadingCreate(BaseModel):
    sensor_id: str
    value: float
    timestamp: Optional[datetime] = None
    quality: Optional[float] = Field(default=None, ge=0, le=100)
    metadata: Optional[dict] = None

    @field_validator("value")
    @classmethod
    def value_is_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("value must be a finite number")
        return value


class ReadingBatch(BaseModel):
    readings: List[ReadingCreate] = Field(min_length=1, max_length=MAX_BATCH_READINGS)


class IngestResult(BaseModel):
    count: int
    alerts_created: int


class ReadingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sensor_id: str
    value: float
    timestamp: datetime
    quality: Optional[float] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")


class AggregatedReading(BaseModel):
    bucket: str
    average: float
    min: float
    max: float
    count: int


class ReadingSeries(BaseModel):
    sensor_id: str
    aggregation: str
    items: List[Union[ReadingRead, AggregatedReading]]
    pagination: Optional[Pagination] = None


# ---------------------------------------------------------------------------
# SENSOR ALERTS
# ---------------------------------------------------------------------------


class SensorAlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sensor_id: str
    equipment_id: Optional[str] = None
    mill_id: str
    severity: SensorAlertSeverity
    status: SensorAlertStatus
    message: str
    detected_value: float
    threshold: Optional[float] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by_id: Optional[str] = None
    resolution: Optional[str] = None
    root_cause: Optional[str] = None
    preventive_measures: Optional[str] = None
    created_at: datetime


class SensorAlertResolve(BaseModel):
    resolution: str = Field(min_length=10)
    root_cause: Optional[str] = None
    preventive_measures: Optional[str] = None


# ---------------------------------------------------------------------------
# PREDICTIVE MAINTENANCE
# ---------------------------------------------------------------------------


class MetricsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    mean: float
    std_dev: float
    cv: Optional[float] = None
    early_mean: float
    recent_mean: float
    drift: Optional[float] = None


class SensorInsight(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sensor_id: str
    sensor_type: SensorType
    location: Optional[str] = None
    risk_level: RiskLevel
    confidence: int
    recommended_action: str
    reasons: List[str]
    metrics: Optional[MetricsRead] = None
    days_to_threshold: Optional[float] = None
    predicted_breach_date: Optional[datetime] = None


class EquipmentInsight(BaseModel):
    equipment_id: str
    equipment_name: str
    equipment_type: str
    overall_risk_level: RiskLevel
    sensors: List[SensorInsight]
    analyzed_at: datetime


class PredictiveReport(BaseModel):
    insights: List[EquipmentInsight]
    summary: Dict[str, int]
