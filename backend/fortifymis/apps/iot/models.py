# backend/fortifymis/apps/iot/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from fortifymis.database import Base
from fortifymis.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SensorType(str, enum.Enum):
    TEMPERATURE = "TEMPERATURE"
    HUMIDITY = "HUMIDITY"
    VIBRATION = "VIBRATION"
    PRESSURE = "PRESSURE"
    FLOW_RATE = "FLOW_RATE"
    MOTOR_CURRENT = "MOTOR_CURRENT"
    BEARING_TEMPERATURE = "BEARING_TEMPERATURE"
    OIL_LEVEL = "OIL_LEVEL"
    DUST_LEVEL = "DUST_LEVEL"
    NOISE_LEVEL = "NOISE_LEVEL"


class SensorStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"
    FAULTY = "FAULTY"


class SensorAlertSeverity(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class SensorAlertStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


OPEN_SENSOR_ALERT_STATUSES = (SensorAlertStatus.ACTIVE, SensorAlertStatus.ACKNOWLEDGED)


class IoTSensor(Base):
    __tablename__ = "iot_sensors"
    __table_args__ = (
        Index("idx_iot_sensors_mill_status", "mill_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=False, index=True)
    equipment_id = Column(
        String(36),
        ForeignKey("equipment.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Hardware identifier printed on the device.
    device_id = Column(String(64), nullable=False, unique=True)
    sensor_type = Column(
        SAEnum(SensorType, name="iot_sensor_type_enum", native_enum=False),
        nullable=False,
    )
    manufacturer = Column(String(128), nullable=True)
    model = Column(String(128), nullable=True)
    location = Column(String(255), nullable=False)
    unit = Column(String(16), nullable=False, default="")

    min_threshold = Column(Float, nullable=True)
    max_threshold = Column(Float, nullable=True)
    critical_min = Column(Float, nullable=True)
    critical_max = Column(Float, nullable=True)
    sampling_interval_seconds = Column(Integer, nullable=False, default=60)

    status = Column(
        SAEnum(SensorStatus, name="iot_sensor_status_enum", native_enum=False),
        nullable=False,
        default=SensorStatus.ACTIVE,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    calibration_date = Column(DateTime(timezone=True), nullable=True)
    next_calibration_due = Column(DateTime(timezone=True), nullable=True)
    last_reading_at = Column(DateTime(timezone=True), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    alerts = relationship("SensorAlert", back_populates="sensor")

    def __repr__(self) -> str:
        return f"<IoTSensor id={self.id} device_id={self.device_id} type={self.sensor_type}>"


class SensorReading(Base):
    __tablename__ = "sensor_readings"
    __table_args__ = (
        Index("idx_sensor_readings_sensor_time", "sensor_id", "timestamp"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    sensor_id = Column(String(36), ForeignKey("iot_sensors.id", ondelete="CASCADE"), nullable=False)
    value = Column(Float, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    quality = Column(Float, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)


class SensorAlert(Base):
    __tablename__ = "sensor_alerts"
    __table_args__ = (
        Index("idx_sensor_alerts_sensor_status", "sensor_id", "status", "severity"),
        Index("idx_sensor_alerts_mill_status", "mill_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    sensor_id = Column(String(36), ForeignKey("iot_sensors.id", ondelete="CASCADE"), nullable=False)
    equipment_id = Column(String(36), ForeignKey("equipment.id", ondelete="SET NULL"), nullable=True)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=False)

    severity = Column(
        SAEnum(SensorAlertSeverity, name="sensor_alert_severity_enum", native_enum=False),
        nullable=False,
    )
    status = Column(
        SAEnum(SensorAlertStatus, name="sensor_alert_status_enum", native_enum=False),
        nullable=False,
        default=SensorAlertStatus.ACTIVE,
    )
    message = Column(Text, nullable=False)
    detected_value = Column(Float, nullable=False)
    threshold = Column(Float, nullable=True)

    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolution = Column(Text, nullable=True)
    root_cause = Column(Text, nullable=True)
    preventive_measures = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    sensor = relationship("IoTSensor", back_populates="alerts")
