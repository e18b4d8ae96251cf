# backend/fortifymis/apps/maintenance/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Date,
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


class EquipmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    UNDER_MAINTENANCE = "UNDER_MAINTENANCE"
    NEEDS_CALIBRATION = "NEEDS_CALIBRATION"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"
    DECOMMISSIONED = "DECOMMISSIONED"


# Equipment still expected to run and report.
IN_SERVICE_STATUSES = (
    EquipmentStatus.ACTIVE,
    EquipmentStatus.UNDER_MAINTENANCE,
    EquipmentStatus.NEEDS_CALIBRATION,
)


class TaskType(str, enum.Enum):
    PREVENTIVE = "PREVENTIVE"
    CORRECTIVE = "CORRECTIVE"
    CALIBRATION = "CALIBRATION"
    INSPECTION = "INSPECTION"
    EMERGENCY = "EMERGENCY"


class TaskPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TaskStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    OVERDUE = "OVERDUE"


OPEN_TASK_STATUSES = (TaskStatus.SCHEDULED, TaskStatus.IN_PROGRESS, TaskStatus.OVERDUE)


class Equipment(Base):
    """Dosers, feeders, mixers and other mill equipment under maintenance."""

    __tablename__ = "equipment"
    __table_args__ = (
        Index("idx_equipment_mill_status", "mill_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    type = Column(String(64), nullable=False)
    manufacturer = Column(String(128), nullable=True)
    model = Column(String(128), nullable=True)
    serial_number = Column(String(128), nullable=True, index=True)
    location = Column(String(255), nullable=True)
    installation_date = Column(Date, nullable=True)

    status = Column(
        SAEnum(EquipmentStatus, name="equipment_status_enum", native_enum=False),
        nullable=False,
        default=EquipmentStatus.ACTIVE,
    )

    # Interval name (MONTHLY, QUARTERLY, ...) or a number of days.
    calibration_interval = Column(String(32), nullable=True)
    last_calibration_date = Column(DateTime(timezone=True), nullable=True)
    next_calibration_date = Column(DateTime(timezone=True), nullable=True)
    last_calibration_offset = Column(Float, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    tasks = relationship("MaintenanceTask", back_populates="equipment")

    def __repr__(self) -> str:
        return f"<Equipment id={self.id} name={self.name}>"


class MaintenanceTask(Base):
    __tablename__ = "maintenance_tasks"
    __table_args__ = (
        Index("idx_maintenance_tasks_mill_status", "mill_id", "status"),
        Index("idx_maintenance_tasks_equipment", "equipment_id", "scheduled_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=False, index=True)
    equipment_id = Column(String(36), ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False)
    assigned_to_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    type = Column(
        SAEnum(TaskType, name="maintenance_task_type_enum", native_enum=False),
        nullable=False,
        default=TaskType.PREVENTIVE,
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(
        SAEnum(TaskPriority, name="maintenance_task_priority_enum", native_enum=False),
        nullable=False,
        default=TaskPriority.MEDIUM,
    )
    status = Column(
        SAEnum(TaskStatus, name="maintenance_task_status_enum", native_enum=False),
        nullable=False,
        default=TaskStatus.SCHEDULED,
        index=True,
    )

    scheduled_date = Column(DateTime(timezone=True), nullable=False)
    estimated_duration_minutes = Column(Integer, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_date = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    parts_replaced = Column(JSON, nullable=True)
    issues_found = Column(Text, nullable=True)
    calibration_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    equipment = relationship("Equipment", back_populates="tasks")

    def __repr__(self) -> str:
        return f"<MaintenanceTask id={self.id} status={self.status}>"
