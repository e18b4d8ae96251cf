from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fortifymis.schemas import Page

from .calculations import is_valid_interval
from .models import EquipmentStatus, TaskPriority, TaskStatus, TaskType


def _check_interval(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = str(value).strip().upper()
    if not is_valid_interval(value):
        raise ValueError(
            "calibration_interval must be DAILY, WEEKLY, MONTHLY, QUARTERLY, "
            "SEMI_ANNUAL, ANNUAL or a number of days"
        )
    return value


# ---------------------------------------------------------------------------
# EQUIPMENT
# ---------------------------------------------------------------------------


class EquipmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=64)
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    installation_date: Optional[date] = None
    calibration_interval: Optional[str] = None
    last_calibration_date: Optional[datetime] = None
    notes: Optional[str] = None
    mill_id: Optional[str] = None

    @field_validator("calibration_interval")
    @classmethod
    def normalize_interval(cls, value: Optional[str]) -> Optional[str]:
        return _check_interval(value)


class EquipmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = None
    status: Optional[EquipmentStatus] = None
    calibration_interval: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("calibration_interval")
    @classmethod
    def normalize_interval(cls, value: Optional[str]) -> Optional[str]:
        return _check_interval(value)


class EquipmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mill_id: str
    name: str
    type: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    location: Optional[str] = None
    installation_date: Optional[date] = None
    status: EquipmentStatus
    calibration_interval: Optional[str] = None
    last_calibration_date: Optional[datetime] = None
    next_calibration_date: Optional[datetime] = None
    last_calibration_offset: Optional[float] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class EquipmentHealthRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    equipment_id: str
    health_score: int
    status: str
    risk_level: str
    recommendations: List[str]
    active_alerts: int
    overdue_tasks: int
    age_years: float
    calibration_status: Optional[str] = None


# ---------------------------------------------------------------------------
# TASKS
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    equipment_id: str
    type: TaskType = TaskType.PREVENTIVE
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    scheduled_date: datetime
    estimated_duration_minutes: Optional[int] = Field(default=None, gt=0)
    assigned_to_id: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    scheduled_date: Optional[datetime] = None
    assigned_to_id: Optional[str] = None
    notes: Optional[str] = None
    parts_replaced: Optional[List[dict]] = None
    issues_found: Optional[str] = None
    calibration_data: Optional[dict] = None


class DueStatusRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    severity: str
    days_remaining: int


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mill_id: str
    equipment_id: str
    assigned_to_id: Optional[str] = None
    created_by_id: Optional[str] = None
    type: TaskType
    title: str
    description: Optional[str] = None
    priority: TaskPriority
    status: TaskStatus
    scheduled_date: datetime
    estimated_duration_minutes: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    notes: Optional[str] = None
    parts_replaced: Optional[List[dict]] = None
    issues_found: Optional[str] = None
    calibration_data: Optional[dict] = None
    created_at: datetime
    updated_at: datetime


class TaskDetail(TaskRead):
    due: Optional[DueStatusRead] = None


TaskPage = Page[TaskRead]
EquipmentPage = Page[EquipmentRead]


# ---------------------------------------------------------------------------
# CALIBRATION
# ---------------------------------------------------------------------------


class CalibrationMeasurement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    test_point: Optional[float] = Field(default=None, alias="testPoint")
    expected_value: float = Field(alias="expectedValue")
    actual_value: float = Field(alias="actualValue")
    tolerance: float = Field(ge=0)
    unit: Optional[str] = None


class CalibrationRequest(BaseModel):
    measurements: List[CalibrationMeasurement] = Field(min_length=1)
    task_id: Optional[str] = None


class CalibrationResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_valid: bool
    overall_offset: float
    max_deviation: float
    failed_points: List[int]
    deviations: List[float]
    recorded: bool = False
    next_calibration_date: Optional[datetime] = None
