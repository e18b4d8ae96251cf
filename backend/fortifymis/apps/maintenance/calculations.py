"""
Date and health arithmetic for equipment maintenance.

Kept free of database access so the routers and the tests call the same
functions.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
import math
from typing import List, Optional, Sequence, Union

DUE_SOON_DAYS = 7
UPCOMING_DAYS = 14
MAX_CALIBRATION_OFFSET = 5.0

_INTERVAL_MONTHS = {
    "MONTHLY": 1,
    "QUARTERLY": 3,
    "SEMI_ANNUAL": 6,
    "ANNUAL": 12,
    "YEARLY": 12,
}
_INTERVAL_DAYS = {
    "DAILY": 1,
    "WEEKLY": 7,
}
DEFAULT_INTERVAL_DAYS = 30

DateLike = Union[date, datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: DateLike) -> datetime:
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def add_months(base: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    if months <= 0:
        return base
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=day)


def is_valid_interval(interval: Union[str, int, None]) -> bool:
    if interval is None:
        return True
    text = str(interval).strip().upper()
    if text.isdigit():
        return int(text) > 0
    return text in _INTERVAL_MONTHS or text in _INTERVAL_DAYS


def next_due_date(last_date: DateLike, interval: Union[str, int, None], count: int = 1) -> datetime:
    """
    Next due date after `last_date`.

    `interval` is an interval name (DAILY, WEEKLY, MONTHLY, QUARTERLY,
    SEMI_ANNUAL, ANNUAL) or a number of days; unknown values fall back to
    30 days.
    """
    start = _aware(last_date)
    text = str(interval).strip().upper() if interval is not None else ""
    if text.isdigit():
        return start + timedelta(days=int(text) * count)
    if text in _INTERVAL_DAYS:
        return start + timedelta(days=_INTERVAL_DAYS[text] * count)
    if text in _INTERVAL_MONTHS:
        return add_months(start, _INTERVAL_MONTHS[text] * count)
    return start + timedelta(days=DEFAULT_INTERVAL_DAYS * count)


def days_until(due: DateLike, now: Optional[datetime] = None) -> int:
    now = now or _utcnow()
    return math.ceil((_aware(due) - now).total_seconds() / 86400)


@dataclass
class DueStatus:
    status: str
    severity: str
    days_remaining: int


def maintenance_status(due: DateLike, now: Optional[datetime] = None) -> DueStatus:
    """OVERDUE / DUE_SOON (<= 7 days) / UPCOMING (<= 14 days) / SCHEDULED."""
    remaining = days_until(due, now)
    if remaining < 0:
        return DueStatus("OVERDUE", "CRITICAL", remaining)
    if remaining <= DUE_SOON_DAYS:
        return DueStatus("DUE_SOON", "HIGH", remaining)
    if remaining <= UPCOMING_DAYS:
        return DueStatus("UPCOMING", "MEDIUM", remaining)
    return DueStatus("SCHEDULED", "LOW", remaining)


# ---------------------------------------------------------------------------
# CALIBRATION
# ---------------------------------------------------------------------------


@dataclass
class CalibrationPoint:
    expected_value: float
    actual_value: float
    tolerance: float
    test_point: Optional[float] = None
    unit: Optional[str] = None


@dataclass
class CalibrationResult:
    is_valid: bool
    overall_offset: float
    max_deviation: float
    failed_points: List[int] = field(default_factory=list)
    deviations: List[float] = field(default_factory=list)


def validate_calibration(points: Sequence[CalibrationPoint]) -> CalibrationResult:
    """
    Percentage deviation of each measurement against its expected value.

    Valid when every point is within its tolerance and the mean offset stays
    within 5%.
    """
    if not points:
        raise ValueError("At least one calibration measurement is required")

    deviations: List[float] = []
    failed: List[int] = []
    for index, point in enumerate(points):
        if point.expected_value == 0:
            raise ValueError(f"Measurement {index} has an expected value of zero")
        deviation = (point.actual_value - point.expected_value) / point.expected_value * 100
        deviations.append(round(deviation, 4))
        if abs(deviation) > point.tolerance:
            failed.append(index)

    overall = sum(deviations) / len(deviations)
    return CalibrationResult(
        is_valid=not failed and abs(overall) <= MAX_CALIBRATION_OFFSET,
        overall_offset=round(overall, 4),
        max_deviation=round(max(abs(d) for d in deviations), 4),
        failed_points=failed,
        deviations=deviations,
    )


# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------


@dataclass
class EquipmentHealth:
    health_score: int
    status: str
    risk_level: str
    recommendations: List[str]


def equipment_health(
    *,
    last_calibration_date: Optional[DateLike],
    active_alerts: int,
    overdue_tasks: int,
    age_years: float,
    calibration_offset: float,
    now: Optional[datetime] = None,
) -> EquipmentHealth:
    score = 100
    recommendations: List[str] = []

    if last_calibration_date is not None:
        since = -days_until(last_calibration_date, now)
        if since > 90:
            score -= 30
            recommendations.append("Calibration overdue by more than 90 days")
        elif since > 60:
            score -= 20
            recommendations.append("Calibration overdue")
        elif since > 30:
            score -= 10

    if active_alerts > 5:
        score -= 25
        recommendations.append("Multiple active alerts - immediate attention required")
    elif active_alerts > 2:
        score -= 15
        recommendations.append("Several active alerts - schedule maintenance")
    elif active_alerts > 0:
        score -= 5

    if overdue_tasks > 3:
        score -= 20
        recommendations.append("Multiple overdue maintenance tasks")
    elif overdue_tasks > 0:
        score -= 10

    if age_years > 10:
        score -= 15
        recommendations.append("Equipment aging - consider replacement planning")
    elif age_years > 7:
        score -= 10
        recommendations.append("Equipment approaching end of typical lifespan")
    elif age_years > 5:
        score -= 5

    offset = abs(calibration_offset)
    if offset > 5:
        score -= 10
        recommendations.append("Significant calibration drift detected")
    elif offset > 3:
        score -= 5

    if score >= 90:
        status, risk = "EXCELLENT", "LOW"
    elif score >= 75:
        status, risk = "GOOD", "LOW"
    elif score >= 60:
        status, risk = "FAIR", "MEDIUM"
    elif score >= 40:
        status, risk = "POOR", "HIGH"
    else:
        status, risk = "CRITICAL", "CRITICAL"

    return EquipmentHealth(
        health_score=max(0, score),
        status=status,
        risk_level=risk,
        recommendations=recommendations,
    )
