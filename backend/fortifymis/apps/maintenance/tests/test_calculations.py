from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from fortifymis.apps.maintenance import calculations
from fortifymis.apps.maintenance.calculations import CalibrationPoint

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def test_next_due_date_clamps_month_end():
    due = calculations.next_due_date(date(2026, 1, 31), "MONTHLY")

    assert due == datetime(2026, 2, 28, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "interval, expected_days",
    [("14", 14), ("WEEKLY", 7), ("daily", 1), ("BOGUS", 30), (None, 30)],
)
def test_next_due_date_day_intervals(interval, expected_days):
    assert calculations.next_due_date(NOW, interval) == NOW + timedelta(days=expected_days)


def test_next_due_date_quarterly_and_annual():
    assert calculations.next_due_date(NOW, "QUARTERLY") == datetime(2026, 9, 15, 12, 0, tzinfo=timezone.utc)
    assert calculations.next_due_date(NOW, "ANNUAL") == datetime(2027, 6, 15, 12, 0, tzinfo=timezone.utc)


def test_is_valid_interval():
    assert calculations.is_valid_interval("SEMI_ANNUAL")
    assert calculations.is_valid_interval("90")
    assert not calculations.is_valid_interval("0")
    assert not calculations.is_valid_interval("FORTNIGHTLY")


@pytest.mark.parametrize(
    "offset, status, severity",
    [
        (timedelta(days=-2), "OVERDUE", "CRITICAL"),
        (timedelta(days=3), "DUE_SOON", "HIGH"),
        (timedelta(days=10), "UPCOMING", "MEDIUM"),
        (timedelta(days=30), "SCHEDULED", "LOW"),
    ],
)
def test_maintenance_status_bands(offset, status, severity):
    result = calculations.maintenance_status(NOW + offset, NOW)

    assert result.status == status
    assert result.severity == severity


def test_naive_due_dates_are_treated_as_utc():
    naive_due = datetime(2026, 6, 18, 12, 0)

    assert calculations.days_until(naive_due, NOW) == 3


def test_calibration_within_tolerance_is_valid():
    result = calculations.validate_calibration(
        [
            CalibrationPoint(expected_value=100, actual_value=102, tolerance=3),
            CalibrationPoint(expected_value=50, actual_value=49, tolerance=3),
        ]
    )

    assert result.is_valid is True
    assert result.deviations == [2.0, -2.0]
    assert result.overall_offset == 0.0
    assert result.max_deviation == 2.0
    assert result.failed_points == []


def test_calibration_reports_failed_points():
    result = calculations.validate_calibration(
        [
            CalibrationPoint(expected_value=100, actual_value=110, tolerance=5),
            CalibrationPoint(expected_value=100, actual_value=101, tolerance=5),
        ]
    )

    assert result.is_valid is False
    assert result.failed_points == [0]


def test_calibration_fails_on_large_mean_offset():
    result = calculations.validate_calibration(
        [
            CalibrationPoint(expected_value=100, actual_value=106, tolerance=10),
            CalibrationPoint(expected_value=100, actual_value=105, tolerance=10),
        ]
    )

    assert result.failed_points == []
    assert result.overall_offset == 5.5
    assert result.is_valid is False


def test_calibration_rejects_bad_input():
    with pytest.raises(ValueError):
        calculations.validate_calibration([])
    with pytest.raises(ValueError):
        calculations.validate_calibration([CalibrationPoint(expected_value=0, actual_value=1, tolerance=1)])


def test_equipment_health_combines_penalties():
    health = calculations.equipment_health(
        last_calibration_date=NOW - timedelta(days=100),
        active_alerts=3,
        overdue_tasks=1,
        age_years=8,
        calibration_offset=-4,
        now=NOW,
    )

    assert health.health_score == 30
    assert health.status == "CRITICAL"
    assert health.risk_level == "CRITICAL"
    assert health.recommendations == [
        "Calibration overdue by more than 90 days",
        "Several active alerts - schedule maintenance",
        "Equipment approaching end of typical lifespan",
    ]


def test_new_equipment_is_excellent():
    health = calculations.equipment_health(
        last_calibration_date=None,
        active_alerts=0,
        overdue_tasks=0,
        age_years=0,
        calibration_offset=0,
        now=NOW,
    )

    assert health.health_score == 100
    assert health.status == "EXCELLENT"
    assert health.recommendations == []
