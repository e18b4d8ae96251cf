from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fortifymis.apps.iot import predictive
from fortifymis.apps.iot.predictive import RiskLevel

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def test_short_series_is_insufficient_data():
    prediction = predictive.analyze_series([50.0] * 5, max_threshold=100)

    assert prediction.risk_level == RiskLevel.INSUFFICIENT_DATA
    assert prediction.confidence == 0
    assert prediction.recommended_action == "COLLECT_MORE_DATA"
    assert prediction.reasons == ["Only 5 readings in the last 7 days"]
    assert prediction.metrics is None


def test_stable_series_is_low_risk():
    prediction = predictive.analyze_series([50.0] * 12, max_threshold=100)

    assert prediction.risk_level == RiskLevel.LOW
    assert prediction.confidence == 50
    assert prediction.recommended_action == "ROUTINE_MONITORING"
    assert prediction.reasons == []
    assert prediction.metrics.cv == 0.0
    assert prediction.metrics.drift == 0.0


def test_upward_drift_projects_threshold_breach():
    values = [60.0] * 4 + [70.0] * 4 + [80.0] * 4

    prediction = predictive.analyze_series(values, max_threshold=100, unit="C", now=NOW)

    assert prediction.risk_level == RiskLevel.MEDIUM
    assert prediction.confidence == 70
    assert prediction.metrics.early_mean == 60.0
    assert prediction.metrics.recent_mean == 80.0
    assert prediction.metrics.drift == 33.33
    assert "Upward drift detected (33.3%)" in prediction.reasons
    assert prediction.days_to_threshold == 7.0
    assert prediction.predicted_breach_date.date() == (NOW + timedelta(days=7)).date()
    assert "Estimated 7 days until threshold breach" in prediction.reasons


def test_recent_mean_near_max_threshold_is_high_risk():
    prediction = predictive.analyze_series([95.0] * 10, max_threshold=100, unit="C")

    assert prediction.risk_level == RiskLevel.HIGH
    assert prediction.confidence == 75
    assert prediction.reasons[0] == "Approaching max threshold (100C)"
    assert prediction.recommended_action == "SCHEDULE_MAINTENANCE"


def test_critical_bounds_override_other_rules():
    above = predictive.analyze_series([90.0] * 10, critical_max=100)
    below = predictive.analyze_series([10.0] * 10, critical_min=9)

    for prediction in (above, below):
        assert prediction.risk_level == RiskLevel.CRITICAL
        assert prediction.confidence == 85
        assert prediction.recommended_action == "IMMEDIATE_INSPECTION"
        assert "Approaching critical threshold" in prediction.reasons


def test_zero_mean_series_skips_ratio_metrics():
    prediction = predictive.analyze_series([0.0] * 12, max_threshold=10)

    assert prediction.metrics.cv is None
    assert prediction.metrics.drift is None
    assert prediction.risk_level == RiskLevel.LOW
    assert prediction.reasons == ["Drift not computed: early-window mean is near zero"]
    assert prediction.days_to_threshold is None


def test_equipment_risk_is_worst_sensor_and_summary_counts():
    assert predictive.highest_risk([RiskLevel.LOW, RiskLevel.HIGH, RiskLevel.MEDIUM]) == RiskLevel.HIGH
    assert predictive.highest_risk([]) == RiskLevel.LOW

    summary = predictive.summarize([RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.CRITICAL, RiskLevel.CRITICAL])

    assert summary == {"total": 4, "at_risk": 3, "critical": 2, "high": 0, "medium": 1}


def test_insufficient_data_ignores_the_values():
    prediction = predictive.analyze_series([500.0] * 9, max_threshold=100, critical_max=120)

    assert prediction.risk_level == RiskLevel.INSUFFICIENT_DATA


def test_risk_never_drops_as_recent_mean_approaches_max():
    ranks = [
        predictive.RISK_RANK[predictive.analyze_series([float(level)] * 12, max_threshold=100).risk_level]
        for level in range(10, 101, 5)
    ]

    assert ranks == sorted(ranks)
    assert ranks[0] == predictive.RISK_RANK[RiskLevel.LOW]
    assert ranks[-1] == predictive.RISK_RANK[RiskLevel.HIGH]
