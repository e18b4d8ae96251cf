"""
Predictive maintenance heuristic over a trailing window of sensor readings.

The analysis is a single pass over already-fetched values: summary
statistics, an early-third vs recent-third drift, threshold proximity rules
and a linear time-to-breach estimate.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

WINDOW_DAYS = 7
MIN_READINGS = 10
# Means with a smaller magnitude are treated as zero for ratio metrics.
NEAR_ZERO = 1e-9
PREDICTION_HORIZON_DAYS = 90

HIGH_VARIABILITY_CV = 30.0
SIGNIFICANT_DRIFT = 15.0
EXTRAPOLATION_DRIFT = 5.0


class RiskLevel(str, enum.Enum):
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


RISK_RANK = {
    RiskLevel.INSUFFICIENT_DATA: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}

RECOMMENDED_ACTIONS = {
    RiskLevel.INSUFFICIENT_DATA: "COLLECT_MORE_DATA",
    RiskLevel.LOW: "ROUTINE_MONITORING",
    RiskLevel.MEDIUM: "MONITOR_CLOSELY",
    RiskLevel.HIGH: "SCHEDULE_MAINTENANCE",
    RiskLevel.CRITICAL: "IMMEDIATE_INSPECTION",
}


@dataclass
class ReadingMetrics:
    count: int
    mean: float
    std_dev: float
    cv: Optional[float]
    early_mean: float
    recent_mean: float
    drift: Optional[float]


@dataclass
class SensorPrediction:
    risk_level: RiskLevel
    confidence: int
    recommended_action: str
    reasons: List[str] = field(default_factory=list)
    metrics: Optional[ReadingMetrics] = None
    days_to_threshold: Optional[float] = None
    predicted_breach_date: Optional[datetime] = None


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def compute_metrics(values: Sequence[float]) -> ReadingMetrics:
    """Statistics for a chronologically ordered series of at least three values."""
    count = len(values)
    mean = _mean(values)
    std_dev = math.sqrt(sum((v - mean) ** 2 for v in values) / count)

    third = count // 3
    early_mean = _mean(values[:third])
    recent_mean = _mean(values[-third:])

    cv = None if abs(mean) < NEAR_ZERO else round(std_dev / mean * 100, 2)
    drift = None if abs(early_mean) < NEAR_ZERO else round((recent_mean - early_mean) / early_mean * 100, 2)

    return ReadingMetrics(
        count=count,
        mean=round(mean, 2),
        std_dev=round(std_dev, 2),
        cv=cv,
        early_mean=round(early_mean, 2),
        recent_mean=round(recent_mean, 2),
        drift=drift,
    )


def _escalate(current: RiskLevel, candidate: RiskLevel) -> RiskLevel:
    return candidate if RISK_RANK[candidate] > RISK_RANK[current] else current


def analyze_series(
    values: Sequence[float],
    *,
    max_threshold: Optional[float] = None,
    critical_min: Optional[float] = None,
    critical_max: Optional[float] = None,
    unit: str = "",
    window_days: int = WINDOW_DAYS,
    now: Optional[datetime] = None,
) -> SensorPrediction:
    """
    Classify one sensor's risk from its readings in the window.

    `values` must be in chronological order.
    """
    if len(values) < MIN_READINGS:
        return SensorPrediction(
            risk_level=RiskLevel.INSUFFICIENT_DATA,
            confidence=0,
            recommended_action=RECOMMENDED_ACTIONS[RiskLevel.INSUFFICIENT_DATA],
            reasons=[f"Only {len(values)} readings in the last {window_days} days"],
        )

    metrics = compute_metrics(values)
    recent = metrics.recent_mean
    risk = RiskLevel.LOW
    confidence = 50
    reasons: List[str] = []

    if max_threshold is not None:
        if recent > max_threshold * 0.9:
            risk, confidence = RiskLevel.HIGH, 75
            reasons.append(f"Approaching max threshold ({max_threshold}{unit})")
        elif recent > max_threshold * 0.8:
            risk, confidence = RiskLevel.MEDIUM, 60
            reasons.append(f"Nearing max threshold ({max_threshold}{unit})")

    if metrics.cv is not None and metrics.cv > HIGH_VARIABILITY_CV:
        risk = _escalate(risk, RiskLevel.MEDIUM)
        confidence = max(confidence, 65)
        reasons.append(f"High variability detected (CV: {metrics.cv:.1f}%)")

    if metrics.drift is None:
        reasons.append("Drift not computed: early-window mean is near zero")
    elif abs(metrics.drift) > SIGNIFICANT_DRIFT:
        risk = _escalate(risk, RiskLevel.MEDIUM)
        confidence = max(confidence, 70)
        direction = "Upward" if metrics.drift > 0 else "Downward"
        reasons.append(f"{direction} drift detected ({abs(metrics.drift):.1f}%)")

    if (critical_max is not None and recent > critical_max * 0.85) or (
        critical_min is not None and recent < critical_min * 1.15
    ):
        risk, confidence = RiskLevel.CRITICAL, 85
        reasons.append("Approaching critical threshold")

    days_to_threshold = None
    predicted = None
    if max_threshold is not None and metrics.drift is not None and metrics.drift > EXTRAPOLATION_DRIFT:
        daily_rate = (metrics.recent_mean - metrics.early_mean) / window_days
        if daily_rate > 0:
            days = (max_threshold - recent) / daily_rate
            if 0 < days < PREDICTION_HORIZON_DAYS:
                days_to_threshold = round(days, 1)
                predicted = (now or datetime.now(timezone.utc)) + timedelta(days=days)
                reasons.append(f"Estimated {round(days)} days until threshold breach")

    return SensorPrediction(
        risk_level=risk,
        confidence=confidence,
        recommended_action=RECOMMENDED_ACTIONS[risk],
        reasons=reasons,
        metrics=metrics,
        days_to_threshold=days_to_threshold,
        predicted_breach_date=predicted,
    )


def highest_risk(levels: Iterable[RiskLevel]) -> RiskLevel:
    """Equipment risk is the worst level across its sensors."""
    result = None
    for level in levels:
        if result is None or RISK_RANK[level] > RISK_RANK[result]:
            result = level
    return result or RiskLevel.LOW


def summarize(equipment_levels: Sequence[RiskLevel]) -> Dict[str, int]:
    counts = {level: 0 for level in RiskLevel}
    for level in equipment_levels:
        counts[level] += 1
    return {
        "total": len(equipment_levels),
        "at_risk": counts[RiskLevel.MEDIUM] + counts[RiskLevel.HIGH] + counts[RiskLevel.CRITICAL],
        "critical": counts[RiskLevel.CRITICAL],
        "high": counts[RiskLevel.HIGH],
        "medium": counts[RiskLevel.MEDIUM],
    }
