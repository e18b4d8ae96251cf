from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Dict, Optional


class AlertSeverity(str, enum.Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class AlertCategory(str, enum.Enum):
    QUALITY_SAFETY = "QUALITY_SAFETY"
    COMPLIANCE = "COMPLIANCE"
    MAINTENANCE = "MAINTENANCE"
    PRODUCTION = "PRODUCTION"
    PROCUREMENT = "PROCUREMENT"
    LOGISTICS = "LOGISTICS"
    TRAINING = "TRAINING"
    SYSTEM = "SYSTEM"


class AlertStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"


@dataclass(frozen=True)
class AlertConfig:
    severity: AlertSeverity
    category: AlertCategory
    action_required: str
    response_time_hours: Optional[int] = None


# Defaults applied when an alert is raised without explicit severity/category.
ALERT_CONFIGS: Dict[str, AlertConfig] = {
    "QC_FAILURE": AlertConfig(
        AlertSeverity.CRITICAL,
        AlertCategory.QUALITY_SAFETY,
        "Root cause analysis and corrective action within 24 hours",
        24,
    ),
    "CONTAMINATION_RISK": AlertConfig(
        AlertSeverity.CRITICAL,
        AlertCategory.QUALITY_SAFETY,
        "Immediate batch quarantine and investigation",
        1,
    ),
    "PREMIX_EXPIRY": AlertConfig(
        AlertSeverity.CRITICAL,
        AlertCategory.QUALITY_SAFETY,
        "Stop using expired premix and source replacement",
        4,
    ),
    "CRITICAL_NON_COMPLIANCE": AlertConfig(
        AlertSeverity.HIGH,
        AlertCategory.COMPLIANCE,
        "Corrective action plan within 7 days",
        168,
    ),
    "COMPLIANCE_SCORE_DROP": AlertConfig(
        AlertSeverity.HIGH, AlertCategory.COMPLIANCE, "Review and investigation", 168
    ),
    "CERTIFICATION_EXPIRY": AlertConfig(
        AlertSeverity.HIGH, AlertCategory.COMPLIANCE, "Schedule renewal audit", 720
    ),
    "CALIBRATION_DUE": AlertConfig(
        AlertSeverity.MEDIUM, AlertCategory.MAINTENANCE, "Schedule calibration", 336
    ),
    "CALIBRATION_OVERDUE": AlertConfig(
        AlertSeverity.HIGH,
        AlertCategory.MAINTENANCE,
        "Immediate calibration, production hold if critical equipment",
        8,
    ),
    "EQUIPMENT_DRIFT": AlertConfig(
        AlertSeverity.MEDIUM, AlertCategory.MAINTENANCE, "Investigate and recalibrate", 4
    ),
    "PREMIX_USAGE_ANOMALY": AlertConfig(
        AlertSeverity.MEDIUM,
        AlertCategory.PRODUCTION,
        "Verify measurements and check equipment",
        8,
    ),
    "NEW_RFP_MATCH": AlertConfig(
        AlertSeverity.LOW, AlertCategory.PROCUREMENT, "Review the tender and prepare a bid"
    ),
    "BID_DEADLINE_APPROACHING": AlertConfig(
        AlertSeverity.MEDIUM, AlertCategory.PROCUREMENT, "Submit the bid before the deadline", 48
    ),
    "DELIVERY_DELAY": AlertConfig(
        AlertSeverity.MEDIUM, AlertCategory.LOGISTICS, "Update the buyer and revise the schedule", 24
    ),
    "DELIVERY_ISSUE": AlertConfig(
        AlertSeverity.HIGH, AlertCategory.LOGISTICS, "Resolve the delivery issue with the driver", 8
    ),
    "TRAINING_OVERDUE": AlertConfig(
        AlertSeverity.LOW, AlertCategory.TRAINING, "Complete the assigned training", 168
    ),
    "NEW_TRAINING_AVAILABLE": AlertConfig(
        AlertSeverity.LOW, AlertCategory.TRAINING, "Enrol in the new course"
    ),
}

DEFAULT_ALERT_CONFIG = AlertConfig(AlertSeverity.MEDIUM, AlertCategory.SYSTEM, "Review the alert")


def get_alert_config(alert_type: str) -> AlertConfig:
    return ALERT_CONFIGS.get(alert_type, DEFAULT_ALERT_CONFIG)
