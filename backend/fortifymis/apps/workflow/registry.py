from __future__ import annotations

from .guards import (
    guard_audit_has_responses,
    guard_audit_scored,
    guard_rfp_award,
    guard_rfp_publish,
    guard_sensor_alert_resolve,
)

WORKFLOWS = {
    "alert": {
        "transitions": {
            "PENDING": {"ACKNOWLEDGED": [], "IN_PROGRESS": [], "RESOLVED": []},
            "ACKNOWLEDGED": {"IN_PROGRESS": [], "RESOLVED": []},
            "IN_PROGRESS": {"RESOLVED": [], "ESCALATED": []},
            "ESCALATED": {"IN_PROGRESS": [], "RESOLVED": []},
            "RESOLVED": {},
        }
    },
    "compliance_audit": {
        "transitions": {
            "IN_PROGRESS": {
                "PENDING_REVIEW": [guard_audit_has_responses],
                "APPROVED": [guard_audit_scored],
                "REJECTED": [],
                "REVISION_REQUESTED": [],
            },
            "PENDING_REVIEW": {
                "APPROVED": [guard_audit_scored],
                "REJECTED": [],
                "REVISION_REQUESTED": [],
            },
            "REVISION_REQUESTED": {"IN_PROGRESS": []},
            "APPROVED": {},
            "REJECTED": {},
        }
    },
    "maintenance_task": {
        "transitions": {
            "SCHEDULED": {"IN_PROGRESS": [], "CANCELLED": [], "OVERDUE": []},
            "OVERDUE": {"IN_PROGRESS": [], "CANCELLED": []},
            "IN_PROGRESS": {"COMPLETED": [], "CANCELLED": []},
            "COMPLETED": {},
            "CANCELLED": {},
        }
    },
    "sensor_alert": {
        "transitions": {
            "ACTIVE": {"ACKNOWLEDGED": [], "RESOLVED": [guard_sensor_alert_resolve]},
            "ACKNOWLEDGED": {"RESOLVED": [guard_sensor_alert_resolve]},
            "RESOLVED": {},
        }
    },
    "delivery_trip": {
        "transitions": {
            "SCHEDULED": {"IN_PROGRESS": [], "CANCELLED": []},
            "IN_PROGRESS": {"COMPLETED": [], "CANCELLED": []},
            "COMPLETED": {},
            "CANCELLED": {},
        }
    },
    "rfp": {
        "transitions": {
            "DRAFT": {"OPEN": [guard_rfp_publish], "CANCELLED": []},
            "OPEN": {"CLOSED": [], "CANCELLED": []},
            "CLOSED": {"AWARDED": [guard_rfp_award]},
            "AWARDED": {},
            "CANCELLED": {},
        }
    },
    "bid": {
        "transitions": {
            "DRAFT": {"SUBMITTED": [], "WITHDRAWN": []},
            "SUBMITTED": {"SHORTLISTED": [], "AWARDED": [], "NOT_SELECTED": [], "WITHDRAWN": []},
            "SHORTLISTED": {"AWARDED": [], "NOT_SELECTED": [], "WITHDRAWN": []},
            "AWARDED": {},
            "NOT_SELECTED": {},
            "WITHDRAWN": {},
        }
    },
}
