"""
Per-role count summaries.

Every figure is a COUNT/SUM over the live tables, scoped the same way the
matching list endpoints are scoped.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Dict, Optional, Type

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.accounts.models import UserRole
from fortifymis.apps.alerts import services as alert_services
from fortifymis.apps.alerts.enums import AlertSeverity, AlertStatus
from fortifymis.apps.alerts.models import Alert
from fortifymis.apps.compliance import models as compliance_models
from fortifymis.apps.compliance.models import AuditStatus, CertificateStatus
from fortifymis.apps.iot import models as iot_models
from fortifymis.apps.iot.models import SensorAlertSeverity, SensorAlertStatus
from fortifymis.apps.logistics import models as logistics_models
from fortifymis.apps.logistics import services as logistics_services
from fortifymis.apps.logistics.models import TripStatus
from fortifymis.apps.maintenance import models as maintenance_models
from fortifymis.apps.maintenance.models import EquipmentStatus
from fortifymis.apps.procurement import models as procurement_models
from fortifymis.apps.procurement.models import BidStatus, PurchaseOrderStatus, RFPStatus
from fortifymis.apps.training import models as training_models
from fortifymis.apps.training.models import ProgressStatus
from fortifymis.errors import NotFoundError

OPEN_ALERT_STATUSES = (AlertStatus.PENDING, AlertStatus.ACKNOWLEDGED, AlertStatus.IN_PROGRESS, AlertStatus.ESCALATED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def count_by_status(query: Query, column, statuses: Type) -> Dict[str, int]:
    """Counts per enum member, zero-filled."""
    counts = {member.value: 0 for member in statuses}
    rows = query.with_entities(column, func.count()).group_by(column).all()
    for status, total in rows:
        key = status.value if hasattr(status, "value") else str(status)
        counts[key] = total
    return counts


def mill_dashboard(db: Session, user: account_models.User, mill_id: str) -> dict:
    mill = db.query(account_models.Mill).filter(account_models.Mill.id == mill_id).first()
    if not mill:
        raise NotFoundError("Mill")
    now = _utcnow()

    # Alerts
    if user.role == UserRole.SYSTEM_ADMIN:
        alert_q = db.query(Alert).filter(Alert.mill_id == mill_id)
    else:
        alert_q = alert_services.visible_alerts(db, user)
    open_alerts = alert_q.filter(Alert.status.in_(OPEN_ALERT_STATUSES)).count()

    # Sensor alerts
    sensor_alert_q = db.query(iot_models.SensorAlert).filter(
        iot_models.SensorAlert.mill_id == mill_id,
        iot_models.SensorAlert.status == SensorAlertStatus.ACTIVE,
    )
    active_sensor_alerts = sensor_alert_q.count()
    critical_sensor_alerts = sensor_alert_q.filter(
        iot_models.SensorAlert.severity == SensorAlertSeverity.CRITICAL
    ).count()

    # Maintenance
    task_q = db.query(maintenance_models.MaintenanceTask).filter(
        maintenance_models.MaintenanceTask.mill_id == mill_id,
        maintenance_models.MaintenanceTask.status.in_(maintenance_models.OPEN_TASK_STATUSES),
    )
    pending_tasks = task_q.count()
    overdue_tasks = task_q.filter(maintenance_models.MaintenanceTask.scheduled_date < now).count()

    equipment_q = db.query(maintenance_models.Equipment).filter(maintenance_models.Equipment.mill_id == mill_id)
    equipment_total = equipment_q.count()
    equipment_needing_calibration = equipment_q.filter(
        maintenance_models.Equipment.status == EquipmentStatus.NEEDS_CALIBRATION
    ).count()

    # Compliance
    latest_audit = (
        db.query(compliance_models.ComplianceAudit)
        .filter(
            compliance_models.ComplianceAudit.mill_id == mill_id,
            compliance_models.ComplianceAudit.score.is_not(None),
        )
        .order_by(compliance_models.ComplianceAudit.scored_at.desc())
        .first()
    )

    # Training
    training_completions = (
        db.query(training_models.TrainingProgress)
        .join(account_models.User, account_models.User.id == training_models.TrainingProgress.user_id)
        .filter(
            account_models.User.mill_id == mill_id,
            training_models.TrainingProgress.status == ProgressStatus.COMPLETED,
        )
        .count()
    )

    return {
        "mill_id": mill.id,
        "open_alerts": open_alerts,
        "active_sensor_alerts": active_sensor_alerts,
        "critical_sensor_alerts": critical_sensor_alerts,
        "pending_tasks": pending_tasks,
        "overdue_tasks": overdue_tasks,
        "equipment_total": equipment_total,
        "equipment_needing_calibration": equipment_needing_calibration,
        "latest_audit_score": latest_audit.score if latest_audit else None,
        "latest_audit_status": latest_audit.status.value if latest_audit else None,
        "latest_audit_date": latest_audit.scored_at if latest_audit else None,
        "training_completions": training_completions,
    }


def inspector_dashboard(db: Session, user: account_models.User) -> dict:
    audit_q = db.query(compliance_models.ComplianceAudit)
    average = (
        db.query(func.avg(compliance_models.ComplianceAudit.score))
        .filter(compliance_models.ComplianceAudit.score.is_not(None))
        .scalar()
    )
    return {
        "audits_pending_review": audit_q.filter(
            compliance_models.ComplianceAudit.status == AuditStatus.PENDING_REVIEW
        ).count(),
        "audits_approved": audit_q.filter(compliance_models.ComplianceAudit.status == AuditStatus.APPROVED).count(),
        "audits_rejected": audit_q.filter(compliance_models.ComplianceAudit.status == AuditStatus.REJECTED).count(),
        "audits_revision_requested": audit_q.filter(
            compliance_models.ComplianceAudit.status == AuditStatus.REVISION_REQUESTED
        ).count(),
        "reviewed_by_me": audit_q.filter(compliance_models.ComplianceAudit.reviewed_by_id == user.id).count(),
        "average_score": round(float(average), 2) if average is not None else None,
        "open_alerts": alert_services.visible_alerts(db, user).filter(Alert.status.in_(OPEN_ALERT_STATUSES)).count(),
    }


def program_dashboard(db: Session) -> dict:
    mills_q = db.query(account_models.Mill)
    at_risk_sensors = (
        db.query(func.count(func.distinct(iot_models.SensorAlert.sensor_id)))
        .filter(
            iot_models.SensorAlert.status.in_(iot_models.OPEN_SENSOR_ALERT_STATUSES),
            iot_models.SensorAlert.severity == SensorAlertSeverity.CRITICAL,
        )
        .scalar()
        or 0
    )
    return {
        "mills_total": mills_q.count(),
        "mills_active": mills_q.filter(account_models.Mill.is_active.is_(True)).count(),
        "audits_by_status": count_by_status(
            db.query(compliance_models.ComplianceAudit),
            compliance_models.ComplianceAudit.status,
            AuditStatus,
        ),
        "active_certificates": db.query(compliance_models.ComplianceCertificate)
        .filter(
            compliance_models.ComplianceCertificate.status == CertificateStatus.ACTIVE,
            compliance_models.ComplianceCertificate.valid_until > _utcnow(),
        )
        .count(),
        "training_certificates": db.query(training_models.TrainingCertificate).count(),
        "at_risk_sensors": at_risk_sensors,
        "open_critical_alerts": db.query(Alert)
        .filter(Alert.status.in_(OPEN_ALERT_STATUSES), Alert.severity == AlertSeverity.CRITICAL)
        .count(),
        "open_rfps": db.query(procurement_models.RFP).filter(procurement_models.RFP.status == RFPStatus.OPEN).count(),
    }


def buyer_dashboard(db: Session, user: account_models.User) -> dict:
    rfp_q = db.query(procurement_models.RFP)
    bid_q = db.query(procurement_models.Bid).filter(procurement_models.Bid.status != BidStatus.DRAFT)
    po_q = db.query(procurement_models.PurchaseOrder)
    if user.role != UserRole.SYSTEM_ADMIN:
        rfp_q = rfp_q.filter(procurement_models.RFP.buyer_id == user.id)
        bid_q = bid_q.join(procurement_models.RFP, procurement_models.RFP.id == procurement_models.Bid.rfp_id).filter(
            procurement_models.RFP.buyer_id == user.id
        )
        po_q = po_q.filter(procurement_models.PurchaseOrder.buyer_id == user.id)

    value = (
        po_q.filter(procurement_models.PurchaseOrder.status != PurchaseOrderStatus.CANCELLED)
        .with_entities(func.coalesce(func.sum(procurement_models.PurchaseOrder.total_amount), 0.0))
        .scalar()
    )
    return {
        "rfps_by_status": count_by_status(rfp_q, procurement_models.RFP.status, RFPStatus),
        "bids_received": bid_q.count(),
        "purchase_orders_by_status": count_by_status(
            po_q, procurement_models.PurchaseOrder.status, PurchaseOrderStatus
        ),
        "purchase_order_value": round(float(value or 0.0), 2),
    }


def logistics_dashboard(db: Session, user: account_models.User, now: Optional[datetime] = None) -> dict:
    now = now or _utcnow()
    trip_q = logistics_services.visible_trips(db, user)
    day_start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
    day_end = day_start + timedelta(days=1)

    active = (
        trip_q.filter(logistics_models.DeliveryTrip.status == TripStatus.IN_PROGRESS)
        .with_entities(logistics_models.DeliveryTrip.id)
        .all()
    )
    distance = (
        trip_q.filter(logistics_models.DeliveryTrip.status == TripStatus.COMPLETED)
        .with_entities(func.coalesce(func.sum(logistics_models.DeliveryTrip.total_distance_km), 0.0))
        .scalar()
    )
    return {
        "trips_by_status": count_by_status(trip_q, logistics_models.DeliveryTrip.status, TripStatus),
        "active_trip_ids": [row[0] for row in active],
        "scheduled_today": trip_q.filter(
            logistics_models.DeliveryTrip.status == TripStatus.SCHEDULED,
            logistics_models.DeliveryTrip.scheduled_date >= day_start,
            logistics_models.DeliveryTrip.scheduled_date < day_end,
        ).count(),
        "distance_completed_km": round(float(distance or 0.0), 3),
    }
