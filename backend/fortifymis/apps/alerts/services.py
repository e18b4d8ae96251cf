from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query, Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.workflow import apply_transition

from . import models
from .enums import AlertCategory, AlertSeverity, AlertStatus, get_alert_config

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(alert: models.Alert) -> dict:
    return {
        "type": alert.type,
        "title": alert.title,
        "severity": alert.severity,
        "category": alert.category,
        "status": alert.status,
        "recipient_id": alert.recipient_id,
        "recipient_role": alert.recipient_role,
        "mill_id": alert.mill_id,
        "resolution_notes": alert.resolution_notes,
    }


def visible_alerts(db: Session, user: account_models.User) -> Query:
    """Alerts addressed to the user, or to the user's role within their mill."""
    query = db.query(models.Alert)
    if user.role == account_models.UserRole.SYSTEM_ADMIN:
        return query
    role_match = and_(
        models.Alert.recipient_role == user.role,
        or_(models.Alert.mill_id.is_(None), models.Alert.mill_id == user.mill_id),
    )
    return query.filter(or_(models.Alert.recipient_id == user.id, role_match))


def can_view(alert: models.Alert, user: account_models.User) -> bool:
    if user.role == account_models.UserRole.SYSTEM_ADMIN:
        return True
    if alert.recipient_id == user.id:
        return True
    if alert.recipient_role == user.role:
        return alert.mill_id is None or alert.mill_id == user.mill_id
    return False


def create_alert(
    db: Session,
    *,
    alert_type: str,
    title: str,
    message: str,
    severity: Optional[AlertSeverity] = None,
    category: Optional[AlertCategory] = None,
    recipient_id: Optional[str] = None,
    recipient_role: Optional[account_models.UserRole] = None,
    mill_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    created_by_id: Optional[str] = None,
) -> models.Alert:
    config = get_alert_config(alert_type)
    now = _utcnow()
    alert = models.Alert(
        type=alert_type,
        title=title,
        message=message,
        severity=severity or config.severity,
        category=category or config.category,
        status=AlertStatus.PENDING,
        recipient_id=recipient_id,
        recipient_role=recipient_role,
        mill_id=mill_id,
        resource_type=resource_type,
        resource_id=resource_id,
        metadata_json=metadata or {},
        action_required=config.action_required,
        due_at=now + timedelta(hours=config.response_time_hours) if config.response_time_hours else None,
        created_by_id=created_by_id,
        created_at=now,
    )
    db.add(alert)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=mill_id,
        actor_user_id=created_by_id,
        entity_type="alert",
        entity_id=alert.id,
        action="CREATE",
        after=_snapshot(alert),
    )
    return alert


def change_status(
    db: Session,
    *,
    alert: models.Alert,
    status: AlertStatus,
    actor: account_models.User,
    resolution_notes: Optional[str] = None,
) -> models.Alert:
    from_state = alert.status.value
    now = _utcnow()
    after = {"mill_id": alert.mill_id}
    if resolution_notes:
        after["resolution_notes"] = resolution_notes

    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="alert",
        entity_id=alert.id,
        from_state=from_state,
        to_state=status.value,
        before_obj={"mill_id": alert.mill_id},
        after_obj=after,
    )

    alert.status = status
    if status == AlertStatus.ACKNOWLEDGED and alert.acknowledged_at is None:
        alert.acknowledged_at = now
        alert.acknowledged_by_id = actor.id
    if status == AlertStatus.RESOLVED and alert.resolved_at is None:
        alert.resolved_at = now
        alert.resolved_by_id = actor.id
    return alert


def update_alert(
    db: Session,
    *,
    alert: models.Alert,
    actor: account_models.User,
    status: Optional[AlertStatus] = None,
    resolution_notes: Optional[str] = None,
    read: Optional[bool] = None,
) -> models.Alert:
    before = _snapshot(alert)
    if status is not None and status != alert.status:
        change_status(db, alert=alert, status=status, actor=actor, resolution_notes=resolution_notes)
    if resolution_notes:
        alert.resolution_notes = resolution_notes
    if read is True and alert.read_at is None:
        alert.read_at = _utcnow()
    elif read is False:
        alert.read_at = None

    audit_services.log_event(
        db,
        mill_id=alert.mill_id,
        actor_user_id=actor.id,
        entity_type="alert",
        entity_id=alert.id,
        action="UPDATE",
        before=before,
        after=_snapshot(alert),
    )
    return alert


def mark_read_if_recipient(alert: models.Alert, user: account_models.User) -> bool:
    if alert.read_at is None and alert.recipient_id == user.id:
        alert.read_at = _utcnow()
        return True
    return False


def delete_alert(db: Session, *, alert: models.Alert, actor_user_id: str) -> None:
    audit_services.log_event(
        db,
        mill_id=alert.mill_id,
        actor_user_id=actor_user_id,
        entity_type="alert",
        entity_id=alert.id,
        action="DELETE",
        before=_snapshot(alert),
        critical=True,
    )
    db.delete(alert)
    logger.info("Alert deleted", extra={"alert_id": alert.id, "actor_user_id": actor_user_id})
