from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.apps.accounts.permissions import Permission, has_permission
from fortifymis.database import get_db
from fortifymis.errors import ForbiddenError, NotFoundError
from fortifymis.schemas import ApiResponse, ok, paginate
from fortifymis.security import get_current_active_user, require_permissions

from . import models, schemas, services
from .enums import AlertCategory, AlertSeverity, AlertStatus

router = APIRouter(prefix="/api/alerts", tags=["alerts"])

STATUS_PERMISSIONS = {
    AlertStatus.ACKNOWLEDGED: Permission.ALERT_ACKNOWLEDGE,
    AlertStatus.IN_PROGRESS: Permission.ALERT_ACKNOWLEDGE,
    AlertStatus.ESCALATED: Permission.ALERT_ACKNOWLEDGE,
    AlertStatus.RESOLVED: Permission.ALERT_RESOLVE,
}


def _get_visible_alert(db: Session, alert_id: str, user: User) -> models.Alert:
    alert = db.query(models.Alert).filter(models.Alert.id == alert_id).first()
    if not alert or not services.can_view(alert, user):
        raise NotFoundError("Alert")
    return alert


@router.get("", response_model=ApiResponse[schemas.AlertPage])
def list_alerts(
    status: Optional[AlertStatus] = None,
    severity: Optional[AlertSeverity] = None,
    category: Optional[AlertCategory] = None,
    unread_only: bool = False,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    query = services.visible_alerts(db, current_user)
    if status:
        query = query.filter(models.Alert.status == status)
    if severity:
        query = query.filter(models.Alert.severity == severity)
    if category:
        query = query.filter(models.Alert.category == category)

    unread_count = query.filter(models.Alert.read_at.is_(None)).count()
    if unread_only:
        query = query.filter(models.Alert.read_at.is_(None))

    return ok(
        paginate(
            query.order_by(models.Alert.created_at.desc()),
            page,
            page_size,
            unread_count=unread_count,
        )
    )


@router.post(
    "",
    response_model=ApiResponse[schemas.AlertRead],
    status_code=status.HTTP_201_CREATED,
)
def create_alert(
    payload: schemas.AlertCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.ALERT_CREATE)),
):
    alert = services.create_alert(
        db,
        alert_type=payload.type,
        title=payload.title,
        message=payload.message,
        severity=payload.severity,
        category=payload.category,
        recipient_id=payload.recipient_id,
        recipient_role=payload.recipient_role,
        mill_id=payload.mill_id,
        resource_type=payload.resource_type,
        resource_id=payload.resource_id,
        metadata=payload.metadata,
        created_by_id=current_user.id,
    )
    db.commit()
    db.refresh(alert)
    return ok(alert)


@router.get("/{alert_id}", response_model=ApiResponse[schemas.AlertRead])
def get_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    alert = _get_visible_alert(db, alert_id, current_user)
    if services.mark_read_if_recipient(alert, current_user):
        db.commit()
        db.refresh(alert)
    return ok(alert)


@router.patch("/{alert_id}", response_model=ApiResponse[schemas.AlertRead])
def update_alert(
    alert_id: str,
    payload: schemas.AlertUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    alert = _get_visible_alert(db, alert_id, current_user)
    required = STATUS_PERMISSIONS.get(payload.status)
    if required and not has_permission(current_user.role, required):
        raise ForbiddenError(f"Insufficient permissions to set alert status to {payload.status.value}")
    services.update_alert(
        db,
        alert=alert,
        actor=current_user,
        status=payload.status,
        resolution_notes=payload.resolution_notes,
        read=payload.read,
    )
    db.commit()
    db.refresh(alert)
    return ok(alert)


@router.delete("/{alert_id}", response_model=ApiResponse[dict])
def delete_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.ALERT_DELETE)),
):
    alert = db.query(models.Alert).filter(models.Alert.id == alert_id).first()
    if not alert:
        raise NotFoundError("Alert")
    services.delete_alert(db, alert=alert, actor_user_id=current_user.id)
    db.commit()
    return ok({"id": alert_id}, message="Alert deleted successfully")
