from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.database import get_db
from fortifymis.errors import NotFoundError
from fortifymis.schemas import ApiResponse, ok, paginate
from fortifymis.security import get_current_active_user

from . import models, schemas, service


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=ApiResponse[schemas.NotificationPage])
def list_notifications(
    unread_only: bool = False,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    query = db.query(models.Notification).filter(models.Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(models.Notification.read_at.is_(None))
    query = query.order_by(models.Notification.created_at.desc())
    return ok(
        paginate(
            query,
            page,
            page_size,
            unread_count=service.unread_count(db, user_id=current_user.id),
        )
    )


@router.post("/read-all", response_model=ApiResponse[schemas.MarkAllReadResult])
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    updated = service.mark_all_read(db, user_id=current_user.id)
    db.commit()
    return ok({"updated": updated})


@router.post("/{notification_id}/read", response_model=ApiResponse[schemas.NotificationRead])
def mark_notification_read(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    notification = (
        db.query(models.Notification)
        .filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == current_user.id,
        )
        .first()
    )
    if not notification:
        raise NotFoundError("Notification")
    service.mark_read(db, notification=notification)
    db.commit()
    db.refresh(notification)
    return ok(notification)
