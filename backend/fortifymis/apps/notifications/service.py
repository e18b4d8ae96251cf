from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from fortifymis.apps.accounts import models as account_models

from . import models

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def notify_user(
    db: Session,
    *,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    priority: models.NotificationPriority = models.NotificationPriority.NORMAL,
    action_url: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Optional[models.Notification]:
    """
    Queue an in-app notification in the caller's transaction.

    Failures are logged and never abort the primary write.
    """
    try:
        notification = models.Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            priority=priority,
            action_url=action_url,
            metadata_json=metadata or {},
        )
        db.add(notification)
        db.flush()
        return notification
    except Exception:
        logger.warning(
            "Failed to create notification",
            extra={"user_id": user_id, "notification_type": notification_type},
        )
        return None


def notify_role(
    db: Session,
    *,
    roles: Iterable[account_models.UserRole],
    notification_type: str,
    title: str,
    message: str,
    mill_id: Optional[str] = None,
    priority: models.NotificationPriority = models.NotificationPriority.NORMAL,
    action_url: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> List[models.Notification]:
    query = db.query(account_models.User).filter(
        account_models.User.role.in_(list(roles)),
        account_models.User.is_active.is_(True),
    )
    if mill_id:
        query = query.filter(account_models.User.mill_id == mill_id)

    created = []
    for user in query.all():
        notification = notify_user(
            db,
            user_id=user.id,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority,
            action_url=action_url,
            metadata=metadata,
        )
        if notification is not None:
            created.append(notification)
    return created


def unread_count(db: Session, *, user_id: str) -> int:
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.read_at.is_(None))
        .count()
    )


def mark_read(db: Session, *, notification: models.Notification) -> models.Notification:
    if notification.read_at is None:
        notification.read_at = _utcnow()
    return notification


def mark_all_read(db: Session, *, user_id: str) -> int:
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.read_at.is_(None))
        .update({models.Notification.read_at: _utcnow()}, synchronize_session=False)
    )
