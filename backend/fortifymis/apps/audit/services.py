from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Query, Session

from . import models

logger = logging.getLogger(__name__)


def create_audit_log(
    db: Session,
    *,
    mill_id: Optional[str],
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> models.AuditLog:
    entry = models.AuditLog(
        mill_id=mill_id,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        before=jsonable_encoder(before),
        after=jsonable_encoder(after),
        ip_address=ip_address,
        user_agent=user_agent,
        metadata_json=jsonable_encoder(metadata),
    )
    db.add(entry)
    db.flush()
    return entry


def log_event(
    db: Session,
    *,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    mill_id: Optional[str] = None,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditLog]:
    """
    Best-effort audit logger.

    The entry joins the caller's transaction, so it commits together with the
    primary write.
    - For critical actions (approvals, awards, deletions), raise on failure.
    - For non-critical actions, log warning and continue.
    """
    try:
        return create_audit_log(
            db,
            mill_id=mill_id,
            actor_user_id=actor_user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            before=before,
            after=after,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata,
        )
    except Exception:
        logger.warning(
            "Failed to write audit log",
            extra={
                "mill_id": mill_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None


def query_audit_logs(
    db: Session,
    *,
    mill_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    action: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Query:
    query = db.query(models.AuditLog)
    if mill_id:
        query = query.filter(models.AuditLog.mill_id == mill_id)
    if entity_type:
        query = query.filter(models.AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditLog.entity_id == entity_id)
    if actor_user_id:
        query = query.filter(models.AuditLog.actor_user_id == actor_user_id)
    if action:
        query = query.filter(models.AuditLog.action == action)
    if start:
        query = query.filter(models.AuditLog.occurred_at >= start)
    if end:
        query = query.filter(models.AuditLog.occurred_at <= end)
    return query.order_by(models.AuditLog.occurred_at.desc())
