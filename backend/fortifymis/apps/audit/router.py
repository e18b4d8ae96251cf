from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.apps.accounts.permissions import Permission
from fortifymis.database import get_read_db
from fortifymis.schemas import ApiResponse, Page, ok, paginate
from fortifymis.security import require_permissions

from . import schemas, services


router = APIRouter(prefix="/api/audit-logs", tags=["audit"])


@router.get("", response_model=ApiResponse[Page[schemas.AuditLogRead]])
def list_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    action: Optional[str] = None,
    mill_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 50,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_LOG_VIEW)),
):
    query = services.query_audit_logs(
        db,
        mill_id=mill_id,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        action=action,
        start=start,
        end=end,
    )
    return ok(paginate(query, page, page_size))
