from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import FWGA_ROLES, User, UserRole
from fortifymis.apps.accounts.permissions import Permission
from fortifymis.database import get_read_db
from fortifymis.errors import ValidationError
from fortifymis.schemas import ApiResponse, ok
from fortifymis.security import ensure_mill_access, require_permissions, require_roles

from . import schemas, services

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/mill", response_model=ApiResponse[schemas.MillDashboard])
def mill_dashboard(
    mill_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_permissions(Permission.ANALYTICS_MILL)),
):
    target = mill_id or current_user.mill_id
    if not target:
        raise ValidationError("mill_id is required")
    # FWGA roles oversee every mill.
    if current_user.role not in FWGA_ROLES:
        ensure_mill_access(current_user, target)
    return ok(services.mill_dashboard(db, current_user, target))


@router.get("/inspector", response_model=ApiResponse[schemas.InspectorDashboard])
def inspector_dashboard(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_roles(UserRole.FWGA_INSPECTOR, UserRole.FWGA_PROGRAM_MANAGER)),
):
    return ok(services.inspector_dashboard(db, current_user))


@router.get("/program", response_model=ApiResponse[schemas.ProgramDashboard])
def program_dashboard(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_permissions(Permission.ANALYTICS_NATIONAL)),
):
    return ok(services.program_dashboard(db))


@router.get("/buyer", response_model=ApiResponse[schemas.BuyerDashboard])
def buyer_dashboard(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_roles(UserRole.INSTITUTIONAL_BUYER)),
):
    return ok(services.buyer_dashboard(db, current_user))


@router.get("/logistics", response_model=ApiResponse[schemas.LogisticsDashboard])
def logistics_dashboard(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_permissions(Permission.TRIP_VIEW)),
):
    return ok(services.logistics_dashboard(db, current_user))
