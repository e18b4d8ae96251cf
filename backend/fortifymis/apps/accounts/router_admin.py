# backend/fortifymis/apps/accounts/router_admin.py

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from fortifymis.database import get_db
from fortifymis.errors import ForbiddenError, NotFoundError
from fortifymis.schemas import ApiResponse, Page, ok, paginate
from fortifymis.security import get_current_active_user, require_permissions

from . import models, schemas, services
from .permissions import Permission

users_router = APIRouter(prefix="/api/users", tags=["users"])
mills_router = APIRouter(prefix="/api/mills", tags=["mills"])


def _restrict_to_own_mill(current_user: models.User, mill_id: Optional[str]) -> None:
    """Mill managers administer their own mill's staff only."""
    if current_user.role == models.UserRole.MILL_MANAGER and mill_id != current_user.mill_id:
        raise ForbiddenError("Mill managers can only manage users of their own mill")


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


@users_router.get("/me", response_model=ApiResponse[schemas.UserRead])
def read_own_profile(current_user: models.User = Depends(get_current_active_user)):
    return ok(current_user)


@users_router.get("", response_model=ApiResponse[Page[schemas.UserRead]])
def list_users(
    role: Optional[models.UserRole] = None,
    mill_id: Optional[str] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permissions(Permission.USER_VIEW)),
):
    query = db.query(models.User)
    if current_user.role == models.UserRole.MILL_MANAGER:
        query = query.filter(models.User.mill_id == current_user.mill_id)
    elif mill_id:
        query = query.filter(models.User.mill_id == mill_id)
    if role:
        query = query.filter(models.User.role == role)
    if is_active is not None:
        query = query.filter(models.User.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(models.User.full_name.ilike(pattern), models.User.email.ilike(pattern)))
    return ok(paginate(query.order_by(models.User.full_name.asc()), page, page_size))


@users_router.post(
    "",
    response_model=ApiResponse[schemas.UserRead],
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permissions(Permission.USER_CREATE)),
):
    _restrict_to_own_mill(current_user, payload.mill_id)
    if payload.role == models.UserRole.SYSTEM_ADMIN and current_user.role != models.UserRole.SYSTEM_ADMIN:
        raise ForbiddenError("Only system administrators can create administrators")
    try:
        user = services.create_user(db, payload, actor_user_id=current_user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    db.refresh(user)
    return ok(user)


@users_router.get("/{user_id}", response_model=ApiResponse[schemas.UserRead])
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permissions(Permission.USER_VIEW)),
):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User")
    if current_user.role == models.UserRole.MILL_MANAGER:
        _restrict_to_own_mill(current_user, user.mill_id)
    return ok(user)


@users_router.patch("/{user_id}", response_model=ApiResponse[schemas.UserRead])
def update_user(
    user_id: str,
    payload: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permissions(Permission.USER_EDIT)),
):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User")
    _restrict_to_own_mill(current_user, user.mill_id)
    if payload.mill_id is not None:
        _restrict_to_own_mill(current_user, payload.mill_id)
    if payload.role == models.UserRole.SYSTEM_ADMIN and current_user.role != models.UserRole.SYSTEM_ADMIN:
        raise ForbiddenError("Only system administrators can grant the administrator role")
    try:
        services.update_user(db, user, payload, actor_user_id=current_user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    db.refresh(user)
    return ok(user)


# ---------------------------------------------------------------------------
# MILLS
# ---------------------------------------------------------------------------


@mills_router.get("", response_model=ApiResponse[Page[schemas.MillRead]])
def list_mills(
    region: Optional[str] = None,
    include_inactive: bool = False,
    page: int = 1,
    page_size: int = 50,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    query = db.query(models.Mill)
    if current_user.is_mill_staff:
        query = query.filter(models.Mill.id == current_user.mill_id)
    if region:
        query = query.filter(models.Mill.region == region)
    if not include_inactive:
        query = query.filter(models.Mill.is_active.is_(True))
    return ok(paginate(query.order_by(models.Mill.name.asc()), page, page_size))


@mills_router.post(
    "",
    response_model=ApiResponse[schemas.MillRead],
    status_code=status.HTTP_201_CREATED,
)
def create_mill(
    payload: schemas.MillCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permissions(Permission.MILL_MANAGE)),
):
    try:
        mill = services.create_mill(db, payload, actor_user_id=current_user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    db.refresh(mill)
    return ok(mill)


@mills_router.get("/{mill_id}", response_model=ApiResponse[schemas.MillRead])
def get_mill(
    mill_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    mill = services.get_mill(db, mill_id)
    if not mill or (current_user.is_mill_staff and current_user.mill_id != mill.id):
        raise NotFoundError("Mill")
    return ok(mill)


@mills_router.patch("/{mill_id}", response_model=ApiResponse[schemas.MillRead])
def update_mill(
    mill_id: str,
    payload: schemas.MillUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permissions(Permission.MILL_MANAGE)),
):
    mill = services.get_mill(db, mill_id)
    if not mill:
        raise NotFoundError("Mill")
    services.update_mill(db, mill, payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(mill)
    return ok(mill)
