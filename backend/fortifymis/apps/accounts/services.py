# backend/fortifymis/apps/accounts/services.py

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Session

from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.notifications import service as notification_service
from fortifymis.security import get_password_hash, verify_password

from . import models, schemas

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

SELF_REGISTRATION_ROLES = frozenset(
    {
        models.UserRole.MILL_OPERATOR,
        models.UserRole.MILL_TECHNICIAN,
        models.UserRole.MILL_MANAGER,
        models.UserRole.INSTITUTIONAL_BUYER,
        models.UserRole.DRIVER_LOGISTICS,
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def _normalise_email(value: str) -> str:
    return value.strip().lower()


def _normalise_code(value: str) -> str:
    return value.strip().upper()


def _validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )

    has_letter = any(ch.isalpha() for ch in password)
    has_digit = any(ch.isdigit() for ch in password)
    if not (has_letter and has_digit):
        raise ValueError("Password must include letters and at least one number.")


def _user_snapshot(user: models.User) -> dict:
    return {
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role.value if user.role else None,
        "mill_id": user.mill_id,
        "is_active": user.is_active,
    }


# ---------------------------------------------------------------------------
# Mills
# ---------------------------------------------------------------------------


def get_mill(db: Session, mill_id: str) -> Optional[models.Mill]:
    return db.query(models.Mill).filter(models.Mill.id == mill_id).first()


def create_mill(db: Session, data: schemas.MillCreate, *, actor_user_id: Optional[str]) -> models.Mill:
    code = _normalise_code(data.code)
    if db.query(models.Mill).filter(models.Mill.code == code).first():
        raise ValueError("A mill with this code already exists.")

    mill = models.Mill(
        code=code,
        name=data.name.strip(),
        region=data.region,
        country=data.country,
        commodity=data.commodity,
        address=data.address,
    )
    db.add(mill)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=mill.id,
        actor_user_id=actor_user_id,
        entity_type="mill",
        entity_id=mill.id,
        action="CREATE",
        after={"code": mill.code, "name": mill.name, "region": mill.region},
    )
    return mill


def update_mill(
    db: Session,
    mill: models.Mill,
    data: schemas.MillUpdate,
    *,
    actor_user_id: Optional[str],
) -> models.Mill:
    changes = data.model_dump(exclude_unset=True)
    before = {key: getattr(mill, key) for key in changes}
    for key, value in changes.items():
        setattr(mill, key, value)
    audit_services.log_event(
        db,
        mill_id=mill.id,
        actor_user_id=actor_user_id,
        entity_type="mill",
        entity_id=mill.id,
        action="UPDATE",
        before=before,
        after=changes,
    )
    return mill


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.email == _normalise_email(email))
        .first()
    )


def _check_mill_assignment(db: Session, role: models.UserRole, mill_id: Optional[str]) -> None:
    if role in models.MILL_ROLES and not mill_id:
        raise ValueError("Mill staff must be assigned to a mill.")
    if mill_id and not get_mill(db, mill_id):
        raise ValueError("Invalid mill id.")


def create_user(
    db: Session,
    data: schemas.UserCreate,
    *,
    actor_user_id: Optional[str] = None,
    action: str = "CREATE",
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> models.User:
    email = _normalise_email(data.email)
    if get_user_by_email(db, email):
        raise ValueError("A user with this email already exists.")

    _check_mill_assignment(db, data.role, data.mill_id)
    _validate_password_strength(data.password)

    user = models.User(
        email=email,
        full_name=data.full_name.strip(),
        phone=data.phone,
        role=data.role,
        mill_id=data.mill_id,
        hashed_password=get_password_hash(data.password),
        is_active=True,
    )
    db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=user.mill_id,
        actor_user_id=actor_user_id or user.id,
        entity_type="user",
        entity_id=user.id,
        action=action,
        after=_user_snapshot(user),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return user


def register_user(
    db: Session,
    data: schemas.UserRegister,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> models.User:
    if data.role not in SELF_REGISTRATION_ROLES:
        raise ValueError("This role cannot be self-registered.")

    user = create_user(
        db,
        schemas.UserCreate(**data.model_dump()),
        action="REGISTER",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    notification_service.notify_user(
        db,
        user_id=user.id,
        notification_type="WELCOME",
        title="Welcome to FortifyMIS Portal",
        message=f"Welcome {user.full_name}! Your account has been created successfully.",
    )
    return user


def update_user(
    db: Session,
    user: models.User,
    data: schemas.UserUpdate,
    *,
    actor_user_id: Optional[str],
) -> models.User:
    changes = data.model_dump(exclude_unset=True)
    before = _user_snapshot(user)

    role = changes.get("role", user.role)
    mill_id = changes.get("mill_id", user.mill_id)
    _check_mill_assignment(db, role, mill_id)

    for key, value in changes.items():
        setattr(user, key, value)

    audit_services.log_event(
        db,
        mill_id=user.mill_id,
        actor_user_id=actor_user_id,
        entity_type="user",
        entity_id=user.id,
        action="UPDATE",
        before=before,
        after=_user_snapshot(user),
    )
    return user


def authenticate_user(
    db: Session,
    *,
    email: str,
    password: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[models.User]:
    """
    Return the user for valid credentials, or None.

    Inactive users are returned so the caller can report the lock explicitly.
    """
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.hashed_password):
        logger.info("Failed login attempt", extra={"email": _normalise_email(email), "ip_address": ip_address})
        return None

    if user.is_active:
        user.last_login_at = _utcnow()
        audit_services.log_event(
            db,
            mill_id=user.mill_id,
            actor_user_id=user.id,
            entity_type="user",
            entity_id=user.id,
            action="LOGIN",
            ip_address=ip_address,
            user_agent=user_agent,
        )
    return user
