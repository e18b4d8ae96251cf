# backend/fortifymis/security.py

"""
Security helpers for FortifyMIS.

Responsibilities:
- Password hashing and verification
- JWT access token creation and decoding
- FastAPI dependencies for the current user, roles and permissions
- Mill scoping helpers shared by the mill-bound apps
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set, Union

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
import bcrypt

from .database import get_db
from .errors import ForbiddenError, NotFoundError, ValidationError
from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.accounts.models import UserRole
from fortifymis.apps.accounts.permissions import Permission, has_permission

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 480

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ---------------------------------------------------------------------------
# PASSWORD HASHING
# ---------------------------------------------------------------------------

_pwd_hasher = PasswordHasher(
    time_cost=int(os.getenv("ARGON2_TIME_COST", "3")),
    memory_cost=int(os.getenv("ARGON2_MEMORY_COST", "65536")),  # KiB (64MB)
    parallelism=int(os.getenv("ARGON2_PARALLELISM", "2")),
)


def _is_argon2_hash(hashed_password: str) -> bool:
    return isinstance(hashed_password, str) and hashed_password.startswith("$argon2")


def _is_bcrypt_hash(hashed_password: str) -> bool:
    return isinstance(hashed_password, str) and hashed_password.startswith(("$2a$", "$2b$", "$2y$"))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Return True if the plain password matches the hash."""
    if not plain_password or not hashed_password:
        return False

    if _is_argon2_hash(hashed_password):
        try:
            return _pwd_hasher.verify(hashed_password, plain_password)
        except (VerifyMismatchError, VerificationError, InvalidHash):
            return False

    # Accounts imported from the previous portal carry bcrypt hashes.
    if _is_bcrypt_hash(hashed_password):
        try:
            return bcrypt.checkpw(
                plain_password.encode("utf-8"),
                hashed_password.encode("utf-8"),
            )
        except ValueError:
            return False

    return False


def get_password_hash(password: str) -> str:
    """Hash a password for storing in the database (Argon2id)."""
    return _pwd_hasher.hash(password)


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    The `data` dict should already include the subject, e.g.:
        {"sub": user.id, "role": user.role.value, "mill_id": user.mill_id}
    """
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_user_token(user: account_models.User) -> str:
    return create_access_token(
        data={
            "sub": user.id,
            "role": user.role.value,
            "mill_id": user.mill_id,
            "email": user.email,
        }
    )


def decode_access_token(token: str) -> Optional[dict]:
    """Return the claims of a valid token, or None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


# ---------------------------------------------------------------------------
# USER LOOKUP HELPERS
# ---------------------------------------------------------------------------


def get_user_by_id(
    db: Session,
    user_id: Union[str, int],
) -> Optional[account_models.User]:
    if user_id is None:
        return None

    normalised_id = str(user_id).strip()

    return (
        db.query(account_models.User)
        .filter(account_models.User.id == normalised_id)
        .first()
    )


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> account_models.User:
    """
    Decode the JWT access token and return the corresponding User.
    """
    payload = decode_access_token(token)
    if payload is None:
        raise _credentials_exception()

    user = get_user_by_id(db, payload["sub"])
    if user is None:
        raise _credentials_exception()

    return user


def get_current_active_user(
    current_user: account_models.User = Depends(get_current_user),
) -> account_models.User:
    """
    Ensure the current user is active.
    """
    if not getattr(current_user, "is_active", False):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )
    return current_user


def require_roles(
    *allowed_roles: Union[UserRole, str],
) -> Callable[[account_models.User], account_models.User]:
    """
    Dependency factory to enforce that the current user has one of the given roles.

    Usage:
        current_user: User = Depends(require_roles(UserRole.MILL_MANAGER))
        current_user: User = Depends(require_roles("FWGA_INSPECTOR"))

    SYSTEM_ADMIN always passes, even if not explicitly listed.
    """
    normalised_roles: Set[UserRole] = set()
    for r in allowed_roles:
        if isinstance(r, UserRole):
            normalised_roles.add(r)
        else:
            try:
                normalised_roles.add(UserRole(r))
            except ValueError:
                raise ValueError(f"Unknown role {r!r} passed to require_roles()")

    def dependency(
        current_user: account_models.User = Depends(get_current_active_user),
    ) -> account_models.User:
        if current_user.role == UserRole.SYSTEM_ADMIN:
            return current_user

        if current_user.role not in normalised_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return current_user

    return dependency


def require_permissions(
    *permissions: Permission,
) -> Callable[[account_models.User], account_models.User]:
    """
    Dependency factory: the current user's role must grant every listed permission.
    """

    def dependency(
        current_user: account_models.User = Depends(get_current_active_user),
    ) -> account_models.User:
        missing = [p for p in permissions if not has_permission(current_user.role, p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return current_user

    return dependency


# ---------------------------------------------------------------------------
# MILL SCOPING
# ---------------------------------------------------------------------------


def mill_scope(user: account_models.User) -> Optional[str]:
    """
    Mill id that restricts the user's view of mill-bound records.

    None means unrestricted (SYSTEM_ADMIN). Any other user is bound to their
    own mill; a user without a mill is bound to nothing.
    """
    if user.role == UserRole.SYSTEM_ADMIN:
        return None
    return user.mill_id or ""


def ensure_mill_access(user: account_models.User, mill_id: Optional[str]) -> None:
    scope = mill_scope(user)
    if scope is None:
        return
    if not mill_id or scope != mill_id:
        raise ForbiddenError("You do not have access to this mill's records")


def read_scope(user: account_models.User) -> Optional[str]:
    """
    Mill id that restricts what the user may read.

    FWGA programme roles oversee every mill and read unrestricted; writes
    still go through :func:`mill_scope`.
    """
    if user.role in account_models.FWGA_ROLES:
        return None
    return mill_scope(user)


def ensure_mill_read_access(user: account_models.User, mill_id: Optional[str]) -> None:
    scope = read_scope(user)
    if scope is None:
        return
    if not mill_id or scope != mill_id:
        raise ForbiddenError("You do not have access to this mill's records")


def owning_mill_id(db: Session, user: account_models.User, requested: Optional[str]) -> str:
    """
    Mill a new mill-bound record is created under.

    Administrators name the mill explicitly; everyone else writes to their own.
    """
    if user.role == UserRole.SYSTEM_ADMIN:
        if not requested:
            raise ValidationError("mill_id is required", details=[{"field": "mill_id", "message": "required"}])
        if not db.query(account_models.Mill.id).filter(account_models.Mill.id == requested).first():
            raise NotFoundError("Mill")
        return requested
    if not user.mill_id:
        raise ValidationError("User is not associated with a mill")
    if requested and requested != user.mill_id:
        raise ForbiddenError("You do not have access to this mill's records")
    return user.mill_id
