# backend/fortifymis/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import relationship

from fortifymis.database import Base
from fortifymis.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class UserRole(str, enum.Enum):
    """Roles used across the portal.

    Mill roles are tied to one mill. FWGA roles oversee the whole programme.
    Fine-grained capabilities are resolved through `permissions.ROLE_PERMISSIONS`.
    """

    MILL_OPERATOR = "MILL_OPERATOR"
    MILL_TECHNICIAN = "MILL_TECHNICIAN"
    MILL_MANAGER = "MILL_MANAGER"
    FWGA_INSPECTOR = "FWGA_INSPECTOR"
    FWGA_PROGRAM_MANAGER = "FWGA_PROGRAM_MANAGER"
    INSTITUTIONAL_BUYER = "INSTITUTIONAL_BUYER"
    DRIVER_LOGISTICS = "DRIVER_LOGISTICS"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


MILL_ROLES = frozenset(
    {UserRole.MILL_OPERATOR, UserRole.MILL_TECHNICIAN, UserRole.MILL_MANAGER}
)
FWGA_ROLES = frozenset({UserRole.FWGA_INSPECTOR, UserRole.FWGA_PROGRAM_MANAGER})


class Commodity(str, enum.Enum):
    MAIZE = "MAIZE"
    WHEAT = "WHEAT"
    RICE = "RICE"
    MIXED = "MIXED"


# ---------------------------------------------------------------------------
# MODELS
# ---------------------------------------------------------------------------


class Mill(Base):
    """A processing facility enrolled in the fortification programme."""

    __tablename__ = "mills"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    code = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    region = Column(String(128), nullable=True, index=True)
    country = Column(String(64), nullable=True)
    commodity = Column(
        SAEnum(Commodity, name="mill_commodity_enum", native_enum=False),
        nullable=False,
        default=Commodity.MAIZE,
    )
    address = Column(String(512), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    users = relationship("User", back_populates="mill")

    def __repr__(self) -> str:
        return f"<Mill id={self.id} code={self.code}>"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role_active", "role", "is_active"),
        Index("idx_users_mill_role", "mill_id", "role"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    mill_id = Column(
        String(36),
        ForeignKey("mills.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)

    role = Column(
        SAEnum(UserRole, name="user_role_enum", native_enum=False),
        nullable=False,
        default=UserRole.MILL_OPERATOR,
        index=True,
    )

    is_active = Column(Boolean, nullable=False, default=True)
    hashed_password = Column(String(255), nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    mill = relationship("Mill", back_populates="users")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.SYSTEM_ADMIN

    @property
    def is_mill_staff(self) -> bool:
        return self.role in MILL_ROLES

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
