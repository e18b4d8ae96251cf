from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Index, JSON, String, Text

from fortifymis.apps.accounts.models import UserRole
from fortifymis.database import Base
from fortifymis.utils.identifiers import generate_uuid7

from .enums import AlertCategory, AlertSeverity, AlertStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Alert(Base):
    """
    Operational alert addressed to a user, or to a role within a mill.

    Alerts are never deleted except by a system administrator.
    """

    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_recipient_status", "recipient_id", "status"),
        Index("ix_alerts_role_mill", "recipient_role", "mill_id"),
        Index("ix_alerts_mill_created", "mill_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    type = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(
        SAEnum(AlertSeverity, name="alert_severity_enum", native_enum=False),
        nullable=False,
        default=AlertSeverity.MEDIUM,
        index=True,
    )
    category = Column(
        SAEnum(AlertCategory, name="alert_category_enum", native_enum=False),
        nullable=False,
        default=AlertCategory.SYSTEM,
        index=True,
    )
    status = Column(
        SAEnum(AlertStatus, name="alert_status_enum", native_enum=False),
        nullable=False,
        default=AlertStatus.PENDING,
        index=True,
    )

    recipient_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    recipient_role = Column(SAEnum(UserRole, name="alert_recipient_role_enum", native_enum=False), nullable=True)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=True, index=True)

    resource_type = Column(String(64), nullable=True)
    resource_id = Column(String(64), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    action_required = Column(String(255), nullable=True)
    due_at = Column(DateTime(timezone=True), nullable=True)

    read_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolution_notes = Column(Text, nullable=True)

    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Alert id={self.id} type={self.type} status={self.status}>"
