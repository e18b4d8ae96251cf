# backend/fortifymis/apps/compliance/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from fortifymis.apps.accounts.models import Commodity
from fortifymis.database import Base
from fortifymis.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"


class AuditType(str, enum.Enum):
    SELF_AUDIT = "SELF_AUDIT"
    INSPECTION = "INSPECTION"
    FOLLOW_UP = "FOLLOW_UP"


class ReviewAction(str, enum.Enum):
    APPROVE = "APPROVE"
    APPROVE_WITH_CONDITIONS = "APPROVE_WITH_CONDITIONS"
    REQUEST_REVISION = "REQUEST_REVISION"
    REJECT = "REJECT"


REVIEW_TARGET_STATUS = {
    ReviewAction.APPROVE: AuditStatus.APPROVED,
    ReviewAction.APPROVE_WITH_CONDITIONS: AuditStatus.APPROVED,
    ReviewAction.REQUEST_REVISION: AuditStatus.REVISION_REQUESTED,
    ReviewAction.REJECT: AuditStatus.REJECTED,
}


class AnnotationType(str, enum.Enum):
    HIGHLIGHT = "HIGHLIGHT"
    TEXT_CALLOUT = "TEXT_CALLOUT"
    ARROW = "ARROW"
    CIRCLE = "CIRCLE"
    COMMENT = "COMMENT"


class CertificateStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class ComplianceTemplate(Base):
    """
    Versioned scoring rubric.

    A new version is a clone with the version bumped; the previous row is
    deactivated but never deleted, so audits keep pointing at the rubric they
    were scored against.
    """

    __tablename__ = "compliance_templates"
    __table_args__ = (
        Index("idx_compliance_templates_name_version", "name", "version"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(255), nullable=False)
    version = Column(String(16), nullable=False, default="1.0")
    commodity = Column(
        SAEnum(Commodity, name="template_commodity_enum", native_enum=False),
        nullable=False,
        default=Commodity.MAIZE,
    )
    country = Column(String(64), nullable=True)
    region = Column(String(128), nullable=True)
    standard_reference = Column(String(255), nullable=True)
    certification_type = Column(String(64), nullable=True)

    sections = Column(JSON, nullable=False, default=list)
    scoring_rules = Column(JSON, nullable=False, default=dict)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    change_reason = Column(Text, nullable=True)
    previous_version_id = Column(
        String(36),
        ForeignKey("compliance_templates.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    audits = relationship("ComplianceAudit", back_populates="template")

    def __repr__(self) -> str:
        return f"<ComplianceTemplate id={self.id} name={self.name} v{self.version}>"


class ComplianceAudit(Base):
    __tablename__ = "compliance_audits"
    __table_args__ = (
        Index("idx_compliance_audits_mill_status", "mill_id", "status"),
        Index("idx_compliance_audits_auditor", "auditor_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(
        String(36),
        ForeignKey("compliance_templates.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    auditor_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    audit_type = Column(
        SAEnum(AuditType, name="compliance_audit_type_enum", native_enum=False),
        nullable=False,
        default=AuditType.SELF_AUDIT,
    )
    audit_date = Column(Date, nullable=False)
    batch_period = Column(String(64), nullable=True)
    status = Column(
        SAEnum(AuditStatus, name="compliance_audit_status_enum", native_enum=False),
        nullable=False,
        default=AuditStatus.IN_PROGRESS,
        index=True,
    )

    responses = Column(JSON, nullable=False, default=dict)
    evidence = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    score = Column(Float, nullable=True)
    category = Column(String(32), nullable=True)
    passed = Column(Boolean, nullable=True)
    section_scores = Column(JSON, nullable=True)
    flagged_issues = Column(JSON, nullable=True)
    scored_at = Column(DateTime(timezone=True), nullable=True)

    submitted_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    reviewed_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_comments = Column(Text, nullable=True)
    review_conditions = Column(JSON, nullable=True)
    revision_requests = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    mill = relationship("Mill")
    template = relationship("ComplianceTemplate", back_populates="audits")
    annotations = relationship(
        "ComplianceAnnotation",
        back_populates="audit",
        cascade="all, delete-orphan",
        order_by="ComplianceAnnotation.created_at",
    )
    certificates = relationship("ComplianceCertificate", back_populates="audit")

    def __repr__(self) -> str:
        return f"<ComplianceAudit id={self.id} mill_id={self.mill_id} status={self.status}>"


class ComplianceAnnotation(Base):
    __tablename__ = "compliance_annotations"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    audit_id = Column(
        String(36),
        ForeignKey("compliance_audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = Column(String(128), nullable=False)
    annotator_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    type = Column(
        SAEnum(AnnotationType, name="compliance_annotation_type_enum", native_enum=False),
        nullable=False,
        default=AnnotationType.COMMENT,
    )
    position = Column(JSON, nullable=True)
    content = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)

    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    audit = relationship("ComplianceAudit", back_populates="annotations")


class ComplianceCertificate(Base):
    __tablename__ = "compliance_certificates"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    audit_id = Column(
        String(36),
        ForeignKey("compliance_audits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    mill_id = Column(String(36), ForeignKey("mills.id", ondelete="CASCADE"), nullable=False, index=True)
    certificate_number = Column(String(64), nullable=False, unique=True)
    score = Column(Float, nullable=False)
    status = Column(
        SAEnum(CertificateStatus, name="compliance_certificate_status_enum", native_enum=False),
        nullable=False,
        default=CertificateStatus.ACTIVE,
    )
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    issued_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    audit = relationship("ComplianceAudit", back_populates="certificates")
