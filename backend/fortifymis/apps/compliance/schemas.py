from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fortifymis.apps.accounts.models import Commodity
from fortifymis.schemas import Page

from .models import AnnotationType, AuditStatus, AuditType, CertificateStatus, ReviewAction
from .scoring import ScoringResult


# ---------------------------------------------------------------------------
# TEMPLATES
# ---------------------------------------------------------------------------


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    version: str = Field(default="1.0", max_length=16)
    commodity: Commodity = Commodity.MAIZE
    country: Optional[str] = None
    region: Optional[str] = None
    standard_reference: Optional[str] = None
    certification_type: Optional[str] = None
    sections: List[Dict[str, Any]]
    scoring_rules: Dict[str, Any] = Field(default_factory=dict)


class TemplateVersionCreate(BaseModel):
    sections: Optional[List[Dict[str, Any]]] = None
    scoring_rules: Optional[Dict[str, Any]] = None
    reason: str = Field(min_length=1)


class TemplateSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    version: str
    commodity: Commodity
    country: Optional[str] = None
    certification_type: Optional[str] = None
    is_active: bool
    created_at: datetime


class TemplateRead(TemplateSummary):
    region: Optional[str] = None
    standard_reference: Optional[str] = None
    sections: List[Dict[str, Any]]
    scoring_rules: Dict[str, Any]
    change_reason: Optional[str] = None
    previous_version_id: Optional[str] = None
    created_by_id: Optional[str] = None
    updated_at: datetime


class TemplateVersions(BaseModel):
    current: str
    versions: List[TemplateSummary]


# ---------------------------------------------------------------------------
# AUDITS
# ---------------------------------------------------------------------------


class AuditCreate(BaseModel):
    template_id: str
    audit_type: AuditType = AuditType.SELF_AUDIT
    audit_date: date
    batch_period: Optional[str] = None
    notes: Optional[str] = None
    # FWGA inspectors open audits on behalf of a mill.
    mill_id: Optional[str] = None


class AuditUpdate(BaseModel):
    responses: Optional[Any] = None
    evidence: Optional[Any] = None
    notes: Optional[str] = None


class AuditSubmit(BaseModel):
    responses: Optional[Any] = None
    evidence: Optional[Any] = None
    notes: Optional[str] = None


class WhatIfRequest(BaseModel):
    changes: Dict[str, Any] = Field(default_factory=dict)


class RevisionRequest(BaseModel):
    item_id: str
    comment: str
    priority: str = Field(default="MEDIUM", pattern="^(HIGH|MEDIUM|LOW)$")


class ReviewRequest(BaseModel):
    action: ReviewAction
    comments: str = ""
    conditions: Optional[List[str]] = None
    revisions_required: Optional[List[RevisionRequest]] = None


class AuditRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mill_id: str
    template_id: str
    auditor_id: Optional[str] = None
    audit_type: AuditType
    audit_date: date
    batch_period: Optional[str] = None
    status: AuditStatus
    responses: Any = None
    evidence: Any = None
    notes: Optional[str] = None
    score: Optional[float] = None
    category: Optional[str] = None
    passed: Optional[bool] = None
    section_scores: Optional[List[Dict[str, Any]]] = None
    flagged_issues: Optional[List[Dict[str, Any]]] = None
    scored_at: Optional[datetime] = None
    submitted_by_id: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_by_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_comments: Optional[str] = None
    review_conditions: Optional[List[str]] = None
    revision_requests: Optional[List[Dict[str, Any]]] = None
    created_at: datetime
    updated_at: datetime


class ScoredAudit(BaseModel):
    audit: AuditRead
    scoring: ScoringResult


class CertificateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    audit_id: str
    mill_id: str
    certificate_number: str
    score: float
    status: CertificateStatus
    valid_from: datetime
    valid_until: datetime
    issued_by_id: Optional[str] = None


class ReviewResult(BaseModel):
    audit: AuditRead
    certificate: Optional[CertificateRead] = None


class AnnotationCreate(BaseModel):
    item_id: str = Field(min_length=1)
    type: AnnotationType = AnnotationType.COMMENT
    position: Optional[Dict[str, float]] = None
    content: Optional[str] = None
    color: Optional[str] = None


class AnnotationUpdate(BaseModel):
    content: Optional[str] = None
    is_resolved: Optional[bool] = None


class AnnotationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    audit_id: str
    item_id: str
    annotator_id: Optional[str] = None
    type: AnnotationType
    position: Optional[Dict[str, Any]] = None
    content: Optional[str] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by_id: Optional[str] = None
    created_at: datetime


class AuditReport(BaseModel):
    audit: AuditRead
    template: TemplateSummary
    mill_name: str
    mill_code: str
    section_scores: List[Dict[str, Any]]
    red_flags: List[Dict[str, Any]]
    annotations: List[AnnotationRead]
    certificate: Optional[CertificateRead] = None


AuditPage = Page[AuditRead]
TemplatePage = Page[TemplateSummary]
