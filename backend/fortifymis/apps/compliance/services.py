from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Query, Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.accounts.models import FWGA_ROLES, UserRole
from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.notifications import service as notification_service
from fortifymis.apps.notifications.models import NotificationPriority
from fortifymis.apps.workflow import apply_transition
from fortifymis.errors import ForbiddenError, NotFoundError, ValidationError
from fortifymis.security import mill_scope
from fortifymis.utils.identifiers import compliance_certificate_number

from . import models, schemas, scoring
from .models import AuditStatus, ReviewAction

logger = logging.getLogger(__name__)

CERTIFICATE_MIN_SCORE = 75.0
CERTIFICATE_VALIDITY = timedelta(days=365)
LOW_SCORE_ALERT = 60.0

EDITABLE_STATUSES = (AuditStatus.IN_PROGRESS, AuditStatus.REVISION_REQUESTED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _audit_snapshot(audit: models.ComplianceAudit) -> dict:
    return {
        "mill_id": audit.mill_id,
        "status": audit.status,
        "score": audit.score,
        "category": audit.category,
        "notes": audit.notes,
        "reviewed_by_id": audit.reviewed_by_id,
    }


def _scoring_error(exc: scoring.ScoringInputError) -> ValidationError:
    return ValidationError(str(exc), code="SCORING_INPUT_INVALID")


# ---------------------------------------------------------------------------
# TEMPLATES
# ---------------------------------------------------------------------------


def get_template(db: Session, template_id: str) -> models.ComplianceTemplate:
    template = (
        db.query(models.ComplianceTemplate)
        .filter(models.ComplianceTemplate.id == template_id)
        .first()
    )
    if not template:
        raise NotFoundError("Template")
    return template


def _validate_template_documents(sections: Any, rules: Any) -> None:
    try:
        parsed = scoring.parse_sections(sections)
        scoring.parse_rules(rules)
    except scoring.ScoringInputError as exc:
        raise _scoring_error(exc) from exc
    if not parsed:
        raise ValidationError("Template needs at least one section")


def create_template(
    db: Session,
    data: schemas.TemplateCreate,
    *,
    actor_user_id: str,
) -> models.ComplianceTemplate:
    _validate_template_documents(data.sections, data.scoring_rules)
    template = models.ComplianceTemplate(
        name=data.name,
        version=data.version,
        commodity=data.commodity,
        country=data.country,
        region=data.region,
        standard_reference=data.standard_reference,
        certification_type=data.certification_type,
        sections=data.sections,
        scoring_rules=data.scoring_rules,
        is_active=True,
        created_by_id=actor_user_id,
    )
    db.add(template)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="compliance_template",
        entity_id=template.id,
        action="CREATE",
        after={"name": template.name, "version": template.version},
    )
    return template


def _bump_version(version: str) -> str:
    try:
        return f"{float(version) + 0.1:.1f}"
    except ValueError as exc:
        raise ValidationError(f"Template version {version!r} is not numeric") from exc


def create_template_version(
    db: Session,
    template: models.ComplianceTemplate,
    data: schemas.TemplateVersionCreate,
    *,
    actor_user_id: str,
) -> models.ComplianceTemplate:
    """Clone the template with the requested changes and retire the old row."""
    sections = data.sections if data.sections is not None else template.sections
    rules = data.scoring_rules if data.scoring_rules is not None else template.scoring_rules
    _validate_template_documents(sections, rules)

    new_version = _bump_version(template.version)
    clone = models.ComplianceTemplate(
        name=template.name,
        version=new_version,
        commodity=template.commodity,
        country=template.country,
        region=template.region,
        standard_reference=template.standard_reference,
        certification_type=template.certification_type,
        sections=sections,
        scoring_rules=rules,
        is_active=True,
        change_reason=data.reason,
        previous_version_id=template.id,
        created_by_id=actor_user_id,
    )
    template.is_active = False
    db.add(clone)
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="compliance_template",
        entity_id=clone.id,
        action="VERSION",
        before={"id": template.id, "version": template.version},
        after={"id": clone.id, "version": new_version},
        metadata={"reason": data.reason},
    )
    logger.info(
        "Compliance template versioned",
        extra={"template_id": template.id, "new_template_id": clone.id, "version": new_version},
    )
    return clone


def _version_key(template: models.ComplianceTemplate) -> float:
    try:
        return float(template.version)
    except ValueError:
        return 0.0


def template_versions(db: Session, template: models.ComplianceTemplate) -> List[models.ComplianceTemplate]:
    query = db.query(models.ComplianceTemplate).filter(
        models.ComplianceTemplate.name == template.name,
        models.ComplianceTemplate.commodity == template.commodity,
    )
    if template.country is None:
        query = query.filter(models.ComplianceTemplate.country.is_(None))
    else:
        query = query.filter(models.ComplianceTemplate.country == template.country)
    return sorted(query.all(), key=_version_key, reverse=True)


# ---------------------------------------------------------------------------
# AUDITS
# ---------------------------------------------------------------------------


def visible_audits(db: Session, user: account_models.User) -> Query:
    """Mill staff see their own mill; FWGA roles and admins see every mill."""
    query = db.query(models.ComplianceAudit)
    if user.role in FWGA_ROLES:
        return query
    scope = mill_scope(user)
    if scope is not None:
        query = query.filter(models.ComplianceAudit.mill_id == scope)
    return query


def get_audit_for_user(db: Session, audit_id: str, user: account_models.User) -> models.ComplianceAudit:
    audit = visible_audits(db, user).filter(models.ComplianceAudit.id == audit_id).first()
    if not audit:
        raise NotFoundError("Audit")
    return audit


def create_audit(
    db: Session,
    data: schemas.AuditCreate,
    *,
    actor: account_models.User,
) -> models.ComplianceAudit:
    if actor.role in FWGA_ROLES or actor.role == UserRole.SYSTEM_ADMIN:
        mill_id = data.mill_id
        if not mill_id:
            raise ValidationError("mill_id is required", details=[{"field": "mill_id", "message": "required"}])
    else:
        mill_id = actor.mill_id
        if not mill_id:
            raise ValidationError("User is not associated with a mill")
        if data.mill_id and data.mill_id != mill_id:
            raise ForbiddenError("You can only open audits for your own mill")

    if not db.query(account_models.Mill).filter(account_models.Mill.id == mill_id).first():
        raise NotFoundError("Mill")

    template = get_template(db, data.template_id)
    if not template.is_active:
        raise ValidationError("Template version is no longer active")

    audit = models.ComplianceAudit(
        mill_id=mill_id,
        template_id=template.id,
        auditor_id=actor.id,
        audit_type=data.audit_type,
        audit_date=data.audit_date,
        batch_period=data.batch_period,
        notes=data.notes,
        responses={},
        status=AuditStatus.IN_PROGRESS,
    )
    db.add(audit)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=mill_id,
        actor_user_id=actor.id,
        entity_type="compliance_audit",
        entity_id=audit.id,
        action="CREATE",
        after=_audit_snapshot(audit),
    )
    return audit


def _normalized(responses: Any) -> Dict[str, Any]:
    try:
        return scoring.normalize_responses(responses)
    except scoring.ScoringInputError as exc:
        raise _scoring_error(exc) from exc


def _reopen_if_revision_requested(db: Session, audit: models.ComplianceAudit, actor: account_models.User) -> None:
    if audit.status != AuditStatus.REVISION_REQUESTED:
        return
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="compliance_audit",
        entity_id=audit.id,
        from_state=audit.status.value,
        to_state=AuditStatus.IN_PROGRESS.value,
        before_obj=_audit_snapshot(audit),
        after_obj={"mill_id": audit.mill_id},
    )
    audit.status = AuditStatus.IN_PROGRESS


def update_audit(
    db: Session,
    audit: models.ComplianceAudit,
    data: schemas.AuditUpdate,
    *,
    actor: account_models.User,
) -> models.ComplianceAudit:
    if audit.status not in EDITABLE_STATUSES:
        raise ValidationError(f"Audit in status {audit.status.value} cannot be edited")

    before = _audit_snapshot(audit)
    _reopen_if_revision_requested(db, audit, actor)

    fields = data.model_dump(exclude_unset=True)
    if "responses" in fields:
        merged = dict(audit.responses or {})
        merged.update(_normalized(fields["responses"]))
        audit.responses = merged
    if "evidence" in fields:
        audit.evidence = fields["evidence"]
    if "notes" in fields:
        audit.notes = fields["notes"]

    audit_services.log_event(
        db,
        mill_id=audit.mill_id,
        actor_user_id=actor.id,
        entity_type="compliance_audit",
        entity_id=audit.id,
        action="UPDATE",
        before=before,
        after=_audit_snapshot(audit),
        metadata={"fields": sorted(fields)},
    )
    return audit


def score_audit(db: Session, audit: models.ComplianceAudit) -> scoring.ScoringResult:
    """Score the stored responses against the audit's template and persist the breakdown."""
    template = audit.template
    try:
        _, _, _, result = scoring.score_documents(
            template.sections,
            audit.responses,
            template.scoring_rules,
        )
    except scoring.ScoringInputError as exc:
        raise _scoring_error(exc) from exc

    audit.score = result.overall_percentage
    audit.category = result.category.value
    audit.passed = result.passed
    audit.section_scores = [section.model_dump(mode="json") for section in result.section_scores]
    audit.flagged_issues = [flag.model_dump(mode="json") for flag in result.red_flags]
    audit.scored_at = _utcnow()
    return result


def what_if(audit: models.ComplianceAudit, changes: Dict[str, Any]) -> scoring.WhatIfResult:
    template = audit.template
    try:
        sections = scoring.parse_sections(template.sections)
        rules = scoring.parse_rules(template.scoring_rules)
        responses = scoring.normalize_responses(audit.responses)
        overrides = scoring.normalize_responses(changes)
    except scoring.ScoringInputError as exc:
        raise _scoring_error(exc) from exc
    return scoring.what_if_analysis(sections, responses, overrides, rules)


def submit_audit(
    db: Session,
    audit: models.ComplianceAudit,
    data: schemas.AuditSubmit,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> scoring.ScoringResult:
    if audit.auditor_id != actor.id:
        raise ForbiddenError("Only the auditor can submit this audit")
    if audit.status != AuditStatus.IN_PROGRESS:
        raise ValidationError("Only audits in progress can be submitted")

    before = _audit_snapshot(audit)
    if data.responses is not None:
        merged = dict(audit.responses or {})
        merged.update(_normalized(data.responses))
        audit.responses = merged
    if data.evidence is not None:
        audit.evidence = data.evidence
    if data.notes is not None:
        audit.notes = data.notes

    result = score_audit(db, audit)
    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="compliance_audit",
        entity_id=audit.id,
        from_state=audit.status.value,
        to_state=AuditStatus.PENDING_REVIEW.value,
        before_obj=before,
        after_obj={"mill_id": audit.mill_id, "responses": audit.responses, "score": audit.score},
    )
    audit.status = AuditStatus.PENDING_REVIEW
    audit.submitted_by_id = actor.id
    audit.submitted_at = _utcnow()

    audit_services.log_event(
        db,
        mill_id=audit.mill_id,
        actor_user_id=actor.id,
        entity_type="compliance_audit",
        entity_id=audit.id,
        action="SUBMIT",
        before=before,
        after=_audit_snapshot(audit),
        ip_address=ip_address,
        user_agent=user_agent,
    )

    mill_name = audit.mill.name if audit.mill else audit.mill_id
    notification_service.notify_role(
        db,
        roles=[UserRole.FWGA_INSPECTOR],
        notification_type="COMPLIANCE_SUBMISSION",
        title="New compliance audit submitted",
        message=f"{mill_name} submitted a compliance audit for review",
        priority=(
            NotificationPriority.HIGH
            if result.overall_percentage < LOW_SCORE_ALERT
            else NotificationPriority.NORMAL
        ),
        action_url=f"/compliance/review/{audit.id}",
        metadata={"audit_id": audit.id, "mill_id": audit.mill_id, "score": result.overall_percentage},
    )
    return result


def _issue_certificate(
    db: Session,
    audit: models.ComplianceAudit,
    *,
    actor: account_models.User,
) -> models.ComplianceCertificate:
    now = _utcnow()
    certificate = models.ComplianceCertificate(
        audit_id=audit.id,
        mill_id=audit.mill_id,
        certificate_number=compliance_certificate_number(audit.mill.code, now),
        score=audit.score,
        valid_from=now,
        valid_until=now + CERTIFICATE_VALIDITY,
        issued_by_id=actor.id,
    )
    db.add(certificate)
    db.flush()
    logger.info(
        "Compliance certificate issued",
        extra={"audit_id": audit.id, "certificate_number": certificate.certificate_number},
    )
    return certificate


def review_audit(
    db: Session,
    audit: models.ComplianceAudit,
    data: schemas.ReviewRequest,
    *,
    actor: account_models.User,
) -> Optional[models.ComplianceCertificate]:
    """
    Apply a reviewer decision.

    Returns the certificate when a plain APPROVE on a passing audit scoring
    at least 75 issues one.
    """
    target = models.REVIEW_TARGET_STATUS[data.action]
    before = _audit_snapshot(audit)

    apply_transition(
        db,
        actor_user_id=actor.id,
        entity_type="compliance_audit",
        entity_id=audit.id,
        from_state=audit.status.value,
        to_state=target.value,
        before_obj=before,
        after_obj={"mill_id": audit.mill_id, "score": audit.score},
        metadata={"action": data.action.value},
    )

    audit.status = target
    audit.reviewed_by_id = actor.id
    audit.reviewed_at = _utcnow()
    audit.review_comments = data.comments
    if data.action == ReviewAction.APPROVE_WITH_CONDITIONS:
        audit.review_conditions = data.conditions or []
    if data.action == ReviewAction.REQUEST_REVISION:
        audit.revision_requests = [r.model_dump() for r in data.revisions_required or []]

    certificate = None
    if (
        data.action == ReviewAction.APPROVE
        and audit.score is not None
        and audit.score >= CERTIFICATE_MIN_SCORE
        and audit.passed
    ):
        certificate = _issue_certificate(db, audit, actor=actor)

    audit_services.log_event(
        db,
        mill_id=audit.mill_id,
        actor_user_id=actor.id,
        entity_type="compliance_audit",
        entity_id=audit.id,
        action="REVIEW",
        before=before,
        after=_audit_snapshot(audit),
        metadata={
            "action": data.action.value,
            "certificate_number": certificate.certificate_number if certificate else None,
        },
        critical=True,
    )

    if audit.auditor_id:
        label = data.action.value.lower().replace("_", " ")
        notification_service.notify_user(
            db,
            user_id=audit.auditor_id,
            notification_type="COMPLIANCE_REVIEW",
            title="Compliance audit reviewed",
            message=f"Your compliance audit was reviewed: {label}",
            priority=(
                NotificationPriority.HIGH
                if target != AuditStatus.APPROVED
                else NotificationPriority.NORMAL
            ),
            action_url=f"/compliance/audits/{audit.id}",
            metadata={"audit_id": audit.id, "action": data.action.value},
        )
    return certificate


def latest_certificate(db: Session, audit: models.ComplianceAudit) -> Optional[models.ComplianceCertificate]:
    return (
        db.query(models.ComplianceCertificate)
        .filter(models.ComplianceCertificate.audit_id == audit.id)
        .order_by(models.ComplianceCertificate.created_at.desc())
        .first()
    )


def build_report(db: Session, audit: models.ComplianceAudit) -> dict:
    return {
        "audit": audit,
        "template": audit.template,
        "mill_name": audit.mill.name,
        "mill_code": audit.mill.code,
        "section_scores": audit.section_scores or [],
        "red_flags": audit.flagged_issues or [],
        "annotations": list(audit.annotations),
        "certificate": latest_certificate(db, audit),
    }


# ---------------------------------------------------------------------------
# ANNOTATIONS
# ---------------------------------------------------------------------------


def create_annotation(
    db: Session,
    audit: models.ComplianceAudit,
    data: schemas.AnnotationCreate,
    *,
    actor: account_models.User,
) -> models.ComplianceAnnotation:
    annotation = models.ComplianceAnnotation(
        audit_id=audit.id,
        item_id=data.item_id,
        annotator_id=actor.id,
        type=data.type,
        position=data.position,
        content=data.content,
        metadata_json={"color": data.color} if data.color else {},
    )
    db.add(annotation)
    db.flush()
    audit_services.log_event(
        db,
        mill_id=audit.mill_id,
        actor_user_id=actor.id,
        entity_type="compliance_annotation",
        entity_id=annotation.id,
        action="CREATE",
        after={"audit_id": audit.id, "item_id": data.item_id, "type": data.type},
    )
    return annotation


def update_annotation(
    db: Session,
    annotation: models.ComplianceAnnotation,
    data: schemas.AnnotationUpdate,
    *,
    actor: account_models.User,
) -> models.ComplianceAnnotation:
    before = {"content": annotation.content, "is_resolved": annotation.is_resolved}
    if data.content is not None:
        annotation.content = data.content
    if data.is_resolved is True and not annotation.is_resolved:
        annotation.is_resolved = True
        annotation.resolved_at = _utcnow()
        annotation.resolved_by_id = actor.id
    elif data.is_resolved is False:
        annotation.is_resolved = False
        annotation.resolved_at = None
        annotation.resolved_by_id = None

    audit_services.log_event(
        db,
        mill_id=annotation.audit.mill_id,
        actor_user_id=actor.id,
        entity_type="compliance_annotation",
        entity_id=annotation.id,
        action="UPDATE",
        before=before,
        after={"content": annotation.content, "is_resolved": annotation.is_resolved},
    )
    return annotation
