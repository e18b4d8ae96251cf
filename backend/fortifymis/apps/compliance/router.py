from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.apps.accounts.permissions import Permission
from fortifymis.database import get_db
from fortifymis.errors import NotFoundError
from fortifymis.schemas import ApiResponse, ok, paginate
from fortifymis.security import require_permissions

from . import models, schemas, services
from .models import AuditStatus, AuditType
from .scoring import WhatIfResult

router = APIRouter(prefix="/api/compliance", tags=["compliance"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# TEMPLATES
# ---------------------------------------------------------------------------


@router.get("/templates", response_model=ApiResponse[schemas.TemplatePage])
def list_templates(
    active_only: bool = True,
    commodity: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    query = db.query(models.ComplianceTemplate)
    if active_only:
        query = query.filter(models.ComplianceTemplate.is_active.is_(True))
    if commodity:
        query = query.filter(models.ComplianceTemplate.commodity == commodity.upper())
    query = query.order_by(models.ComplianceTemplate.name.asc(), models.ComplianceTemplate.created_at.desc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/templates",
    response_model=ApiResponse[schemas.TemplateRead],
    status_code=status.HTTP_201_CREATED,
)
def create_template(
    payload: schemas.TemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TEMPLATE_MANAGE)),
):
    template = services.create_template(db, payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(template)
    return ok(template)


@router.get("/templates/{template_id}", response_model=ApiResponse[schemas.TemplateRead])
def get_template(
    template_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    return ok(services.get_template(db, template_id))


@router.get("/templates/{template_id}/versions", response_model=ApiResponse[schemas.TemplateVersions])
def list_template_versions(
    template_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    template = services.get_template(db, template_id)
    return ok({"current": template.version, "versions": services.template_versions(db, template)})


@router.post(
    "/templates/{template_id}/versions",
    response_model=ApiResponse[schemas.TemplateRead],
    status_code=status.HTTP_201_CREATED,
)
def create_template_version(
    template_id: str,
    payload: schemas.TemplateVersionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TEMPLATE_MANAGE)),
):
    template = services.get_template(db, template_id)
    clone = services.create_template_version(db, template, payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(clone)
    return ok(clone, message=f"Template updated to version {clone.version}")


# ---------------------------------------------------------------------------
# AUDITS
# ---------------------------------------------------------------------------


@router.get("/audits", response_model=ApiResponse[schemas.AuditPage])
def list_audits(
    status: Optional[AuditStatus] = None,
    audit_type: Optional[AuditType] = None,
    mill_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    query = services.visible_audits(db, current_user)
    if status:
        query = query.filter(models.ComplianceAudit.status == status)
    if audit_type:
        query = query.filter(models.ComplianceAudit.audit_type == audit_type)
    if mill_id:
        query = query.filter(models.ComplianceAudit.mill_id == mill_id)
    query = query.order_by(
        models.ComplianceAudit.audit_date.desc(),
        models.ComplianceAudit.created_at.desc(),
    )
    return ok(paginate(query, page, page_size))


@router.post(
    "/audits",
    response_model=ApiResponse[schemas.AuditRead],
    status_code=status.HTTP_201_CREATED,
)
def create_audit(
    payload: schemas.AuditCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_CREATE)),
):
    audit = services.create_audit(db, payload, actor=current_user)
    db.commit()
    db.refresh(audit)
    return ok(audit)


@router.get("/audits/{audit_id}", response_model=ApiResponse[schemas.AuditRead])
def get_audit(
    audit_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    return ok(services.get_audit_for_user(db, audit_id, current_user))


@router.patch("/audits/{audit_id}", response_model=ApiResponse[schemas.AuditRead])
def update_audit(
    audit_id: str,
    payload: schemas.AuditUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_EDIT)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    services.update_audit(db, audit, payload, actor=current_user)
    db.commit()
    db.refresh(audit)
    return ok(audit)


@router.post("/audits/{audit_id}/submit", response_model=ApiResponse[schemas.ScoredAudit])
def submit_audit(
    audit_id: str,
    payload: schemas.AuditSubmit,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_SUBMIT)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    result = services.submit_audit(
        db,
        audit,
        payload,
        actor=current_user,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    db.refresh(audit)
    return ok({"audit": audit, "scoring": result}, message="Audit submitted for review")


@router.post("/audits/{audit_id}/calculate-score", response_model=ApiResponse[schemas.ScoredAudit])
def calculate_score(
    audit_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_EDIT)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    result = services.score_audit(db, audit)
    db.commit()
    db.refresh(audit)
    return ok({"audit": audit, "scoring": result})


@router.post("/audits/{audit_id}/what-if", response_model=ApiResponse[WhatIfResult])
def what_if(
    audit_id: str,
    payload: schemas.WhatIfRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    return ok(services.what_if(audit, payload.changes))


@router.post("/audits/{audit_id}/review", response_model=ApiResponse[schemas.ReviewResult])
def review_audit(
    audit_id: str,
    payload: schemas.ReviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_APPROVE)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    certificate = services.review_audit(db, audit, payload, actor=current_user)
    db.commit()
    db.refresh(audit)
    label = payload.action.value.lower().replace("_", " ")
    return ok({"audit": audit, "certificate": certificate}, message=f"Audit review recorded: {label}")


@router.get("/audits/{audit_id}/report", response_model=ApiResponse[schemas.AuditReport])
def audit_report(
    audit_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    return ok(services.build_report(db, audit))


# ---------------------------------------------------------------------------
# ANNOTATIONS
# ---------------------------------------------------------------------------


@router.get(
    "/audits/{audit_id}/annotations",
    response_model=ApiResponse[List[schemas.AnnotationRead]],
)
def list_annotations(
    audit_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    return ok(list(audit.annotations))


@router.post(
    "/audits/{audit_id}/annotations",
    response_model=ApiResponse[schemas.AnnotationRead],
    status_code=status.HTTP_201_CREATED,
)
def create_annotation(
    audit_id: str,
    payload: schemas.AnnotationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    audit = services.get_audit_for_user(db, audit_id, current_user)
    annotation = services.create_annotation(db, audit, payload, actor=current_user)
    db.commit()
    db.refresh(annotation)
    return ok(annotation)


@router.patch("/annotations/{annotation_id}", response_model=ApiResponse[schemas.AnnotationRead])
def update_annotation(
    annotation_id: str,
    payload: schemas.AnnotationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.AUDIT_VIEW)),
):
    annotation = (
        db.query(models.ComplianceAnnotation)
        .filter(models.ComplianceAnnotation.id == annotation_id)
        .first()
    )
    if not annotation:
        raise NotFoundError("Annotation")
    # Visibility follows the parent audit.
    services.get_audit_for_user(db, annotation.audit_id, current_user)
    services.update_annotation(db, annotation, payload, actor=current_user)
    db.commit()
    db.refresh(annotation)
    return ok(annotation)
