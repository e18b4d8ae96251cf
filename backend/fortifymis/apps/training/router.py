from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from fortifymis.apps.accounts.models import User
from fortifymis.apps.accounts.permissions import Permission
from fortifymis.database import get_db
from fortifymis.schemas import ApiResponse, ok, paginate
from fortifymis.security import require_permissions

from . import models, schemas, services
from .models import CourseDifficulty, ProgressStatus

router = APIRouter(prefix="/api/training", tags=["training"])
public_router = APIRouter(prefix="/api/certificates", tags=["certificates"])


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


@router.get("/courses", response_model=ApiResponse[schemas.CoursePage])
def list_courses(
    category: Optional[str] = None,
    difficulty: Optional[CourseDifficulty] = None,
    published: Optional[bool] = True,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRAINING_VIEW)),
):
    query = db.query(models.TrainingCourse)
    if category:
        query = query.filter(models.TrainingCourse.category == category)
    if difficulty:
        query = query.filter(models.TrainingCourse.difficulty == difficulty)
    if published is not None:
        query = query.filter(models.TrainingCourse.is_published.is_(published))
    query = query.order_by(models.TrainingCourse.created_at.desc())
    return ok(paginate(query, page, page_size))


@router.post(
    "/courses",
    response_model=ApiResponse[schemas.CourseRead],
    status_code=status.HTTP_201_CREATED,
)
def create_course(
    payload: schemas.CourseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRAINING_MANAGE)),
):
    course = services.create_course(db, payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(course)
    return ok(course)


@router.get("/courses/{course_id}", response_model=ApiResponse[schemas.CourseRead])
def get_course(
    course_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRAINING_VIEW)),
):
    return ok(services.get_course(db, course_id))


# ---------------------------------------------------------------------------
# PROGRESS
# ---------------------------------------------------------------------------


@router.get("/progress", response_model=ApiResponse[List[schemas.ProgressRead]])
def list_progress(
    user_id: Optional[str] = None,
    status: Optional[ProgressStatus] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRAINING_VIEW)),
):
    owner_id = services.progress_owner_id(db, current_user, user_id)
    query = db.query(models.TrainingProgress).filter(models.TrainingProgress.user_id == owner_id)
    if status:
        query = query.filter(models.TrainingProgress.status == status)
    return ok(query.order_by(models.TrainingProgress.updated_at.desc()).all())


@router.post("/progress", response_model=ApiResponse[schemas.ProgressRead])
def upsert_progress(
    payload: schemas.ProgressUpsert,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRAINING_ENROLL)),
):
    progress, created = services.upsert_progress(
        db,
        payload,
        actor=current_user,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    db.commit()
    db.refresh(progress)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return ok(progress)


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


@router.get("/certificates", response_model=ApiResponse[List[schemas.CertificateRead]])
def list_certificates(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions(Permission.TRAINING_VIEW)),
):
    certificates = (
        db.query(models.TrainingCertificate)
        .filter(models.TrainingCertificate.user_id == current_user.id)
        .order_by(models.TrainingCertificate.issued_at.desc())
        .all()
    )
    return ok(certificates)


@public_router.get("/verify/{code}", response_model=ApiResponse[schemas.CertificateVerification])
def verify_certificate(code: str, db: Session = Depends(get_db)):
    return ok(services.verify_certificate(db, code))
