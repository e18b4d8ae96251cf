from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.accounts.models import UserRole
from fortifymis.apps.audit import services as audit_services
from fortifymis.apps.notifications import service as notification_service
from fortifymis.apps.notifications.models import NotificationPriority
from fortifymis.errors import ForbiddenError, NotFoundError, ValidationError
from fortifymis.utils.identifiers import training_certificate_number, verification_code

from . import models, schemas
from .models import ProgressStatus

logger = logging.getLogger(__name__)

PASSING_SCORE = 70.0

# Roles that may read another user's training progress.
PROGRESS_SUPERVISORS = frozenset(
    {UserRole.SYSTEM_ADMIN, UserRole.MILL_MANAGER, UserRole.FWGA_PROGRAM_MANAGER}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _progress_snapshot(progress: models.TrainingProgress) -> dict:
    return {
        "course_id": progress.course_id,
        "status": progress.status,
        "progress": progress.progress,
        "score": progress.score,
        "certificate_number": progress.certificate_number,
    }


def get_course(db: Session, course_id: str) -> models.TrainingCourse:
    course = db.query(models.TrainingCourse).filter(models.TrainingCourse.id == course_id).first()
    if not course:
        raise NotFoundError("Course")
    return course


def create_course(
    db: Session,
    data: schemas.CourseCreate,
    *,
    actor_user_id: str,
) -> models.TrainingCourse:
    course = models.TrainingCourse(created_by_id=actor_user_id, **data.model_dump())
    db.add(course)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="training_course",
        entity_id=course.id,
        action="CREATE",
        after=data.model_dump(),
    )
    return course


def progress_owner_id(
    db: Session,
    user: account_models.User,
    requested_user_id: Optional[str],
) -> str:
    """Whose progress the caller may read."""
    if not requested_user_id or requested_user_id == user.id:
        return user.id
    if user.role not in PROGRESS_SUPERVISORS:
        raise ForbiddenError("You do not have permission to view other users' progress")
    target = db.query(account_models.User).filter(account_models.User.id == requested_user_id).first()
    if not target:
        raise NotFoundError("User")
    # Mill managers supervise their own mill only.
    if user.role == UserRole.MILL_MANAGER and target.mill_id != user.mill_id:
        raise ForbiddenError("You do not have permission to view other users' progress")
    return target.id


def _issue_certificate(
    db: Session,
    progress: models.TrainingProgress,
    course: models.TrainingCourse,
) -> models.TrainingCertificate:
    existing = (
        db.query(models.TrainingCertificate)
        .filter(
            models.TrainingCertificate.user_id == progress.user_id,
            models.TrainingCertificate.course_id == course.id,
        )
        .first()
    )
    if existing:
        return existing

    certificate = models.TrainingCertificate(
        user_id=progress.user_id,
        course_id=course.id,
        certificate_number=training_certificate_number(),
        verification_code=verification_code(),
        score=progress.score,
    )
    db.add(certificate)
    db.flush()
    progress.certificate_number = certificate.certificate_number

    notification_service.notify_user(
        db,
        user_id=progress.user_id,
        notification_type="TRAINING_CERTIFICATE_ISSUED",
        title="Training certificate issued",
        message=f"You passed {course.title} with a score of {progress.score:.0f}%.",
        priority=NotificationPriority.NORMAL,
        action_url="/training/certificates",
        metadata={"certificate_number": certificate.certificate_number, "course_id": course.id},
    )
    logger.info(
        "Training certificate issued",
        extra={"user_id": progress.user_id, "course_id": course.id},
    )
    return certificate


def upsert_progress(
    db: Session,
    data: schemas.ProgressUpsert,
    *,
    actor: account_models.User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Tuple[models.TrainingProgress, bool]:
    """
    Create or update the caller's progress on a course.

    Completing with a score of at least 70 issues a certificate once;
    completing below that marks the attempt FAILED.
    Returns the progress row and whether it was created.
    """
    course = get_course(db, data.course_id)
    if not course.is_published:
        raise ValidationError("Course is not published")

    progress = (
        db.query(models.TrainingProgress)
        .filter(
            models.TrainingProgress.user_id == actor.id,
            models.TrainingProgress.course_id == course.id,
        )
        .first()
    )
    created = progress is None
    before = None
    if created:
        progress = models.TrainingProgress(
            user_id=actor.id,
            course_id=course.id,
            status=ProgressStatus.IN_PROGRESS,
            progress=0.0,
        )
        db.add(progress)
    else:
        if progress.status == ProgressStatus.COMPLETED:
            raise ValidationError("Course already completed")
        before = _progress_snapshot(progress)

    if data.progress is not None:
        progress.progress = data.progress
    if data.score is not None:
        progress.score = data.score
    if data.status is not None:
        progress.status = data.status

    now = _utcnow()
    if progress.status == ProgressStatus.IN_PROGRESS and progress.started_at is None:
        progress.started_at = now

    if progress.status == ProgressStatus.COMPLETED:
        if progress.score is None:
            raise ValidationError("A score is required to complete a course")
        progress.completed_at = now
        if progress.score >= PASSING_SCORE:
            progress.progress = 100.0
            db.flush()
            _issue_certificate(db, progress, course)
        else:
            progress.status = ProgressStatus.FAILED

    db.flush()
    audit_services.log_event(
        db,
        mill_id=actor.mill_id,
        actor_user_id=actor.id,
        entity_type="training_progress",
        entity_id=progress.id,
        action="CREATE" if created else "UPDATE",
        before=before,
        after=_progress_snapshot(progress),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return progress, created


def verify_certificate(db: Session, code: str) -> dict:
    certificate = (
        db.query(models.TrainingCertificate)
        .filter(models.TrainingCertificate.verification_code == code.strip().upper())
        .first()
    )
    if not certificate:
        raise NotFoundError("Certificate")
    return {
        "valid": True,
        "certificate_number": certificate.certificate_number,
        "holder_name": certificate.user.full_name,
        "course_title": certificate.course.title,
        "score": certificate.score,
        "issued_at": certificate.issued_at,
    }
