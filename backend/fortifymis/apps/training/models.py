# backend/fortifymis/apps/training/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from fortifymis.database import Base
from fortifymis.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CourseDifficulty(str, enum.Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class ProgressStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TrainingCourse(Base):
    __tablename__ = "training_courses"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=False, index=True)
    difficulty = Column(
        SAEnum(CourseDifficulty, name="training_difficulty_enum", native_enum=False),
        nullable=False,
        default=CourseDifficulty.BEGINNER,
    )
    duration_minutes = Column(Integer, nullable=False)
    language = Column(String(8), nullable=False, default="en")
    is_published = Column(Boolean, nullable=False, default=True, index=True)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    progress = relationship("TrainingProgress", back_populates="course")

    def __repr__(self) -> str:
        return f"<TrainingCourse id={self.id} title={self.title}>"


class TrainingProgress(Base):
    __tablename__ = "training_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_training_progress_user_course"),
        Index("idx_training_progress_user_status", "user_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(String(36), ForeignKey("training_courses.id", ondelete="CASCADE"), nullable=False)

    status = Column(
        SAEnum(ProgressStatus, name="training_progress_status_enum", native_enum=False),
        nullable=False,
        default=ProgressStatus.NOT_STARTED,
    )
    progress = Column(Float, nullable=False, default=0.0)
    score = Column(Float, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    certificate_number = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    course = relationship("TrainingCourse", back_populates="progress")


class TrainingCertificate(Base):
    __tablename__ = "training_certificates"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_training_certificate_user_course"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(String(36), ForeignKey("training_courses.id", ondelete="CASCADE"), nullable=False)
    certificate_number = Column(String(32), nullable=False, unique=True)
    verification_code = Column(String(32), nullable=False, unique=True, index=True)
    score = Column(Float, nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("User")
    course = relationship("TrainingCourse")
