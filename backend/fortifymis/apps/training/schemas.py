from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fortifymis.schemas import Page

from .models import CourseDifficulty, ProgressStatus


class CourseCreate(BaseModel):
    title: str = Field(min_length=3, max_length=255)
    description: Optional[str] = None
    category: str = Field(min_length=1, max_length=64)
    difficulty: CourseDifficulty = CourseDifficulty.BEGINNER
    duration_minutes: int = Field(gt=0)
    language: str = "en"
    is_published: bool = True


class CourseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None
    category: str
    difficulty: CourseDifficulty
    duration_minutes: int
    language: str
    is_published: bool
    created_at: datetime
    updated_at: datetime


class CourseSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    category: str


class ProgressUpsert(BaseModel):
    course_id: str
    progress: Optional[float] = Field(default=None, ge=0, le=100)
    status: Optional[ProgressStatus] = None
    score: Optional[float] = Field(default=None, ge=0, le=100)


class ProgressRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    course_id: str
    status: ProgressStatus
    progress: float
    score: Optional[float] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    certificate_number: Optional[str] = None
    updated_at: datetime
    course: Optional[CourseSummary] = None


class CertificateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    course_id: str
    certificate_number: str
    verification_code: str
    score: float
    issued_at: datetime
    course: Optional[CourseSummary] = None


class CertificateVerification(BaseModel):
    valid: bool
    certificate_number: str
    holder_name: str
    course_title: str
    score: float
    issued_at: datetime


CoursePage = Page[CourseRead]
