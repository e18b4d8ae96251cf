from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fortifymis.apps.accounts.models import UserRole
from fortifymis.schemas import Page

from .enums import AlertCategory, AlertSeverity, AlertStatus


class AlertCreate(BaseModel):
    type: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    severity: Optional[AlertSeverity] = None
    category: Optional[AlertCategory] = None
    recipient_id: Optional[str] = None
    recipient_role: Optional[UserRole] = None
    mill_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Optional[dict] = None


class AlertUpdate(BaseModel):
    status: Optional[AlertStatus] = None
    resolution_notes: Optional[str] = None
    read: Optional[bool] = None


class AlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    title: str
    message: str
    severity: AlertSeverity
    category: AlertCategory
    status: AlertStatus
    recipient_id: Optional[str] = None
    recipient_role: Optional[UserRole] = None
    mill_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")
    action_required: Optional[str] = None
    due_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by_id: Optional[str] = None
    resolution_notes: Optional[str] = None
    created_by_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AlertPage(Page[AlertRead]):
    unread_count: int
