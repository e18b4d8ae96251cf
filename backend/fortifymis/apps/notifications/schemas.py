from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fortifymis.schemas import Page

from .models import NotificationPriority


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: str
    title: str
    message: str
    priority: NotificationPriority
    action_url: Optional[str] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationPage(Page[NotificationRead]):
    unread_count: int


class MarkAllReadResult(BaseModel):
    updated: int
