from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    mill_id: Optional[str] = None
    actor_user_id: Optional[str] = None
    entity_type: str
    entity_id: str
    action: str
    before: Optional[dict] = None
    after: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")
    occurred_at: datetime
