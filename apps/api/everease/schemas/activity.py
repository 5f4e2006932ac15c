"""Activity log schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ActivityRead(BaseModel):
    id: UUID
    action_type: str
    details: str | None
    actor_id: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityListResponse(BaseModel):
    items: list[ActivityRead]
    total: int
    limit: int
    offset: int
