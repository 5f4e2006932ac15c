"""Planner audit trail."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from everease.core.deps import get_db, require_roles
from everease.db.enums import ActivityType, ProfileRole
from everease.schemas.activity import ActivityListResponse, ActivityRead
from everease.schemas.auth import UserSession
from everease.services import audit_service


router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("", response_model=ActivityListResponse)
async def list_activity(
    action_type: ActivityType | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles([ProfileRole.PLANNER])),
):
    """The planner's activity timeline, newest first."""
    items = audit_service.list_activity(
        db, session.identity_id, action_type=action_type, limit=limit, offset=offset
    )
    return ActivityListResponse(
        items=[ActivityRead.model_validate(item) for item in items],
        total=audit_service.count_activity(db, session.identity_id, action_type),
        limit=limit,
        offset=offset,
    )
