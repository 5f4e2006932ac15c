"""Planner endpoints for managing executors."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from everease.core.deps import get_db, require_csrf_header, require_roles
from everease.db.enums import ExecutorStatus, ProfileRole
from everease.db.models import Executor
from everease.schemas.auth import UserSession
from everease.schemas.executor import (
    ExecutorCreate,
    ExecutorCreated,
    ExecutorRead,
    ExecutorUpdate,
    InvitationResent,
    NotificationCreate,
    NotificationRead,
)
from everease.services import (
    executor_service,
    invitation_service,
    notification_service,
    trigger_service,
)


router = APIRouter(prefix="/executors", tags=["executors"])

require_planner = require_roles([ProfileRole.PLANNER])


def _executor_to_read(db: Session, executor: Executor) -> ExecutorRead:
    read = ExecutorRead.model_validate(executor)
    read.access_state = trigger_service.get_access_state(db, executor)
    return read


@router.get("", response_model=list[ExecutorRead])
async def list_executors(
    status: ExecutorStatus | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    """List the planner's executors, newest first."""
    executors = executor_service.list_executors(db, session.identity_id, status)
    return [_executor_to_read(db, executor) for executor in executors]


@router.post(
    "",
    response_model=ExecutorCreated,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_executor(
    body: ExecutorCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    """Add an executor and email them an invitation."""
    issued = await invitation_service.issue_invitation(
        db,
        planner_id=session.identity_id,
        executor_name=body.name,
        executor_email=body.email,
        relationship=body.relationship,
    )
    executor = executor_service.get_executor(db, session.identity_id, issued.executor_id)
    return ExecutorCreated(
        executor=_executor_to_read(db, executor),
        expires_at=issued.expires_at,
        invitation_sent=issued.invitation_sent,
    )


@router.get("/{executor_id}", response_model=ExecutorRead)
async def get_executor(
    executor_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    executor = executor_service.get_executor(db, session.identity_id, executor_id)
    return _executor_to_read(db, executor)


@router.patch("/{executor_id}", response_model=ExecutorRead, dependencies=[Depends(require_csrf_header)])
async def update_executor(
    executor_id: UUID,
    body: ExecutorUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    """Edit an executor's name or relationship label."""
    executor = executor_service.update_executor(
        db,
        session.identity_id,
        executor_id,
        name=body.name,
        relationship=body.relationship,
        actor_id=session.identity_id,
    )
    return _executor_to_read(db, executor)


@router.post("/{executor_id}/revoke", response_model=ExecutorRead, dependencies=[Depends(require_csrf_header)])
async def revoke_executor(
    executor_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    """Revoke an executor. Takes effect even after death verification."""
    executor = executor_service.revoke_executor(
        db, session.identity_id, executor_id, actor_id=session.identity_id
    )
    return _executor_to_read(db, executor)


@router.post(
    "/{executor_id}/invitation/resend",
    response_model=InvitationResent,
    dependencies=[Depends(require_csrf_header)],
)
async def resend_invitation(
    executor_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    issued = await invitation_service.resend_invitation(db, session.identity_id, executor_id)
    return InvitationResent(
        executor_id=issued.executor_id,
        expires_at=issued.expires_at,
        invitation_sent=issued.invitation_sent,
    )


@router.get("/{executor_id}/notifications", response_model=list[NotificationRead])
async def list_sent_notifications(
    executor_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    return notification_service.list_sent_notifications(db, session.identity_id, executor_id)


@router.post(
    "/{executor_id}/notifications",
    response_model=NotificationRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def notify_executor(
    executor_id: UUID,
    body: NotificationCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_planner),
):
    return notification_service.notify_executor(
        db, session.identity_id, executor_id, body.message, body.type
    )
