"""Executor relationship lifecycle.

Status moves pending -> active (invitation acceptance only) and
pending|active -> revoked (owning planner only). Revoked is terminal.
"""

import logging
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from everease.core.exceptions import AlreadyProcessedError, NotFoundError, ValidationError
from everease.db.enums import ActivityType, ExecutorStatus
from everease.db.models import Executor, ExecutorInvitation, utcnow
from everease.services import audit_service
from everease.utils.normalization import clean_email, normalize_name

logger = logging.getLogger(__name__)

OPEN_STATUSES = (ExecutorStatus.PENDING.value, ExecutorStatus.ACTIVE.value)


class ExecutorNotFoundError(NotFoundError):
    default_message = "Executor not found"


class DuplicateExecutorError(ValidationError):
    default_message = "This person is already one of your executors"


# =============================================================================
# Queries
# =============================================================================

def get_executor(db: Session, planner_id: UUID, executor_id: UUID) -> Executor:
    """Get a planner's executor or raise ExecutorNotFoundError."""
    executor = (
        db.query(Executor)
        .filter(Executor.id == executor_id, Executor.planner_id == planner_id)
        .first()
    )
    if not executor:
        raise ExecutorNotFoundError()
    return executor


def list_executors(
    db: Session,
    planner_id: UUID,
    status: ExecutorStatus | None = None,
) -> list[Executor]:
    query = db.query(Executor).filter(Executor.planner_id == planner_id)
    if status:
        query = query.filter(Executor.status == status.value)
    return query.order_by(Executor.created_at.desc()).all()


def find_open_executor(db: Session, planner_id: UUID, email: str) -> Executor | None:
    """Non-revoked executor for (planner, email), if any."""
    return (
        db.query(Executor)
        .filter(
            Executor.planner_id == planner_id,
            Executor.email == clean_email(email),
            Executor.status.in_(OPEN_STATUSES),
        )
        .first()
    )


def list_relationships_for_email(
    db: Session,
    email: str,
    status: ExecutorStatus | None = None,
) -> list[Executor]:
    """All executor rows naming this email, across planners."""
    target = clean_email(email)
    if not target:
        return []
    query = db.query(Executor).filter(Executor.email == target)
    if status:
        query = query.filter(Executor.status == status.value)
    return query.order_by(Executor.created_at.asc()).all()


def count_by_status(db: Session, planner_id: UUID) -> dict[str, int]:
    rows = (
        db.query(Executor.status, func.count(Executor.id))
        .filter(Executor.planner_id == planner_id)
        .group_by(Executor.status)
        .all()
    )
    counts = {status.value: 0 for status in ExecutorStatus}
    counts.update({status: count for status, count in rows})
    return counts


# =============================================================================
# Mutations
# =============================================================================

def create_executor(
    db: Session,
    planner_id: UUID,
    name: str,
    email: str,
    relationship: str | None = None,
) -> Executor:
    """
    Add a pending executor row (flushed, not committed).

    Raises:
        ValidationError: name or email missing
        DuplicateExecutorError: an open executor already exists for this email
    """
    clean_name = normalize_name(name)
    invited_email = clean_email(email)
    if not clean_name:
        raise ValidationError("Executor name is required")
    if not invited_email:
        raise ValidationError("Executor email is required")

    if find_open_executor(db, planner_id, invited_email):
        raise DuplicateExecutorError()

    executor = Executor(
        planner_id=planner_id,
        name=clean_name,
        email=invited_email,
        relationship=normalize_name(relationship),
        status=ExecutorStatus.PENDING.value,
    )
    try:
        # Savepoint keeps the caller's transaction usable if the unique index fires
        with db.begin_nested():
            db.add(executor)
            db.flush()
    except IntegrityError as exc:
        raise DuplicateExecutorError() from exc
    return executor


def activate_pending(db: Session, executor_id: UUID) -> bool:
    """
    Conditionally move a pending executor to active.

    Returns False when another request already activated (or revoked) it.
    Caller commits.
    """
    result = db.execute(
        update(Executor)
        .where(
            Executor.id == executor_id,
            Executor.status == ExecutorStatus.PENDING.value,
        )
        .values(status=ExecutorStatus.ACTIVE.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def update_executor(
    db: Session,
    planner_id: UUID,
    executor_id: UUID,
    *,
    name: str | None = None,
    relationship: str | None = None,
    actor_id: UUID | None = None,
) -> Executor:
    """Rename an executor or change the relationship label."""
    executor = get_executor(db, planner_id, executor_id)
    if executor.status == ExecutorStatus.REVOKED.value:
        raise AlreadyProcessedError("Revoked executors cannot be edited")

    changes = []
    if name is not None:
        clean_name = normalize_name(name)
        if not clean_name:
            raise ValidationError("Executor name is required")
        if clean_name != executor.name:
            executor.name = clean_name
            changes.append("name")
    if relationship is not None:
        clean_relationship = normalize_name(relationship)
        if clean_relationship != executor.relationship:
            executor.relationship = clean_relationship
            changes.append("relationship")

    if not changes:
        return executor

    db.commit()
    db.refresh(executor)
    audit_service.record(
        db,
        user_id=planner_id,
        action_type=ActivityType.EXECUTOR_UPDATED,
        details=f"Updated executor {executor.name} ({', '.join(changes)})",
        actor_id=actor_id,
    )
    return executor


def revoke_executor(
    db: Session,
    planner_id: UUID,
    executor_id: UUID,
    actor_id: UUID | None = None,
) -> Executor:
    """
    Revoke an executor's access.

    Removes any outstanding invitation. Takes effect regardless of the
    trigger state: the access gate requires an active relationship.

    Raises:
        ExecutorNotFoundError: not this planner's executor
        AlreadyProcessedError: already revoked
    """
    executor = get_executor(db, planner_id, executor_id)

    now = utcnow()
    result = db.execute(
        update(Executor)
        .where(
            Executor.id == executor.id,
            Executor.status.in_(OPEN_STATUSES),
        )
        .values(status=ExecutorStatus.REVOKED.value, revoked_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise AlreadyProcessedError("Executor access is already revoked")

    db.execute(
        delete(ExecutorInvitation)
        .where(ExecutorInvitation.executor_id == executor.id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(executor)

    logger.info("Revoked executor %s for planner %s", executor.id, planner_id)
    audit_service.record(
        db,
        user_id=planner_id,
        action_type=ActivityType.ACCESS_REVOKED,
        details=f"Revoked executor access for {executor.name}",
        actor_id=actor_id,
    )
    return executor
