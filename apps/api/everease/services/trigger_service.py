"""Trigger events and the access gate.

A trigger event records whether the condition gating an executor's access
(death, incapacitation) has been verified. ``set_triggered`` is the only
mutator and it only ever moves triggered from false to true.

The access gate combines the executor relationship status with the death
trigger: both must hold, and any failure to decide denies access.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from everease.core.exceptions import NotFoundError
from everease.db.enums import AccessState, ExecutorStatus, TriggerType, VerificationMethod
from everease.db.models import Executor, TriggerEvent, utcnow
from everease.utils.datetime_parsing import ensure_utc
from everease.utils.normalization import clean_email

logger = logging.getLogger(__name__)


class TriggerNotFoundError(NotFoundError):
    default_message = "Trigger event not found"


@dataclass
class TriggerStatus:
    triggered: bool
    triggered_date: datetime | None = None


# =============================================================================
# Trigger Event Store
# =============================================================================

def get_trigger(
    db: Session,
    planner_id: UUID,
    executor_id: UUID,
    trigger_type: TriggerType = TriggerType.DEATH,
) -> TriggerEvent | None:
    """Trigger row for the pair; a triggered row wins if duplicates exist."""
    return (
        db.query(TriggerEvent)
        .filter(
            TriggerEvent.user_id == planner_id,
            TriggerEvent.executor_id == executor_id,
            TriggerEvent.type == trigger_type.value,
        )
        .order_by(TriggerEvent.triggered.desc(), TriggerEvent.created_at.asc())
        .first()
    )


def get_trigger_status(
    db: Session,
    planner_id: UUID,
    executor_id: UUID,
    trigger_type: TriggerType = TriggerType.DEATH,
) -> TriggerStatus:
    """Current trigger state. A missing row reads as not triggered."""
    trigger = get_trigger(db, planner_id, executor_id, trigger_type)
    if not trigger:
        return TriggerStatus(triggered=False)
    return TriggerStatus(
        triggered=bool(trigger.triggered),
        triggered_date=ensure_utc(trigger.triggered_date),
    )


def create_trigger(
    db: Session,
    planner_id: UUID,
    executor_id: UUID,
    trigger_type: TriggerType = TriggerType.DEATH,
    verification_method: VerificationMethod = VerificationMethod.PROFESSIONAL,
) -> TriggerEvent:
    """Add an untriggered row (flushed, not committed)."""
    trigger = TriggerEvent(
        user_id=planner_id,
        executor_id=executor_id,
        type=trigger_type.value,
        verification_method=verification_method.value,
        triggered=False,
    )
    db.add(trigger)
    db.flush()
    return trigger


def get_or_create_trigger(
    db: Session,
    planner_id: UUID,
    executor_id: UUID,
    trigger_type: TriggerType = TriggerType.DEATH,
) -> TriggerEvent:
    trigger = get_trigger(db, planner_id, executor_id, trigger_type)
    if trigger:
        return trigger
    return create_trigger(db, planner_id, executor_id, trigger_type)


def set_triggered(db: Session, trigger_id: UUID, details: str) -> TriggerEvent:
    """
    Latch a trigger to triggered (caller commits).

    Idempotent: an already-triggered row keeps its original date and details.

    Raises:
        TriggerNotFoundError: no such trigger
    """
    db.execute(
        update(TriggerEvent)
        .where(TriggerEvent.id == trigger_id, TriggerEvent.triggered.is_(False))
        .values(triggered=True, triggered_date=utcnow(), verification_details=details)
        .execution_options(synchronize_session=False)
    )
    trigger = db.get(TriggerEvent, trigger_id, populate_existing=True)
    if not trigger:
        raise TriggerNotFoundError()
    return trigger


# =============================================================================
# Access Gate
# =============================================================================

def _open_relationship(db: Session, email: str, planner_id: UUID) -> Executor | None:
    return (
        db.query(Executor)
        .filter(
            Executor.planner_id == planner_id,
            Executor.email == clean_email(email),
            Executor.status == ExecutorStatus.ACTIVE.value,
        )
        .first()
    )


def can_access_planner_data(db: Session, identity_email: str | None, planner_id: UUID) -> bool:
    """
    True only for an active executor whose death trigger has fired.

    Never raises: an indeterminate state denies access.
    """
    if not identity_email:
        return False
    try:
        executor = _open_relationship(db, identity_email, planner_id)
        if not executor:
            return False
        return get_trigger_status(db, planner_id, executor.id, TriggerType.DEATH).triggered
    except Exception:
        logger.exception("Access check failed for planner %s; denying", planner_id)
        return False


def get_access_state(db: Session, executor: Executor | None) -> AccessState:
    """Map an executor row (or its absence) to the access state machine."""
    if executor is None:
        return AccessState.UNINVITED
    if executor.status == ExecutorStatus.REVOKED.value:
        return AccessState.REVOKED
    if executor.status == ExecutorStatus.PENDING.value:
        return AccessState.PENDING
    status = get_trigger_status(db, executor.planner_id, executor.id, TriggerType.DEATH)
    return AccessState.ACTIVE_UNLOCKED if status.triggered else AccessState.ACTIVE_LOCKED
