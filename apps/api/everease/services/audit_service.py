"""Activity log service - append-only record of access transitions.

Entries are written as best-effort side effects: a failing audit write is
logged and swallowed, and never rolls back the state change it describes.

Security guidelines:
- NEVER log secrets (invitation tokens, passwords, continuation state)
- Use hash_email for emails in diagnostic log lines
- Details are human-readable; they end up on the planner's timeline
"""

import hashlib
import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from everease.db.enums import ActivityType
from everease.db.models import ActivityLog

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 2000
DEFAULT_PAGE_SIZE = 50


def hash_email(email: str) -> str:
    """Hash email for log lines (prefix + SHA256 suffix for debugging)."""
    if not email:
        return ""
    email = email.strip().lower()
    prefix = email.split("@")[0][:3] if "@" in email else email[:3]
    suffix = hashlib.sha256(email.encode()).hexdigest()[:12]
    return f"{prefix}...@[hash:{suffix}]"


def record(
    db: Session,
    user_id: UUID | None,
    action_type: ActivityType,
    details: str | None = None,
    actor_id: UUID | None = None,
) -> ActivityLog | None:
    """
    Append an activity entry and commit it.

    Runs inside a SAVEPOINT so a failed insert leaves the caller's session
    usable. Call after the primary change has been committed.

    Args:
        db: Database session
        user_id: Planner whose timeline the entry belongs to
        action_type: Transition being recorded
        details: Human-readable description
        actor_id: Account that caused the transition (None for system)

    Returns:
        The entry, or None when the write failed
    """
    try:
        # Savepoint rolls itself back on failure; the outer transaction survives
        with db.begin_nested():
            entry = ActivityLog(
                user_id=user_id,
                actor_id=actor_id,
                action_type=action_type.value,
                details=(details or "")[:MAX_DETAILS_LENGTH] or None,
            )
            db.add(entry)
    except SQLAlchemyError:
        logger.warning("Activity log write failed for %s", action_type.value, exc_info=True)
        return None

    try:
        db.commit()
    except SQLAlchemyError:
        logger.warning("Activity log commit failed for %s", action_type.value, exc_info=True)
        db.rollback()
        return None
    return entry


def list_activity(
    db: Session,
    user_id: UUID,
    *,
    action_type: ActivityType | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> list[ActivityLog]:
    """List a planner's activity, newest first."""
    query = db.query(ActivityLog).filter(ActivityLog.user_id == user_id)
    if action_type:
        query = query.filter(ActivityLog.action_type == action_type.value)
    return (
        query.order_by(ActivityLog.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def count_activity(db: Session, user_id: UUID, action_type: ActivityType | None = None) -> int:
    query = db.query(ActivityLog).filter(ActivityLog.user_id == user_id)
    if action_type:
        query = query.filter(ActivityLog.action_type == action_type.value)
    return query.count()
