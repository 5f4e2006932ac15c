"""Planner-to-executor in-app notifications."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from everease.core.exceptions import NotFoundError, ValidationError
from everease.db.enums import ActivityType, ExecutorStatus, NotificationType
from everease.db.models import Executor, ExecutorNotification
from everease.services import audit_service, executor_service
from everease.utils.normalization import clean_email

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class NotificationNotFoundError(NotFoundError):
    default_message = "Notification not found"


def notify_executor(
    db: Session,
    planner_id: UUID,
    executor_id: UUID,
    message: str,
    notification_type: NotificationType = NotificationType.GENERAL,
) -> ExecutorNotification:
    """
    Send an in-app message to one of the planner's executors.

    Revoked executors cannot be notified.
    """
    executor = executor_service.get_executor(db, planner_id, executor_id)
    if executor.status == ExecutorStatus.REVOKED.value:
        raise ValidationError("Cannot notify a revoked executor")

    text = (message or "").strip()
    if not text:
        raise ValidationError("Message is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    notification = ExecutorNotification(
        executor_id=executor.id,
        type=notification_type.value,
        message=text,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    audit_service.record(
        db,
        user_id=planner_id,
        action_type=ActivityType.EXECUTOR_NOTIFIED,
        details=f"Sent {notification_type.value} notification to {executor.name}",
        actor_id=planner_id,
    )
    return notification


def list_notifications(
    db: Session,
    identity_email: str,
    unread_only: bool = False,
) -> list[ExecutorNotification]:
    """Notifications addressed to any non-revoked relationship of this email."""
    query = (
        db.query(ExecutorNotification)
        .join(Executor, ExecutorNotification.executor_id == Executor.id)
        .filter(
            Executor.email == clean_email(identity_email),
            Executor.status != ExecutorStatus.REVOKED.value,
        )
    )
    if unread_only:
        query = query.filter(ExecutorNotification.read.is_(False))
    return query.order_by(ExecutorNotification.created_at.desc()).all()


def list_sent_notifications(db: Session, planner_id: UUID, executor_id: UUID) -> list[ExecutorNotification]:
    executor = executor_service.get_executor(db, planner_id, executor_id)
    return (
        db.query(ExecutorNotification)
        .filter(ExecutorNotification.executor_id == executor.id)
        .order_by(ExecutorNotification.created_at.desc())
        .all()
    )


def mark_read(db: Session, identity_email: str, notification_id: UUID) -> ExecutorNotification:
    notification = (
        db.query(ExecutorNotification)
        .join(Executor, ExecutorNotification.executor_id == Executor.id)
        .filter(
            ExecutorNotification.id == notification_id,
            Executor.email == clean_email(identity_email),
        )
        .first()
    )
    if not notification:
        raise NotificationNotFoundError()
    if not notification.read:
        notification.read = True
        db.commit()
        db.refresh(notification)
    return notification
