"""Executor portal reads: relationships, status and unlocked planner data."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from everease.core.exceptions import AccessDeniedError
from everease.db.enums import AccessState, ExecutorStatus
from everease.db.models import Document
from everease.services import executor_service, profile_service, storage_service, trigger_service
from everease.utils.datetime_parsing import ensure_utc


VERIFICATION_REQUIRED = "Verification Required"


@dataclass
class RelationshipSummary:
    executor_id: UUID
    planner_id: UUID
    planner_name: str
    relationship: str | None
    status: str
    access_state: AccessState
    triggered_date: datetime | None


def list_relationships(db: Session, identity_email: str) -> list[RelationshipSummary]:
    """Every planner that named this email, with the derived access state."""
    summaries = []
    for executor in executor_service.list_relationships_for_email(db, identity_email):
        trigger = trigger_service.get_trigger_status(db, executor.planner_id, executor.id)
        summaries.append(
            RelationshipSummary(
                executor_id=executor.id,
                planner_id=executor.planner_id,
                planner_name=profile_service.planner_display_name(db, executor.planner_id),
                relationship=executor.relationship,
                status=executor.status,
                access_state=trigger_service.get_access_state(db, executor),
                triggered_date=ensure_utc(trigger.triggered_date)
                if executor.status == ExecutorStatus.ACTIVE.value
                else None,
            )
        )
    return summaries


def list_planner_documents(db: Session, identity_email: str, planner_id: UUID) -> list[dict]:
    """
    The planner's documents, for an executor whose access is unlocked.

    Raises:
        AccessDeniedError: access gate closed ("Verification Required")
    """
    if not trigger_service.can_access_planner_data(db, identity_email, planner_id):
        raise AccessDeniedError(VERIFICATION_REQUIRED)

    documents = (
        db.query(Document)
        .filter(Document.user_id == planner_id)
        .order_by(Document.created_at.desc())
        .all()
    )
    return [
        {
            "id": document.id,
            "name": document.name,
            "description": document.description,
            "category": document.category,
            "content_type": document.content_type,
            "file_size": document.file_size,
            "created_at": ensure_utc(document.created_at),
            "download_url": storage_service.signed_url(document.file_path),
        }
        for document in documents
    ]
