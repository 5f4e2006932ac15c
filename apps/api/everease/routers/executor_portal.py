"""Executor portal: relationships, verification and unlocked planner data."""

import json
from uuid import UUID

import pydantic
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from everease.core.config import settings
from everease.core.deps import get_current_session, get_db, require_csrf_header
from everease.core.exceptions import ValidationError
from everease.db.enums import AccessState
from everease.schemas.auth import UserSession
from everease.schemas.executor import (
    DeathCertificateImage,
    ExecutorStatusResponse,
    NotificationRead,
    PlannerDocumentRead,
    RelationshipRead,
    VerificationResponse,
)
from everease.services import notification_service, portal_service, verification_service
from everease.services.verification_service import FileTooLargeError
from everease.utils.file_upload import (
    MULTIPART_OVERHEAD_BYTES,
    content_length_exceeds_limit,
    read_upload_bounded,
)


router = APIRouter(prefix="/executor", tags=["executor"])


def _parse_planner_id(value) -> UUID | None:
    if value in (None, ""):
        return None
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError("Invalid planner_id")


@router.get("/relationships", response_model=list[RelationshipRead])
async def list_relationships(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Planners that named the signed-in email as executor."""
    return portal_service.list_relationships(db, session.email)


@router.get("/status", response_model=ExecutorStatusResponse)
async def get_status(
    planner_id: UUID | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Access state per relationship; locked relationships need verification."""
    relationships = portal_service.list_relationships(db, session.email)
    if planner_id is not None:
        relationships = [r for r in relationships if r.planner_id == planner_id]

    unlocked = any(r.access_state == AccessState.ACTIVE_UNLOCKED for r in relationships)
    locked = any(r.access_state == AccessState.ACTIVE_LOCKED for r in relationships)
    return ExecutorStatusResponse(
        relationships=[RelationshipRead.model_validate(r) for r in relationships],
        unlocked=unlocked,
        message=portal_service.VERIFICATION_REQUIRED if locked and not unlocked else None,
    )


@router.post(
    "/death-certificate",
    response_model=VerificationResponse,
    dependencies=[Depends(require_csrf_header)],
)
async def submit_death_certificate(
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """
    Upload a death certificate to unlock access.

    Accepts multipart/form-data (``file``, optional ``planner_id``) or JSON
    ``{"image": "data:image/jpeg;base64,...", "planner_id": ...}`` from the
    document scanner.
    """
    max_bytes = settings.DEATH_CERTIFICATE_MAX_BYTES
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        if content_length_exceeds_limit(
            request.headers.get("content-length"), max_size_bytes=max_bytes
        ):
            raise FileTooLargeError(verification_service.max_size_message())
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise ValidationError("A death certificate file is required")
        content, size = await read_upload_bounded(upload, max_size_bytes=max_bytes)
        evidence = verification_service.evidence_from_upload(
            content, upload.content_type, upload.filename, size
        )
        planner_id = _parse_planner_id(form.get("planner_id"))
    else:
        # Base64 inflates the payload by a third
        if content_length_exceeds_limit(
            request.headers.get("content-length"),
            max_size_bytes=max_bytes * 4 // 3,
            overhead_bytes=MULTIPART_OVERHEAD_BYTES,
        ):
            raise FileTooLargeError(verification_service.max_size_message())
        try:
            body = DeathCertificateImage.model_validate(await request.json())
        except (json.JSONDecodeError, pydantic.ValidationError):
            raise ValidationError("Upload a file or a captured image")
        evidence = verification_service.evidence_from_data_url(body.image)
        planner_id = body.planner_id

    result = verification_service.submit_death_certificate(
        db,
        session.email,
        evidence,
        planner_id=planner_id,
        actor_id=session.identity_id,
    )
    return VerificationResponse(
        planner_id=result.planner_id,
        executor_id=result.executor_id,
        trigger_id=result.trigger_id,
        document_id=result.document_id,
        triggered_date=result.triggered_date,
        already_verified=result.already_verified,
    )


@router.get("/planners/{planner_id}/documents", response_model=list[PlannerDocumentRead])
async def list_planner_documents(
    planner_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Planner documents, once death has been verified (403 otherwise)."""
    return portal_service.list_planner_documents(db, session.email, planner_id)


@router.get("/notifications", response_model=list[NotificationRead])
async def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return notification_service.list_notifications(db, session.email, unread_only)


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationRead,
    dependencies=[Depends(require_csrf_header)],
)
async def mark_notification_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return notification_service.mark_read(db, session.email, notification_id)
