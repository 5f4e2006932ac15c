"""Death verification: certificate upload that unlocks executor access.

Evidence is validated before any storage or database call. The blob path is
derived from (planner, executor) so a retried upload overwrites instead of
duplicating. The document upsert and the trigger latch share one commit; if
that commit fails the trigger stays untriggered and a blob no document points
at is deleted again.
"""

import base64
import binascii
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from everease.core.config import settings
from everease.core.exceptions import (
    ConfigurationError,
    DependencyError,
    EverEaseError,
    ValidationError,
)
from everease.db.enums import ActivityType, DocumentCategory, ExecutorStatus, TriggerType
from everease.db.models import Document, Executor
from everease.services import audit_service, executor_service, storage_service, trigger_service
from everease.services.executor_service import ExecutorNotFoundError
from everease.utils.datetime_parsing import ensure_utc

logger = logging.getLogger(__name__)

VERIFICATION_NOTE = "Death certificate uploaded and verified"
DOCUMENT_NAME = "Death Certificate"
DOCUMENT_DESCRIPTION = "Official death certificate for verification"

CONTENT_TYPE_EXTENSIONS = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
DATA_URL_PATTERN = re.compile(r"^data:(?P<type>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.S)


class FileTooLargeError(ValidationError):
    pass


class VerificationRejectedError(EverEaseError):
    status_code = 422
    default_message = "The death certificate could not be verified"


class AmbiguousRelationshipError(ValidationError):
    default_message = "You are an executor for more than one planner. Choose which planner to verify."


# =============================================================================
# Evidence
# =============================================================================

@dataclass
class DeathCertificateEvidence:
    content: bytes
    content_type: str
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return CONTENT_TYPE_EXTENSIONS[self.content_type]


def max_size_message() -> str:
    max_mb = settings.DEATH_CERTIFICATE_MAX_BYTES / (1024 * 1024)
    return f"File must be less than {max_mb:.0f}MB"


def check_size(size: int) -> None:
    if size > settings.DEATH_CERTIFICATE_MAX_BYTES:
        raise FileTooLargeError(max_size_message())


def _normalize_content_type(content_type: str | None) -> str:
    value = (content_type or "").split(";", 1)[0].strip().lower()
    if value == "image/jpg":
        value = "image/jpeg"
    if value not in CONTENT_TYPE_EXTENSIONS:
        raise ValidationError("Upload a PDF or an image (JPEG, PNG or WebP)")
    return value


def evidence_from_upload(
    content: bytes | None,
    content_type: str | None,
    filename: str | None = None,
    size: int | None = None,
) -> DeathCertificateEvidence:
    """
    Evidence from an uploaded file.

    content is None when the upload was too large to read.
    """
    if size is not None:
        check_size(size)
    if not content:
        raise ValidationError("A death certificate file is required")
    check_size(len(content))
    return DeathCertificateEvidence(
        content=content,
        content_type=_normalize_content_type(content_type),
        filename=filename,
    )


def evidence_from_data_url(data_url: str | None) -> DeathCertificateEvidence:
    """Evidence from a captured image (``data:<type>;base64,<payload>``)."""
    if not data_url:
        raise ValidationError("A death certificate image is required")
    match = DATA_URL_PATTERN.match(data_url.strip())
    if not match:
        raise ValidationError("Captured image is not a valid data URL")

    payload = match.group("data")
    # Reject on the encoded length before decoding
    check_size(len(payload) * 3 // 4)
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Captured image is not valid base64") from exc
    return evidence_from_upload(content, match.group("type"), filename="capture")


# =============================================================================
# Attestation
# =============================================================================

@dataclass
class Attested:
    authority: str
    note: str | None = None


@dataclass
class Rejected:
    authority: str
    reason: str


class VerificationAuthority(Protocol):
    name: str

    def attest(self, evidence: DeathCertificateEvidence) -> Attested | Rejected: ...


class AutomaticVerificationAuthority:
    """Accepts every certificate. No human or third-party review happens."""

    name = "automatic"

    def attest(self, evidence: DeathCertificateEvidence) -> Attested | Rejected:
        logger.warning(
            "Death certificate auto-approved without review (%s, %d bytes)",
            evidence.content_type,
            evidence.size,
        )
        return Attested(authority=self.name, note="Automatic verification")


def get_verification_authority() -> VerificationAuthority:
    if settings.VERIFICATION_AUTHORITY == "automatic":
        return AutomaticVerificationAuthority()
    raise ConfigurationError(
        f"Unknown VERIFICATION_AUTHORITY '{settings.VERIFICATION_AUTHORITY}'"
    )


# =============================================================================
# Workflow
# =============================================================================

@dataclass
class VerificationResult:
    planner_id: UUID
    executor_id: UUID
    trigger_id: UUID
    document_id: UUID
    triggered_date: datetime | None
    already_verified: bool = False


def certificate_path(planner_id: UUID, executor_id: UUID, extension: str) -> str:
    return f"death-certificates/{planner_id}/{executor_id}/death-certificate.{extension}"


def resolve_active_relationship(
    db: Session,
    identity_email: str,
    planner_id: UUID | None = None,
) -> Executor:
    """
    The caller's active executor relationship.

    Raises:
        ExecutorNotFoundError: no active relationship (pending, revoked or none)
        AmbiguousRelationshipError: several planners and none chosen
    """
    active = executor_service.list_relationships_for_email(
        db, identity_email, status=ExecutorStatus.ACTIVE
    )
    if planner_id is not None:
        active = [executor for executor in active if executor.planner_id == planner_id]
    if not active:
        raise ExecutorNotFoundError("No active executor relationship found")
    if len(active) > 1:
        raise AmbiguousRelationshipError()
    return active[0]


def _upsert_document(
    db: Session, planner_id: UUID, path: str, evidence: DeathCertificateEvidence
) -> Document:
    document = db.query(Document).filter(Document.file_path == path).first()
    if document is None:
        document = Document(
            user_id=planner_id,
            name=DOCUMENT_NAME,
            description=DOCUMENT_DESCRIPTION,
            category=DocumentCategory.LEGAL.value,
            file_path=path,
        )
        db.add(document)
    document.content_type = evidence.content_type
    document.file_size = evidence.size
    document.checksum_sha256 = hashlib.sha256(evidence.content).hexdigest()
    db.flush()
    return document


def _cleanup_orphan_blob(db: Session, path: str) -> None:
    try:
        referenced = db.query(Document.id).filter(Document.file_path == path).first()
    except SQLAlchemyError:
        logger.warning("Could not check references for %s; leaving blob", path, exc_info=True)
        return
    if referenced:
        return
    try:
        storage_service.delete(path)
    except DependencyError:
        logger.warning("Failed to delete orphaned blob %s", path, exc_info=True)


def submit_death_certificate(
    db: Session,
    identity_email: str,
    evidence: DeathCertificateEvidence | None,
    planner_id: UUID | None = None,
    actor_id: UUID | None = None,
    authority: VerificationAuthority | None = None,
) -> VerificationResult:
    """
    Verify a death and unlock the executor's access.

    Raises:
        ValidationError: missing/oversized/unsupported evidence
        ExecutorNotFoundError: caller has no active relationship
        VerificationRejectedError: attestation refused; trigger untouched
        DependencyError: storage or database failure; trigger untouched
    """
    if evidence is None:
        raise ValidationError("A death certificate file is required")
    check_size(evidence.size)

    executor = resolve_active_relationship(db, identity_email, planner_id)
    planner_id, executor_id = executor.planner_id, executor.id

    attestation = (authority or get_verification_authority()).attest(evidence)
    if isinstance(attestation, Rejected):
        logger.info("Death certificate rejected by %s for executor %s", attestation.authority, executor_id)
        raise VerificationRejectedError(attestation.reason)

    path = certificate_path(planner_id, executor_id, evidence.extension)
    storage_service.upload(path, evidence.content, evidence.content_type)

    try:
        document = _upsert_document(db, planner_id, path, evidence)
        trigger = trigger_service.get_or_create_trigger(db, planner_id, executor_id, TriggerType.DEATH)
        was_triggered = bool(trigger.triggered)
        trigger = trigger_service.set_triggered(db, trigger.id, VERIFICATION_NOTE)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Death verification failed for executor %s", executor_id)
        _cleanup_orphan_blob(db, path)
        raise DependencyError("Could not record the death certificate. Please try again.") from exc

    result = VerificationResult(
        planner_id=planner_id,
        executor_id=executor_id,
        trigger_id=trigger.id,
        document_id=document.id,
        triggered_date=ensure_utc(trigger.triggered_date),
        already_verified=was_triggered,
    )
    if not was_triggered:
        logger.info("Death verified for planner %s by executor %s", planner_id, executor_id)
        audit_service.record(
            db,
            user_id=planner_id,
            action_type=ActivityType.DEATH_VERIFIED,
            details=f"Death certificate uploaded and verified by executor {executor.name}",
            actor_id=actor_id,
        )
    return result
