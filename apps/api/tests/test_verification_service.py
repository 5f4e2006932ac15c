"""Tests for death certificate verification."""
import base64
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from everease.core.exceptions import DependencyError, ValidationError
from everease.db.enums import ActivityType
from everease.db.models import ActivityLog, Document, Executor, TriggerEvent
from everease.services import invitation_service, storage_service, trigger_service, verification_service
from everease.services.executor_service import ExecutorNotFoundError
from everease.services.verification_service import (
    AmbiguousRelationshipError,
    DeathCertificateEvidence,
    FileTooLargeError,
    Rejected,
    VerificationRejectedError,
)

PDF_BYTES = b"%PDF-1.4 death certificate"


def _pdf() -> DeathCertificateEvidence:
    return verification_service.evidence_from_upload(PDF_BYTES, "application/pdf", "certificate.pdf")


def _accept(db, identity_provider, planner_id, email="erin@example.com") -> Executor:
    issued = invitation_service.create_invitation_records(db, planner_id, "Erin", email)
    identity = identity_provider.accounts.get(email, (None,))[0] or identity_provider.add_account(email)
    invitation_service.accept_as_existing_user(db, issued.token, identity)
    return db.get(Executor, issued.executor_id)


@pytest.fixture
def active_executor(db, planner, identity_provider) -> Executor:
    return _accept(db, identity_provider, planner.id)


class RejectingAuthority:
    name = "manual"

    def attest(self, evidence):
        return Rejected(authority=self.name, reason="Certificate is illegible")


# =============================================================================
# Evidence
# =============================================================================

def test_evidence_from_upload_normalizes_content_type():
    evidence = verification_service.evidence_from_upload(b"\xff\xd8jpeg", "IMAGE/JPG; charset=binary")
    assert evidence.content_type == "image/jpeg"
    assert evidence.extension == "jpg"


@pytest.mark.parametrize("content_type", ["text/plain", "application/zip", None, ""])
def test_evidence_rejects_unsupported_types(content_type):
    with pytest.raises(ValidationError):
        verification_service.evidence_from_upload(b"data", content_type)


def test_evidence_requires_content():
    with pytest.raises(ValidationError):
        verification_service.evidence_from_upload(b"", "application/pdf")
    with pytest.raises(ValidationError):
        verification_service.evidence_from_upload(None, "application/pdf")


def test_oversized_upload_rejected_by_reported_size():
    """The bounded reader hands over None plus the size for oversized files."""
    with pytest.raises(FileTooLargeError) as exc_info:
        verification_service.evidence_from_upload(None, "application/pdf", size=10 * 1024 * 1024 + 1)
    assert exc_info.value.message == "File must be less than 10MB"


def test_upload_at_limit_is_accepted():
    evidence = verification_service.evidence_from_upload(b"x" * (10 * 1024 * 1024), "application/pdf")
    assert evidence.size == 10 * 1024 * 1024


def test_evidence_from_data_url():
    payload = base64.b64encode(b"\x89PNG captured").decode()
    evidence = verification_service.evidence_from_data_url(f"data:image/png;base64,{payload}")

    assert evidence.content == b"\x89PNG captured"
    assert evidence.content_type == "image/png"
    assert evidence.filename == "capture"


@pytest.mark.parametrize(
    "data_url",
    [None, "", "not a data url", "data:image/png;base64,@@@not-base64@@@", "data:text/html;base64,PGI+"],
)
def test_invalid_data_urls_rejected(data_url):
    with pytest.raises(ValidationError):
        verification_service.evidence_from_data_url(data_url)


def test_oversized_data_url_rejected_before_decoding(monkeypatch):
    from everease.core.config import settings

    monkeypatch.setattr(settings, "DEATH_CERTIFICATE_MAX_BYTES", 30)
    payload = base64.b64encode(b"x" * 64).decode()

    with pytest.raises(FileTooLargeError):
        verification_service.evidence_from_data_url(f"data:image/png;base64,{payload}")


# =============================================================================
# Workflow
# =============================================================================

def test_submit_unlocks_access(db, planner, active_executor, local_storage):
    result = verification_service.submit_death_certificate(
        db, "erin@example.com", _pdf(), actor_id=uuid.uuid4()
    )

    assert result.planner_id == planner.id
    assert result.executor_id == active_executor.id
    assert result.already_verified is False
    assert result.triggered_date is not None

    path = f"death-certificates/{planner.id}/{active_executor.id}/death-certificate.pdf"
    assert (local_storage / path).read_bytes() == PDF_BYTES

    document = db.get(Document, result.document_id)
    assert document.user_id == planner.id
    assert document.file_path == path
    assert document.name == "Death Certificate"
    assert document.file_size == len(PDF_BYTES)
    assert document.content_type == "application/pdf"

    trigger = db.get(TriggerEvent, result.trigger_id)
    assert trigger.triggered is True
    assert trigger.verification_details == verification_service.VERIFICATION_NOTE

    assert trigger_service.can_access_planner_data(db, "erin@example.com", planner.id) is True
    entry = db.query(ActivityLog).filter(ActivityLog.action_type == ActivityType.DEATH_VERIFIED.value).one()
    assert entry.user_id == planner.id


def test_retry_is_idempotent(db, planner, active_executor):
    first = verification_service.submit_death_certificate(db, "erin@example.com", _pdf())
    second = verification_service.submit_death_certificate(
        db,
        "erin@example.com",
        verification_service.evidence_from_upload(b"%PDF-1.4 rescanned", "application/pdf"),
    )

    assert second.already_verified is True
    assert second.document_id == first.document_id
    assert second.trigger_id == first.trigger_id
    assert second.triggered_date == first.triggered_date
    assert db.query(Document).count() == 1
    assert db.get(Document, first.document_id).file_size == len(b"%PDF-1.4 rescanned")
    assert db.query(ActivityLog).filter(
        ActivityLog.action_type == ActivityType.DEATH_VERIFIED.value
    ).count() == 1


def test_creates_missing_trigger_row(db, planner, active_executor):
    db.query(TriggerEvent).delete()
    db.commit()

    result = verification_service.submit_death_certificate(db, "erin@example.com", _pdf())

    assert db.query(TriggerEvent).count() == 1
    assert db.get(TriggerEvent, result.trigger_id).triggered is True


def test_missing_evidence_rejected(db, active_executor):
    with pytest.raises(ValidationError):
        verification_service.submit_death_certificate(db, "erin@example.com", None)


def test_oversized_evidence_rejected_before_storage(db, planner, active_executor, local_storage):
    from everease.core.config import settings

    evidence = DeathCertificateEvidence(
        content=b"x" * (settings.DEATH_CERTIFICATE_MAX_BYTES + 1),
        content_type="application/pdf",
    )

    with pytest.raises(FileTooLargeError):
        verification_service.submit_death_certificate(db, "erin@example.com", evidence)

    assert not local_storage.exists()
    assert trigger_service.get_trigger_status(db, planner.id, active_executor.id).triggered is False


def test_pending_executor_cannot_verify(db, planner, local_storage):
    issued = invitation_service.create_invitation_records(db, planner.id, "Erin", "erin@example.com")

    with pytest.raises(ExecutorNotFoundError):
        verification_service.submit_death_certificate(db, "erin@example.com", _pdf())

    assert trigger_service.get_trigger_status(db, planner.id, issued.executor_id).triggered is False
    assert not local_storage.exists()


def test_revoked_executor_cannot_verify(db, planner, active_executor):
    from everease.services import executor_service

    executor_service.revoke_executor(db, planner.id, active_executor.id)

    with pytest.raises(ExecutorNotFoundError):
        verification_service.submit_death_certificate(db, "erin@example.com", _pdf())
    assert trigger_service.get_trigger_status(db, planner.id, active_executor.id).triggered is False


def test_stranger_cannot_verify(db, active_executor):
    with pytest.raises(ExecutorNotFoundError):
        verification_service.submit_death_certificate(db, "mallory@example.com", _pdf())


def test_multiple_planners_require_choice(db, planner, identity_provider, profile_factory):
    other = profile_factory("other@example.com", display_name="Olive Other")
    _accept(db, identity_provider, planner.id)
    other_executor = _accept(db, identity_provider, other.id)

    with pytest.raises(AmbiguousRelationshipError):
        verification_service.submit_death_certificate(db, "erin@example.com", _pdf())

    result = verification_service.submit_death_certificate(
        db, "erin@example.com", _pdf(), planner_id=other.id
    )
    assert result.executor_id == other_executor.id
    assert trigger_service.can_access_planner_data(db, "erin@example.com", other.id) is True
    assert trigger_service.can_access_planner_data(db, "erin@example.com", planner.id) is False


def test_rejected_attestation_leaves_trigger_untouched(db, planner, active_executor, local_storage):
    with pytest.raises(VerificationRejectedError) as exc_info:
        verification_service.submit_death_certificate(
            db, "erin@example.com", _pdf(), authority=RejectingAuthority()
        )

    assert exc_info.value.message == "Certificate is illegible"
    assert trigger_service.get_trigger_status(db, planner.id, active_executor.id).triggered is False
    assert not local_storage.exists()


def test_storage_failure_leaves_trigger_untouched(db, planner, active_executor, monkeypatch):
    def failing_upload(path, data, content_type=None):
        raise DependencyError("Blob storage upload failed")

    monkeypatch.setattr(storage_service, "upload", failing_upload)

    with pytest.raises(DependencyError):
        verification_service.submit_death_certificate(db, "erin@example.com", _pdf())

    assert trigger_service.get_trigger_status(db, planner.id, active_executor.id).triggered is False
    assert db.query(Document).count() == 0


def test_database_failure_removes_orphan_blob(db, planner, active_executor, local_storage, monkeypatch):
    def failing_set_triggered(db, trigger_id, details):
        raise OperationalError("UPDATE trigger_events", {}, Exception("disk I/O error"))

    monkeypatch.setattr(trigger_service, "set_triggered", failing_set_triggered)

    with pytest.raises(DependencyError):
        verification_service.submit_death_certificate(db, "erin@example.com", _pdf())

    path = f"death-certificates/{planner.id}/{active_executor.id}/death-certificate.pdf"
    assert not (local_storage / path).exists()
    assert db.query(Document).count() == 0
    assert trigger_service.get_trigger_status(db, planner.id, active_executor.id).triggered is False


def test_database_failure_keeps_blob_of_existing_document(db, planner, active_executor, local_storage, monkeypatch):
    verification_service.submit_death_certificate(db, "erin@example.com", _pdf())

    def failing_set_triggered(db, trigger_id, details):
        raise OperationalError("UPDATE trigger_events", {}, Exception("disk I/O error"))

    monkeypatch.setattr(trigger_service, "set_triggered", failing_set_triggered)

    with pytest.raises(DependencyError):
        verification_service.submit_death_certificate(db, "erin@example.com", _pdf())

    path = f"death-certificates/{planner.id}/{active_executor.id}/death-certificate.pdf"
    assert (local_storage / path).exists()


def test_automatic_authority_is_default():
    authority = verification_service.get_verification_authority()
    assert authority.name == "automatic"
    assert isinstance(authority.attest(_pdf()), verification_service.Attested)


def test_unknown_authority_is_configuration_error(monkeypatch):
    from everease.core.config import settings
    from everease.core.exceptions import ConfigurationError

    monkeypatch.setattr(settings, "VERIFICATION_AUTHORITY", "notary")
    with pytest.raises(ConfigurationError):
        verification_service.get_verification_authority()
