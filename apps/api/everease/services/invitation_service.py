"""Executor invitations: issuing, lookup and one-time acceptance.

An invitation binds a pending executor row to an unguessable token. Only the
SHA-256 of the token is stored. Acceptance consumes the invitation with a
conditional update (consumed_at IS NULL), so of two concurrent attempts with
the same token exactly one activates the executor; the other sees
ALREADY_ACCEPTED. A consumed row is kept as a tombstone until it expires so
replays keep resolving to ALREADY_ACCEPTED rather than NOT_FOUND.

Expected lookup states are returned as typed outcomes. Errors are raised only
for requests that cannot proceed (email mismatch, bad password, collaborator
failure).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import UUID

import jwt
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from everease.core.config import settings
from everease.core.exceptions import (
    AlreadyProcessedError,
    DependencyError,
    EmailMismatchError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from everease.core.security import (
    create_continuation_token,
    decode_continuation_token,
    generate_invitation_token,
    hash_invitation_token,
)
from everease.db.enums import ActivityType, ExecutorStatus, ProfileRole
from everease.db.models import Executor, ExecutorInvitation, Profile
from everease.services import (
    audit_service,
    executor_service,
    invite_email_service,
    profile_service,
    trigger_service,
)
from everease.services.identity_provider import Identity, IdentityProvider
from everease.utils.datetime_parsing import ensure_utc
from everease.utils.normalization import clean_email

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class InvitationLookupStatus(str, Enum):
    VALID = "valid"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_ACCEPTED = "already_accepted"


class AcceptanceStatus(str, Enum):
    ACCEPTED = "accepted"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_ACCEPTED = "already_accepted"


class AccountBranch(str, Enum):
    EXISTING = "existing"
    NEW = "new"


@dataclass
class InvitationView:
    invitation_id: UUID
    executor_id: UUID
    executor_name: str
    executor_email: str
    relationship: str | None
    planner_id: UUID
    planner_name: str
    expires_at: datetime


@dataclass
class InvitationLookup:
    status: InvitationLookupStatus
    invitation: InvitationView | None = None


@dataclass
class IssuedInvitation:
    executor_id: UUID
    token: str
    expires_at: datetime
    invitation_sent: bool = False


@dataclass
class AcceptanceResult:
    status: AcceptanceStatus
    executor_id: UUID | None = None
    planner_id: UUID | None = None
    identity: Identity | None = None


_LOOKUP_TO_ACCEPTANCE = {
    InvitationLookupStatus.NOT_FOUND: AcceptanceStatus.NOT_FOUND,
    InvitationLookupStatus.EXPIRED: AcceptanceStatus.EXPIRED,
    InvitationLookupStatus.ALREADY_ACCEPTED: AcceptanceStatus.ALREADY_ACCEPTED,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_expired(invitation: ExecutorInvitation, now: datetime) -> bool:
    return ensure_utc(invitation.expires_at) < now


# =============================================================================
# Issuing
# =============================================================================

def _add_invitation(db: Session, executor_id: UUID) -> tuple[str, ExecutorInvitation]:
    """Add a fresh invitation row; returns the raw token (never persisted)."""
    token = generate_invitation_token()
    invitation = ExecutorInvitation(
        executor_id=executor_id,
        token_hash=hash_invitation_token(token),
        expires_at=_now() + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
    )
    db.add(invitation)
    db.flush()
    return token, invitation


def _planner_name(db: Session, planner_id: UUID) -> str | None:
    profile = db.get(Profile, planner_id)
    return profile.display_name if profile else None


def create_invitation_records(
    db: Session,
    planner_id: UUID,
    executor_name: str,
    executor_email: str,
    relationship: str | None = None,
) -> IssuedInvitation:
    """
    Write the executor, its untriggered death trigger and the invitation.

    All three rows commit together or not at all.

    Raises:
        ValidationError / DuplicateExecutorError: bad or duplicate executor
        DependencyError: the store failed
    """
    try:
        executor = executor_service.create_executor(
            db, planner_id, executor_name, executor_email, relationship
        )
        trigger_service.create_trigger(db, planner_id, executor.id)
        token, invitation = _add_invitation(db, executor.id)
        # Read before commit; expired attributes would reload afterwards
        issued = IssuedInvitation(
            executor_id=executor.id,
            token=token,
            expires_at=ensure_utc(invitation.expires_at),
        )
        db.commit()
    except ValidationError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to issue invitation for planner %s", planner_id)
        raise DependencyError("Could not create the invitation. Please try again.") from exc
    return issued


async def issue_invitation(
    db: Session,
    planner_id: UUID,
    executor_name: str,
    executor_email: str,
    relationship: str | None = None,
) -> IssuedInvitation:
    """
    Invite an executor: persist the records, email the link, audit.

    Email failure is non-fatal; the invitation stays usable and
    ``invitation_sent`` is False.
    """
    issued = create_invitation_records(
        db, planner_id, executor_name, executor_email, relationship
    )
    executor = db.get(Executor, issued.executor_id)

    result = await invite_email_service.send_invite_email(
        executor_email=executor.email,
        executor_name=executor.name,
        token=issued.token,
        expires_at=issued.expires_at,
        planner_name=_planner_name(db, planner_id),
        idempotency_key=f"executor-invite/{executor.id}/{issued.expires_at.timestamp():.0f}",
    )
    issued.invitation_sent = bool(result.get("success"))

    audit_service.record(
        db,
        user_id=planner_id,
        action_type=ActivityType.EXECUTOR_INVITED,
        details=f"Invited {executor.name} ({executor.email}) as executor",
        actor_id=planner_id,
    )
    return issued


async def resend_invitation(db: Session, planner_id: UUID, executor_id: UUID) -> IssuedInvitation:
    """
    Replace a pending executor's invitation with a fresh token and email it.

    Raises:
        ExecutorNotFoundError: not this planner's executor
        AlreadyProcessedError: executor is no longer pending
        ValidationError: resent too recently
    """
    executor = executor_service.get_executor(db, planner_id, executor_id)
    if executor.status != ExecutorStatus.PENDING.value:
        raise AlreadyProcessedError("Only pending executors can be re-invited")

    latest = (
        db.query(ExecutorInvitation)
        .filter(ExecutorInvitation.executor_id == executor.id)
        .order_by(ExecutorInvitation.created_at.desc())
        .first()
    )
    if latest:
        cooldown_end = ensure_utc(latest.created_at) + timedelta(
            minutes=settings.INVITATION_RESEND_COOLDOWN_MINUTES
        )
        now = _now()
        if now < cooldown_end:
            remaining = int((cooldown_end - now).total_seconds())
            raise ValidationError(f"Wait {remaining} seconds before resending")

    db.execute(
        delete(ExecutorInvitation)
        .where(ExecutorInvitation.executor_id == executor.id)
        .execution_options(synchronize_session=False)
    )
    token, invitation = _add_invitation(db, executor.id)
    issued = IssuedInvitation(
        executor_id=executor.id,
        token=token,
        expires_at=ensure_utc(invitation.expires_at),
    )
    db.commit()

    result = await invite_email_service.send_invite_email(
        executor_email=executor.email,
        executor_name=executor.name,
        token=token,
        expires_at=issued.expires_at,
        planner_name=_planner_name(db, planner_id),
        idempotency_key=f"executor-invite/{executor.id}/{issued.expires_at.timestamp():.0f}",
    )
    issued.invitation_sent = bool(result.get("success"))

    audit_service.record(
        db,
        user_id=planner_id,
        action_type=ActivityType.INVITATION_RESENT,
        details=f"Resent executor invitation to {executor.name}",
        actor_id=planner_id,
    )
    return issued


# =============================================================================
# Lookup
# =============================================================================

def _load(db: Session, token: str | None) -> ExecutorInvitation | None:
    if not token:
        return None
    return (
        db.query(ExecutorInvitation)
        .options(joinedload(ExecutorInvitation.executor))
        .filter(ExecutorInvitation.token_hash == hash_invitation_token(token))
        .first()
    )


def _view(db: Session, invitation: ExecutorInvitation) -> InvitationView:
    executor = invitation.executor
    return InvitationView(
        invitation_id=invitation.id,
        executor_id=executor.id,
        executor_name=executor.name,
        executor_email=executor.email,
        relationship=executor.relationship,
        planner_id=executor.planner_id,
        planner_name=profile_service.planner_display_name(db, executor.planner_id),
        expires_at=ensure_utc(invitation.expires_at),
    )


def verify_invitation(db: Session, token: str | None, now: datetime | None = None) -> InvitationLookup:
    """
    Resolve a token to its invitation state.

    Checked in order:

    NOT_FOUND: unknown token.
    EXPIRED: now is past expires_at (consumed or not); the caller should
        discard it.
    ALREADY_ACCEPTED: consumed, or the executor is already active.
    NOT_FOUND: the relationship was revoked.
    """
    now = now or _now()
    invitation = _load(db, token)
    if not invitation:
        return InvitationLookup(InvitationLookupStatus.NOT_FOUND)

    executor = invitation.executor
    if _is_expired(invitation, now):
        return InvitationLookup(InvitationLookupStatus.EXPIRED)
    if invitation.consumed_at is not None:
        return InvitationLookup(InvitationLookupStatus.ALREADY_ACCEPTED, _view(db, invitation))
    if executor.status == ExecutorStatus.ACTIVE.value:
        return InvitationLookup(InvitationLookupStatus.ALREADY_ACCEPTED, _view(db, invitation))
    if executor.status != ExecutorStatus.PENDING.value:
        return InvitationLookup(InvitationLookupStatus.NOT_FOUND)
    return InvitationLookup(InvitationLookupStatus.VALID, _view(db, invitation))


def discard_invitation(db: Session, token: str) -> bool:
    """Delete an unconsumed invitation (expired or abandoned link)."""
    result = db.execute(
        delete(ExecutorInvitation)
        .where(
            ExecutorInvitation.token_hash == hash_invitation_token(token),
            ExecutorInvitation.consumed_at.is_(None),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount > 0


def purge_expired_invitations(db: Session, now: datetime | None = None) -> int:
    """Delete every invitation past its expiry, consumed tombstones included."""
    now = now or _now()
    result = db.execute(
        delete(ExecutorInvitation)
        .where(ExecutorInvitation.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info("Purged %d expired executor invitations", result.rowcount)
    return result.rowcount


async def resolve_account_branch(identity_provider: IdentityProvider, email: str) -> AccountBranch:
    """Existing-user branch when an identity already uses the invited email."""
    identity = await identity_provider.lookup_identity_by_email(email)
    return AccountBranch.EXISTING if identity else AccountBranch.NEW


# =============================================================================
# Acceptance
# =============================================================================

def _consume_and_activate(db: Session, view: InvitationView, profile: Profile) -> bool:
    """
    Consume the invitation and activate the executor in one transaction.

    Returns False (nothing written) when a concurrent request won the race.
    """
    consumed = db.execute(
        update(ExecutorInvitation)
        .where(
            ExecutorInvitation.id == view.invitation_id,
            ExecutorInvitation.consumed_at.is_(None),
        )
        .values(consumed_at=_now())
        .execution_options(synchronize_session=False)
    )
    if consumed.rowcount != 1:
        db.rollback()
        return False

    if not executor_service.activate_pending(db, view.executor_id):
        db.rollback()
        return False

    profile_service.ensure_executor_role(db, profile)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to commit acceptance of invitation %s", view.invitation_id)
        raise DependencyError("Could not accept the invitation. Please try again.") from exc
    return True


def _lost_race(db: Session, token: str) -> AcceptanceResult:
    lookup = verify_invitation(db, token)
    if lookup.status == InvitationLookupStatus.VALID:
        # Invitation untouched but executor no longer pending
        return AcceptanceResult(AcceptanceStatus.NOT_FOUND)
    return AcceptanceResult(_LOOKUP_TO_ACCEPTANCE[lookup.status])


def _check_email(identity_email: str | None, view: InvitationView) -> None:
    if clean_email(identity_email) != view.executor_email:
        raise EmailMismatchError()


def accept_as_existing_user(db: Session, token: str, identity: Identity) -> AcceptanceResult:
    """
    Accept with an already signed-in identity.

    Raises:
        EmailMismatchError: identity email differs; invitation left untouched
    """
    lookup = verify_invitation(db, token)
    if lookup.status != InvitationLookupStatus.VALID:
        return AcceptanceResult(
            _LOOKUP_TO_ACCEPTANCE[lookup.status],
            executor_id=lookup.invitation.executor_id if lookup.invitation else None,
            planner_id=lookup.invitation.planner_id if lookup.invitation else None,
        )
    view = lookup.invitation
    _check_email(identity.email, view)

    profile = profile_service.get_or_create_profile(
        db, identity.id, identity.email, role=ProfileRole.EXECUTOR
    )
    if not _consume_and_activate(db, view, profile):
        return _lost_race(db, token)

    logger.info("Executor %s accepted invitation (existing user)", view.executor_id)
    audit_service.record(
        db,
        user_id=view.planner_id,
        action_type=ActivityType.EXECUTOR_ACCEPTED,
        details=f"{view.executor_name} accepted the executor invitation (existing user)",
        actor_id=identity.id,
    )
    return AcceptanceResult(
        AcceptanceStatus.ACCEPTED,
        executor_id=view.executor_id,
        planner_id=view.planner_id,
        identity=identity,
    )


def validate_new_password(password: str, password_confirmation: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != password_confirmation:
        raise ValidationError("Passwords do not match")


async def accept_as_new_user(
    db: Session,
    identity_provider: IdentityProvider,
    token: str,
    password: str,
    password_confirmation: str,
) -> AcceptanceResult:
    """
    Register the invited email and accept in one step.

    Raises:
        ValidationError: password too short or confirmation differs
        IdentityAlreadyExistsError: the email already has an account
        DependencyError: identity provider failed
    """
    lookup = verify_invitation(db, token)
    if lookup.status != InvitationLookupStatus.VALID:
        return AcceptanceResult(_LOOKUP_TO_ACCEPTANCE[lookup.status])
    view = lookup.invitation
    validate_new_password(password, password_confirmation)

    identity = await identity_provider.sign_up(
        view.executor_email,
        password,
        {"role": ProfileRole.EXECUTOR.value, "name": view.executor_name},
    )
    profile = profile_service.get_or_create_profile(
        db,
        identity.id,
        identity.email or view.executor_email,
        role=ProfileRole.EXECUTOR,
        display_name=view.executor_name,
    )
    if not _consume_and_activate(db, view, profile):
        return _lost_race(db, token)

    logger.info("Executor %s accepted invitation (new user)", view.executor_id)
    audit_service.record(
        db,
        user_id=view.planner_id,
        action_type=ActivityType.EXECUTOR_ACCEPTED,
        details=f"{view.executor_name} accepted the executor invitation (new user)",
        actor_id=identity.id,
    )
    return AcceptanceResult(
        AcceptanceStatus.ACCEPTED,
        executor_id=view.executor_id,
        planner_id=view.planner_id,
        identity=identity,
    )


# =============================================================================
# Deferred acceptance (through the sign-in redirect)
# =============================================================================

def create_continuation(db: Session, token: str) -> str:
    """
    Issue a signed continuation state for a still-valid invitation.

    Raises:
        NotFoundError / ExpiredError / AlreadyProcessedError
    """
    lookup = verify_invitation(db, token)
    if lookup.status == InvitationLookupStatus.NOT_FOUND:
        raise NotFoundError("Invitation not found")
    if lookup.status == InvitationLookupStatus.EXPIRED:
        discard_invitation(db, token)
        raise ExpiredError()
    if lookup.status == InvitationLookupStatus.ALREADY_ACCEPTED:
        raise AlreadyProcessedError("This invitation has already been accepted")
    return create_continuation_token(token)


def complete_deferred_acceptance(db: Session, continuation: str, identity: Identity) -> AcceptanceResult:
    """
    Finish an acceptance that was interrupted by sign-in.

    At most one attempt per continuation: the client drops it whatever the
    outcome. On email mismatch the invitation itself is kept unless
    DISCARD_INVITATION_ON_DEFERRED_MISMATCH is set.

    Raises:
        EmailMismatchError: signed in with a different account
    """
    try:
        token = decode_continuation_token(continuation)
    except jwt.InvalidTokenError:
        logger.info("Ignoring invalid or expired invitation continuation")
        return AcceptanceResult(AcceptanceStatus.NOT_FOUND)

    try:
        result = accept_as_existing_user(db, token, identity)
    except EmailMismatchError:
        if settings.DISCARD_INVITATION_ON_DEFERRED_MISMATCH:
            discard_invitation(db, token)
            logger.info("Discarded invitation after deferred email mismatch")
        raise

    if result.status == AcceptanceStatus.EXPIRED:
        discard_invitation(db, token)
    return result
