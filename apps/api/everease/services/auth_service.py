"""Sign-in/sign-up orchestration on top of the identity provider.

Creates profiles lazily on first sign-in, issues the API session token and
completes a deferred invitation acceptance when a continuation is supplied.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from everease.core.exceptions import EverEaseError, ValidationError
from everease.core.security import create_session_token
from everease.db.enums import ProfileRole
from everease.db.models import Profile
from everease.services import invitation_service, profile_service
from everease.services.identity_provider import Identity, IdentityProvider
from everease.services.invitation_service import AcceptanceResult

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Session, Identity, Profile], None]

_identity_listeners: list[IdentityListener] = []


def add_identity_listener(callback: IdentityListener) -> None:
    """Register a callback run after every successful sign-in or sign-up."""
    if callback not in _identity_listeners:
        _identity_listeners.append(callback)


def remove_identity_listener(callback: IdentityListener) -> None:
    if callback in _identity_listeners:
        _identity_listeners.remove(callback)


def _notify_identity_change(db: Session, identity: Identity, profile: Profile) -> None:
    for callback in list(_identity_listeners):
        try:
            callback(db, identity, profile)
        except Exception:
            logger.exception("Identity listener %r failed", callback)


@dataclass
class SignInResult:
    identity: Identity
    profile: Profile
    session_token: str
    acceptance: AcceptanceResult | None = None
    acceptance_error: str | None = None


def issue_session(identity: Identity, profile: Profile) -> str:
    return create_session_token(
        identity.id, profile.email, profile.role, access_token=identity.access_token
    )


def _complete_continuation(
    db: Session, continuation: str, identity: Identity
) -> tuple[AcceptanceResult | None, str | None]:
    """Run the deferred acceptance; failures never fail the sign-in itself."""
    try:
        return invitation_service.complete_deferred_acceptance(db, continuation, identity), None
    except EverEaseError as e:
        logger.info("Deferred invitation acceptance failed: %s", type(e).__name__)
        return None, e.message


async def sign_in(
    db: Session,
    identity_provider: IdentityProvider,
    email: str,
    password: str,
    continuation: str | None = None,
) -> SignInResult:
    """
    Authenticate with the identity provider and open an API session.

    Raises:
        InvalidCredentialsError: wrong email or password
        DependencyError / ConfigurationError: identity provider unavailable
    """
    identity = await identity_provider.sign_in(email, password)
    profile = profile_service.get_or_create_profile(
        db, identity.id, identity.email, role=ProfileRole.PLANNER
    )

    acceptance, acceptance_error = None, None
    if continuation:
        acceptance, acceptance_error = _complete_continuation(db, continuation, identity)
        db.refresh(profile)

    _notify_identity_change(db, identity, profile)
    return SignInResult(
        identity=identity,
        profile=profile,
        session_token=issue_session(identity, profile),
        acceptance=acceptance,
        acceptance_error=acceptance_error,
    )


async def sign_up(
    db: Session,
    identity_provider: IdentityProvider,
    email: str,
    password: str,
    display_name: str | None = None,
) -> SignInResult:
    """Register a planner account."""
    invitation_service.validate_new_password(password, password)
    if not email:
        raise ValidationError("Email is required")

    identity = await identity_provider.sign_up(
        email, password, {"role": ProfileRole.PLANNER.value, "name": display_name}
    )
    profile = profile_service.get_or_create_profile(
        db, identity.id, identity.email or email, role=ProfileRole.PLANNER, display_name=display_name
    )
    _notify_identity_change(db, identity, profile)
    return SignInResult(identity=identity, profile=profile, session_token=issue_session(identity, profile))


def session_for_acceptance(db: Session, result: AcceptanceResult) -> str | None:
    """Session token for the identity that just accepted, if any."""
    if result.identity is None:
        return None
    profile = profile_service.get_profile(db, result.identity.id)
    if profile is None:
        return None
    _notify_identity_change(db, result.identity, profile)
    return issue_session(result.identity, profile)
