"""Tests for sign-in/sign-up orchestration."""
import pytest

from everease.core.exceptions import ValidationError
from everease.core.security import decode_session_token
from everease.db.enums import ExecutorStatus, ProfileRole
from everease.db.models import Executor, Profile
from everease.services import auth_service, invitation_service
from everease.services.identity_provider import InvalidCredentialsError
from everease.services.invitation_service import AcceptanceStatus


@pytest.mark.asyncio
async def test_first_sign_in_creates_planner_profile(db, identity_provider):
    identity = identity_provider.add_account("new@example.com", "secret-pw")

    result = await auth_service.sign_in(db, identity_provider, "new@example.com", "secret-pw")

    profile = db.get(Profile, identity.id)
    assert profile.role == ProfileRole.PLANNER.value
    assert result.profile.id == identity.id
    payload = decode_session_token(result.session_token)
    assert payload["sub"] == str(identity.id)
    assert payload["idp_token"] == identity.access_token
    assert result.acceptance is None


@pytest.mark.asyncio
async def test_sign_in_wrong_password(db, identity_provider):
    identity_provider.add_account("new@example.com", "secret-pw")
    with pytest.raises(InvalidCredentialsError):
        await auth_service.sign_in(db, identity_provider, "new@example.com", "nope")
    assert db.query(Profile).count() == 0


@pytest.mark.asyncio
async def test_sign_in_completes_deferred_acceptance(db, planner, identity_provider):
    issued = invitation_service.create_invitation_records(db, planner.id, "Erin", "erin@example.com")
    continuation = invitation_service.create_continuation(db, issued.token)
    identity_provider.add_account("erin@example.com", "secret-pw")

    result = await auth_service.sign_in(
        db, identity_provider, "erin@example.com", "secret-pw", continuation=continuation
    )

    assert result.acceptance.status == AcceptanceStatus.ACCEPTED
    assert result.acceptance_error is None
    assert db.get(Executor, issued.executor_id).status == ExecutorStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_deferred_mismatch_does_not_fail_sign_in(db, planner, identity_provider):
    issued = invitation_service.create_invitation_records(db, planner.id, "Erin", "erin@example.com")
    continuation = invitation_service.create_continuation(db, issued.token)
    identity_provider.add_account("mallory@example.com", "secret-pw")

    result = await auth_service.sign_in(
        db, identity_provider, "mallory@example.com", "secret-pw", continuation=continuation
    )

    assert result.session_token
    assert result.acceptance is None
    assert "different email" in result.acceptance_error
    assert db.get(Executor, issued.executor_id).status == ExecutorStatus.PENDING.value


@pytest.mark.asyncio
async def test_sign_up_creates_planner(db, identity_provider):
    result = await auth_service.sign_up(db, identity_provider, "pat@example.com", "long-enough-pw", "Pat")

    assert result.profile.role == ProfileRole.PLANNER.value
    assert result.profile.display_name == "Pat"
    assert identity_provider.sign_up_calls[0]["metadata"] == {"role": "planner", "name": "Pat"}


@pytest.mark.asyncio
async def test_sign_up_short_password(db, identity_provider):
    with pytest.raises(ValidationError):
        await auth_service.sign_up(db, identity_provider, "pat@example.com", "short")
    assert identity_provider.sign_up_calls == []


@pytest.mark.asyncio
async def test_identity_listeners_run_and_failures_are_contained(db, identity_provider):
    identity_provider.add_account("new@example.com", "secret-pw")
    seen = []

    def record(db, identity, profile):
        seen.append(profile.email)

    def broken(db, identity, profile):
        raise RuntimeError("listener bug")

    auth_service.add_identity_listener(record)
    auth_service.add_identity_listener(broken)
    try:
        await auth_service.sign_in(db, identity_provider, "new@example.com", "secret-pw")
    finally:
        auth_service.remove_identity_listener(record)
        auth_service.remove_identity_listener(broken)

    assert seen == ["new@example.com"]
