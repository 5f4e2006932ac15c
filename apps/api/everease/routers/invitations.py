"""Invitation endpoints: public lookup and one-time acceptance."""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from everease.core.config import settings
from everease.core.deps import (
    get_current_identity,
    get_db,
    get_identity_provider,
    get_optional_identity_provider,
    require_csrf_header,
    set_session_cookie,
)
from everease.core.exceptions import EverEaseError
from everease.core.rate_limit import INVITATION_LIMIT, limiter
from everease.schemas.invitation import (
    AcceptanceResponse,
    ContinuationResponse,
    InvitationDetails,
    InvitationLookupResponse,
    RegisterRequest,
)
from everease.services import auth_service, invitation_service
from everease.services.identity_provider import Identity, IdentityProvider
from everease.services.invitation_service import (
    AcceptanceResult,
    AcceptanceStatus,
    InvitationLookupStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitations", tags=["invitations"])


def _acceptance_response(result: AcceptanceResult) -> AcceptanceResponse:
    return AcceptanceResponse(
        status=result.status.value,
        executor_id=result.executor_id,
        planner_id=result.planner_id,
    )


@router.get("/{token}", response_model=InvitationLookupResponse)
@limiter.limit(INVITATION_LIMIT)
async def lookup_invitation(
    request: Request,
    token: str,
    db: Session = Depends(get_db),
    identity_provider: IdentityProvider | None = Depends(get_optional_identity_provider),
):
    """
    Look up an invitation by token (public).

    Expired invitations are deleted as they are found.
    """
    lookup = invitation_service.verify_invitation(db, token)
    if lookup.status == InvitationLookupStatus.EXPIRED:
        invitation_service.discard_invitation(db, token)
        return InvitationLookupResponse(status=lookup.status.value)
    if lookup.invitation is None:
        return InvitationLookupResponse(status=lookup.status.value)

    view = lookup.invitation
    account = None
    if lookup.status == InvitationLookupStatus.VALID and identity_provider is not None:
        try:
            branch = await invitation_service.resolve_account_branch(
                identity_provider, view.executor_email
            )
            account = branch.value
        except EverEaseError as e:
            logger.warning("Account lookup for invitation failed: %s", e.message)

    return InvitationLookupResponse(
        status=lookup.status.value,
        account=account,
        invitation=InvitationDetails(
            executor_name=view.executor_name,
            executor_email=view.executor_email,
            relationship=view.relationship,
            planner_id=view.planner_id,
            planner_name=view.planner_name,
            expires_at=view.expires_at,
        ),
    )


@router.post(
    "/{token}/accept",
    response_model=AcceptanceResponse,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(INVITATION_LIMIT)
async def accept_invitation(
    request: Request,
    token: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Accept with the signed-in account (existing-user branch)."""
    result = invitation_service.accept_as_existing_user(db, token, identity)
    if result.status == AcceptanceStatus.EXPIRED:
        invitation_service.discard_invitation(db, token)
    return _acceptance_response(result)


@router.post(
    "/{token}/register",
    response_model=AcceptanceResponse,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(INVITATION_LIMIT)
async def register_and_accept(
    request: Request,
    response: Response,
    token: str,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
):
    """Create an account for the invited email and accept (new-user branch)."""
    result = await invitation_service.accept_as_new_user(
        db, identity_provider, token, body.password, body.password_confirmation
    )
    if result.status == AcceptanceStatus.EXPIRED:
        invitation_service.discard_invitation(db, token)
    elif result.status == AcceptanceStatus.ACCEPTED:
        session_token = auth_service.session_for_acceptance(db, result)
        if session_token:
            set_session_cookie(response, session_token)
    return _acceptance_response(result)


@router.post(
    "/{token}/continuation",
    response_model=ContinuationResponse,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(INVITATION_LIMIT)
async def create_continuation(
    request: Request,
    token: str,
    db: Session = Depends(get_db),
):
    """
    Signed state to carry through the sign-in redirect.

    Pass it back as ``continuation`` to POST /auth/sign-in.
    """
    continuation = invitation_service.create_continuation(db, token)
    return ContinuationResponse(
        continuation=continuation,
        expires_in_minutes=settings.CONTINUATION_EXPIRES_MINUTES,
    )
