"""Authentication endpoints: sign-up, sign-in, sign-out, current profile."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from everease.core.deps import (
    clear_session_cookie,
    get_current_session,
    get_db,
    get_identity_provider,
    require_csrf_header,
    set_session_cookie,
)
from everease.core.rate_limit import AUTH_LIMIT, limiter
from everease.db.enums import ExecutorStatus
from everease.schemas.auth import MeResponse, SessionResponse, SignInRequest, SignUpRequest, UserSession
from everease.services import auth_service, executor_service
from everease.services.identity_provider import IdentityProvider


router = APIRouter(prefix="/auth", tags=["auth"])


def _session_response(result: auth_service.SignInResult) -> SessionResponse:
    acceptance = result.acceptance
    return SessionResponse(
        identity_id=result.profile.id,
        email=result.profile.email,
        role=result.profile.role,
        acceptance_status=acceptance.status.value if acceptance else None,
        acceptance_error=result.acceptance_error,
        planner_id=acceptance.planner_id if acceptance else None,
    )


@router.post("/sign-up", response_model=SessionResponse, dependencies=[Depends(require_csrf_header)])
@limiter.limit(AUTH_LIMIT)
async def sign_up(
    request: Request,
    response: Response,
    body: SignUpRequest,
    db: Session = Depends(get_db),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
):
    """Register a planner account and open a session."""
    result = await auth_service.sign_up(
        db, identity_provider, body.email, body.password, body.display_name
    )
    set_session_cookie(response, result.session_token)
    return _session_response(result)


@router.post("/sign-in", response_model=SessionResponse, dependencies=[Depends(require_csrf_header)])
@limiter.limit(AUTH_LIMIT)
async def sign_in(
    request: Request,
    response: Response,
    body: SignInRequest,
    db: Session = Depends(get_db),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
):
    """
    Sign in with email and password.

    When a continuation is supplied the pending invitation acceptance runs
    once after authentication. Its outcome is reported alongside the session;
    a failed acceptance does not fail the sign-in. The client must drop the
    continuation whatever the outcome.
    """
    result = await auth_service.sign_in(
        db, identity_provider, body.email, body.password, continuation=body.continuation
    )
    set_session_cookie(response, result.session_token)
    return _session_response(result)


@router.post("/sign-out", dependencies=[Depends(require_csrf_header)])
async def sign_out(response: Response):
    clear_session_cookie(response)
    return {"status": "signed_out"}


@router.get("/me", response_model=MeResponse)
async def get_me(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Current profile with the number of active executor relationships."""
    active = executor_service.list_relationships_for_email(
        db, session.email, status=ExecutorStatus.ACTIVE
    )
    return MeResponse(
        identity_id=session.identity_id,
        email=session.email,
        display_name=session.display_name,
        role=session.role,
        executor_relationships=len(active),
    )
