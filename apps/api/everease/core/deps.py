"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from everease.core.config import settings
from everease.core.exceptions import ConfigurationError
from everease.core.security import decode_session_token
from everease.db.enums import ProfileRole
from everease.db.session import SessionLocal
from everease.schemas.auth import UserSession
from everease.services import identity_provider as identity_provider_module
from everease.services.identity_provider import Identity, IdentityProvider


# Cookie and header names
COOKIE_NAME = "everease_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_identity_provider() -> IdentityProvider:
    """Identity provider client (overridden in tests)."""
    return identity_provider_module.get_identity_provider()


def _session_payload(request: Request) -> dict:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return decode_session_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid session")


def get_current_session(request: Request, db: Session = Depends(get_db)) -> UserSession:
    """
    Session context from the session cookie.

    The profile row is authoritative for role; it can change after sign-in
    (an invitation acceptance may make a profile an executor).

    Raises:
        HTTPException 401: Not authenticated or profile missing
        HTTPException 403: Unknown role
    """
    from everease.db.models import Profile

    payload = _session_payload(request)
    try:
        identity_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid session")
    profile = db.get(Profile, identity_id)
    if not profile:
        raise HTTPException(status_code=401, detail="Profile not found")

    if not ProfileRole.has_value(profile.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{profile.role}'. Contact support.",
        )

    return UserSession(
        identity_id=profile.id,
        email=profile.email,
        role=ProfileRole(profile.role),
        display_name=profile.display_name,
    )


def get_current_identity(
    request: Request,
    session: UserSession = Depends(get_current_session),
) -> Identity:
    """Identity for operations that act on behalf of the signed-in account."""
    payload = _session_payload(request)
    return Identity(
        id=session.identity_id,
        email=session.email,
        access_token=payload.get("idp_token"),
    )


def require_roles(allowed_roles: list):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.post("/executors", dependencies=[Depends(require_roles([ProfileRole.PLANNER]))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME, path="/")


def get_optional_identity_provider() -> IdentityProvider | None:
    """Identity provider when configured, else None (public lookups degrade)."""
    try:
        return identity_provider_module.get_identity_provider()
    except ConfigurationError:
        return None
