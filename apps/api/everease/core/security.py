"""Security utilities for JWT session tokens and invitation tokens."""

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from everease.core.config import settings


SESSION_TOKEN_TYPE = "session"
CONTINUATION_TOKEN_TYPE = "invitation_continuation"


# =============================================================================
# Session Token (JWT in cookie)
# =============================================================================

def create_session_token(
    identity_id: UUID,
    email: str,
    role: str,
    access_token: str | None = None,
) -> str:
    """
    Create signed session JWT.

    Always signs with current secret (JWT_SECRET).
    The identity provider's access token is carried along so that later calls
    can be made on behalf of the user.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(identity_id),
        "email": email,
        "role": role,
        "typ": SESSION_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    if access_token:
        payload["idp_token"] = access_token
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def _decode(token: str) -> dict:
    """
    Decode and verify a JWT against every configured secret.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


def decode_session_token(token: str) -> dict:
    """Decode a session JWT, rejecting other token types."""
    payload = _decode(token)
    if payload.get("typ") != SESSION_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not a session token")
    return payload


# =============================================================================
# Invitation Tokens
# =============================================================================

def generate_invitation_token() -> str:
    """Generate cryptographically random, URL-safe invitation token (32 bytes)."""
    return secrets.token_urlsafe(32)


def hash_invitation_token(token: str) -> str:
    """SHA-256 of the raw token; only the hash is persisted."""
    return hashlib.sha256(token.encode()).hexdigest()


# =============================================================================
# Invitation Continuation (survives the sign-in redirect)
# =============================================================================

def create_continuation_token(invitation_token: str) -> str:
    """
    Sign a short-lived continuation state for an invitation.

    The client carries this opaque value through the sign-in redirect and hands
    it back to /auth/sign-in. It replaces any client-persisted copy of the raw
    invitation token as the source of truth.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "typ": CONTINUATION_TOKEN_TYPE,
        "inv": invitation_token,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(minutes=settings.CONTINUATION_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_continuation_token(continuation: str) -> str:
    """
    Verify a continuation state and return the invitation token inside it.

    Raises:
        jwt.InvalidTokenError: If expired, tampered or not a continuation
    """
    payload = _decode(continuation)
    if payload.get("typ") != CONTINUATION_TOKEN_TYPE or not payload.get("inv"):
        raise jwt.InvalidTokenError("Not an invitation continuation")
    return payload["inv"]
