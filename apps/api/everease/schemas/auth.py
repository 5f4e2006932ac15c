"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from everease.db.enums import ProfileRole


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency.
    """
    identity_id: UUID
    email: str
    role: ProfileRole
    display_name: str | None = None


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    # Signed state from POST /invitations/{token}/continuation
    continuation: str | None = None

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: str | None = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class SessionResponse(BaseModel):
    """Sign-in/sign-up response; the session itself travels in the cookie."""
    identity_id: UUID
    email: str
    role: ProfileRole
    acceptance_status: str | None = None
    acceptance_error: str | None = None
    planner_id: UUID | None = None


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint."""
    identity_id: UUID
    email: str
    display_name: str | None
    role: ProfileRole
    executor_relationships: int = 0
