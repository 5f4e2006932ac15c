"""Invitation-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class InvitationDetails(BaseModel):
    executor_name: str
    executor_email: str
    relationship: str | None
    planner_id: UUID
    planner_name: str
    expires_at: datetime


class InvitationLookupResponse(BaseModel):
    """
    Public lookup of an invitation token.

    status is one of valid, not_found, expired, already_accepted.
    account is "existing" or "new" for valid invitations when the identity
    provider can be asked.
    """
    status: str
    invitation: InvitationDetails | None = None
    account: str | None = None


class AcceptanceResponse(BaseModel):
    status: str
    executor_id: UUID | None = None
    planner_id: UUID | None = None


class RegisterRequest(BaseModel):
    password: str
    password_confirmation: str


class ContinuationResponse(BaseModel):
    continuation: str
    expires_in_minutes: int
