"""Executor-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from everease.db.enums import AccessState, ExecutorStatus, NotificationType


class ExecutorCreate(BaseModel):
    """
    Request schema for inviting an executor.

    Email is trimmed and otherwise kept as typed.
    """
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    relationship: str | None = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class ExecutorUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    relationship: str | None = Field(default=None, max_length=100)


class ExecutorRead(BaseModel):
    id: UUID
    name: str
    email: str
    relationship: str | None
    status: ExecutorStatus
    access_state: AccessState | None = None
    created_at: datetime
    updated_at: datetime
    revoked_at: datetime | None = None

    model_config = {"from_attributes": True}


class ExecutorCreated(BaseModel):
    """Invite result. The token itself only travels by email."""
    executor: ExecutorRead
    expires_at: datetime
    invitation_sent: bool


class InvitationResent(BaseModel):
    executor_id: UUID
    expires_at: datetime
    invitation_sent: bool


class NotificationCreate(BaseModel):
    message: str = Field(min_length=1, max_length=2000)
    type: NotificationType = NotificationType.GENERAL


class NotificationRead(BaseModel):
    id: UUID
    executor_id: UUID
    type: NotificationType
    message: str
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RelationshipRead(BaseModel):
    executor_id: UUID
    planner_id: UUID
    planner_name: str
    relationship: str | None
    status: ExecutorStatus
    access_state: AccessState
    triggered_date: datetime | None = None

    model_config = {"from_attributes": True}


class ExecutorStatusResponse(BaseModel):
    relationships: list[RelationshipRead]
    unlocked: bool
    message: str | None = None


class DeathCertificateImage(BaseModel):
    """Captured image submitted as a data URL."""
    image: str
    planner_id: UUID | None = None


class VerificationResponse(BaseModel):
    planner_id: UUID
    executor_id: UUID
    trigger_id: UUID
    document_id: UUID
    triggered: bool = True
    triggered_date: datetime | None
    already_verified: bool = False


class PlannerDocumentRead(BaseModel):
    id: UUID
    name: str
    description: str | None
    category: str
    content_type: str | None
    file_size: int | None
    created_at: datetime
    download_url: str
