"""SQLAlchemy ORM models for profiles, executors, triggers and activity."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, ForeignKey, Index, Integer, String, Text, Uuid, func, text
)
from sqlalchemy import orm
from sqlalchemy.orm import Mapped, mapped_column, relationship

from everease.db.base import Base
from everease.db.enums import (
    DocumentCategory, ExecutorStatus, NotificationType, ProfileRole,
    TriggerType, VerificationMethod,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Profiles
# =============================================================================

class Profile(Base):
    """
    Application profile for an identity-provider account.

    The primary key is the identity id issued by the identity provider.
    Created lazily on first sign-in with role planner.
    """
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), default=ProfileRole.PLANNER.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


# =============================================================================
# Executors & Invitations
# =============================================================================

class Executor(Base):
    """
    Trust relationship between a planner and a named executor email.

    The executor's own account is linked by email, not by foreign key: one
    identity may be executor for several planners.
    """
    __tablename__ = "executors"
    __table_args__ = (
        # At most one open (non-revoked) relationship per planner and email
        Index(
            "uq_executors_planner_email_open",
            "planner_id",
            "email",
            unique=True,
            postgresql_where=text("status <> 'revoked'"),
            sqlite_where=text("status <> 'revoked'"),
        ),
        Index("idx_executors_email_status", "email", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    planner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    relationship: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ExecutorStatus.PENDING.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # "relationship" is a column on this model, so go through the orm namespace
    planner: Mapped["Profile"] = orm.relationship()
    invitations: Mapped[list["ExecutorInvitation"]] = orm.relationship(
        back_populates="executor", cascade="all, delete-orphan"
    )


class ExecutorInvitation(Base):
    """
    Single-use, time-boxed invitation token for a pending executor.

    Only the SHA-256 of the token is stored. consumed_at is set exactly once,
    by a conditional update, when the invitation is accepted.
    """
    __tablename__ = "executor_invitations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    executor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("executors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    executor: Mapped["Executor"] = relationship(back_populates="invitations")


# =============================================================================
# Trigger Events
# =============================================================================

class TriggerEvent(Base):
    """
    Verification record gating an executor's access to planner data.

    triggered is a one-way latch: nothing in the application sets it back
    to false.
    """
    __tablename__ = "trigger_events"
    __table_args__ = (
        Index("idx_trigger_events_pair_type", "user_id", "executor_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    executor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("executors.id", ondelete="CASCADE"), nullable=True
    )
    type: Mapped[str] = mapped_column(
        String(20), default=TriggerType.DEATH.value, nullable=False
    )
    verification_method: Mapped[str] = mapped_column(
        String(20), default=VerificationMethod.PROFESSIONAL.value, nullable=False
    )
    verification_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    triggered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    triggered_date: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


# =============================================================================
# Documents
# =============================================================================

class Document(Base):
    """Planner-owned document metadata; the bytes live in blob storage."""
    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String(30), default=DocumentCategory.OTHER.value, nullable=False
    )
    file_path: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    checksum_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


# =============================================================================
# Activity Log
# =============================================================================

class ActivityLog(Base):
    """
    Append-only record of security-relevant transitions.

    user_id is the planner whose timeline the entry belongs to; actor_id is
    the account that caused it (None for system actions).
    """
    __tablename__ = "activity_log"
    __table_args__ = (
        Index("idx_activity_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


# =============================================================================
# Executor Notifications
# =============================================================================

class ExecutorNotification(Base):
    """In-app message from a planner to one of their executors."""
    __tablename__ = "executor_notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    executor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("executors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(
        String(20), default=NotificationType.GENERAL.value, nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    executor: Mapped["Executor"] = relationship()
