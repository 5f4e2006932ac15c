"""Pydantic schemas for API request/response models."""

from everease.schemas.auth import MeResponse, SessionResponse, SignInRequest, SignUpRequest, UserSession
from everease.schemas.executor import (
    ExecutorCreate,
    ExecutorCreated,
    ExecutorRead,
    ExecutorUpdate,
)
from everease.schemas.invitation import (
    AcceptanceResponse,
    ContinuationResponse,
    InvitationLookupResponse,
    RegisterRequest,
)

__all__ = [
    "AcceptanceResponse",
    "ContinuationResponse",
    "ExecutorCreate",
    "ExecutorCreated",
    "ExecutorRead",
    "ExecutorUpdate",
    "InvitationLookupResponse",
    "MeResponse",
    "RegisterRequest",
    "SessionResponse",
    "SignInRequest",
    "SignUpRequest",
    "UserSession",
]
