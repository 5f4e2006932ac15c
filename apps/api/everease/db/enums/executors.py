"""Executor relationship, trigger and access enums."""

from enum import Enum


class ExecutorStatus(str, Enum):
    """Executor relationship status. pending -> active -> revoked."""

    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"


class TriggerType(str, Enum):
    INCAPACITATION = "incapacitation"
    DEATH = "death"


class VerificationMethod(str, Enum):
    PROFESSIONAL = "professional"
    DOCUMENT = "document"


class AccessState(str, Enum):
    """
    Derived access state of a (planner, executor) pair.

    UNINVITED -> PENDING -> ACTIVE_LOCKED -> ACTIVE_UNLOCKED
    ACTIVE_LOCKED | ACTIVE_UNLOCKED -> REVOKED (terminal)
    """

    UNINVITED = "uninvited"
    PENDING = "pending"
    ACTIVE_LOCKED = "active_locked"
    ACTIVE_UNLOCKED = "active_unlocked"
    REVOKED = "revoked"
