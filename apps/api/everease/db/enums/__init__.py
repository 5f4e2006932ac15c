"""Enum definitions for application constants."""

from everease.db.enums.audit import ActivityType
from everease.db.enums.auth import ProfileRole
from everease.db.enums.documents import DocumentCategory
from everease.db.enums.executors import (
    AccessState,
    ExecutorStatus,
    TriggerType,
    VerificationMethod,
)
from everease.db.enums.notifications import NotificationType

__all__ = [
    "AccessState",
    "ActivityType",
    "DocumentCategory",
    "ExecutorStatus",
    "NotificationType",
    "ProfileRole",
    "TriggerType",
    "VerificationMethod",
]
