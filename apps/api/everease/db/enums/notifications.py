"""Executor notification enums."""

from enum import Enum


class NotificationType(str, Enum):
    GENERAL = "general"
    REMINDER = "reminder"
    UPDATE = "update"
    URGENT = "urgent"
