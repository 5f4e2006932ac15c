"""Activity log enums."""

from enum import Enum


class ActivityType(str, Enum):
    """
    Security-relevant transitions recorded in the activity log.

    Values match the action_type strings the planner timeline displays.
    """

    EXECUTOR_INVITED = "executor_invited"
    INVITATION_RESENT = "invitation_resent"
    EXECUTOR_ACCEPTED = "executor_accepted"
    EXECUTOR_UPDATED = "executor_updated"
    ACCESS_REVOKED = "access_revoked"
    DEATH_VERIFIED = "death_verified"
    EXECUTOR_NOTIFIED = "executor_notification"
