"""Auth-related enums."""

from enum import Enum


class ProfileRole(str, Enum):
    """
    Profile roles.

    - PLANNER: owns an estate plan (default for self sign-up)
    - EXECUTOR: signed up through an executor invitation

    A planner keeps the planner role when they accept an executor invitation
    from someone else; the executor capacity lives on the Executor row.
    """

    PLANNER = "planner"
    EXECUTOR = "executor"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
