"""Profile service - application profiles keyed by identity id."""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from everease.db.enums import ProfileRole
from everease.db.models import Profile
from everease.utils.normalization import clean_email, normalize_name

logger = logging.getLogger(__name__)


def get_profile(db: Session, identity_id: UUID) -> Profile | None:
    return db.get(Profile, identity_id)


def get_or_create_profile(
    db: Session,
    identity_id: UUID,
    email: str,
    role: ProfileRole = ProfileRole.PLANNER,
    display_name: str | None = None,
) -> Profile:
    """
    Return the profile for an identity, creating it on first sight.

    New profiles default to the planner role. Commits when a row is created.
    """
    profile = db.get(Profile, identity_id)
    if profile:
        return profile

    profile = Profile(
        id=identity_id,
        email=clean_email(email) or email,
        display_name=normalize_name(display_name),
        role=role.value,
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent first sign-in created it first
        db.rollback()
        existing = db.get(Profile, identity_id)
        if existing is None:
            raise
        return existing
    db.refresh(profile)
    logger.info("Created %s profile %s", role.value, identity_id)
    return profile


def ensure_executor_role(db: Session, profile: Profile) -> Profile:
    """
    Mark a profile as executor unless it is a planner.

    A planner accepting someone else's invitation keeps the planner role.
    Caller commits.
    """
    if profile.role != ProfileRole.PLANNER.value:
        profile.role = ProfileRole.EXECUTOR.value
    return profile


def update_display_name(db: Session, profile: Profile, display_name: str | None) -> Profile:
    profile.display_name = normalize_name(display_name)
    db.commit()
    db.refresh(profile)
    return profile


def planner_display_name(db: Session, planner_id: UUID) -> str:
    """Planner's display name, or a short id-based placeholder."""
    profile = db.get(Profile, planner_id)
    if profile and profile.display_name:
        return profile.display_name
    return f"Planner {str(planner_id)[:8]}"
