"""Rate limiting configuration for the Ever Ease API."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from everease.core.config import settings

# Redis gives a shared budget across workers; in-memory otherwise.
REDIS_URL = os.getenv("REDIS_URL", "")
IS_TESTING = settings.ENV == "test" or os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)


def _build_limiter() -> Limiter:
    if IS_TESTING or not REDIS_URL:
        return Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
            default_limits=DEFAULT_LIMITS,
            enabled=not IS_TESTING,
        )
    return Limiter(
        key_func=get_remote_address,
        storage_uri=REDIS_URL,
        default_limits=DEFAULT_LIMITS,
        swallow_errors=True,
    )


limiter = _build_limiter()
if REDIS_URL and not IS_TESTING:
    logging.getLogger(__name__).info("Rate limiting backed by Redis")

AUTH_LIMIT = f"{max(settings.RATE_LIMIT_AUTH, 1)}/minute"
INVITATION_LIMIT = f"{max(settings.RATE_LIMIT_INVITATIONS, 1)}/minute"
