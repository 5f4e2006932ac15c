"""Utility modules."""

from everease.utils.datetime_parsing import ensure_utc
from everease.utils.normalization import clean_email, normalize_email, normalize_name

__all__ = [
    "clean_email",
    "ensure_utc",
    "normalize_email",
    "normalize_name",
]
