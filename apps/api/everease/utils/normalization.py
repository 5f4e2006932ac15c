"""Data normalization utilities for consistent data quality."""

import re
from typing import Optional


def clean_email(email: Optional[str]) -> Optional[str]:
    """
    Strip surrounding whitespace, keeping the address exactly as typed.

    Invited and signed-in emails are compared in this form.
    """
    if not email:
        return None
    return email.strip() or None


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Case-folded form for account lookups at the identity provider.

    Args:
        email: Raw email input

    Returns:
        Stripped, lowercased email or None if empty
    """
    if not email:
        return None
    email = email.strip().lower()
    return email or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    name = re.sub(r"\s+", " ", name.strip())
    return name or None
