"""Document enums."""

from enum import Enum


class DocumentCategory(str, Enum):
    LEGAL = "legal"
    FINANCIAL = "financial"
    MEDICAL = "medical"
    INSURANCE = "insurance"
    PERSONAL = "personal"
    OTHER = "other"
