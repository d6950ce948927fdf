"""Input validation helpers shared by the verification and contribution flows."""

from __future__ import annotations

import re
from typing import Final

from wiki_contrib.core.errors import ValidationError

EMAIL_MIN_LENGTH: Final[int] = 3
EMAIL_MAX_LENGTH: Final[int] = 254
EMAIL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SLUG_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_-]{1,100}$")
CODE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\d{6}$")


def validate_email(email: str | None) -> str:
    """Return the trimmed address or raise ``ValidationError``."""
    candidate = (email or "").strip()
    if not candidate:
        raise ValidationError("Email is required")
    if not EMAIL_MIN_LENGTH <= len(candidate) <= EMAIL_MAX_LENGTH:
        raise ValidationError("Invalid email address format")
    if not EMAIL_PATTERN.match(candidate):
        raise ValidationError("Invalid email address format")
    return candidate


def validate_slug(value: str | None, field: str) -> str:
    """Require a path-safe identifier (letters, digits, ``_`` and ``-``)."""
    candidate = (value or "").strip()
    if not SLUG_PATTERN.match(candidate):
        raise ValidationError(f"{field} must be 1-100 letters, digits, '_' or '-'")
    return candidate


def is_code_shaped(code: str | None) -> bool:
    """Return True when ``code`` looks like a 6-digit verification code."""
    if not code:
        return False
    return CODE_PATTERN.match(code.strip()) is not None
