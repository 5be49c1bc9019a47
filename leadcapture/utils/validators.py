"""
Format validation for visitor-entered names, emails and phone numbers.
Each validator returns a human-readable reason, or None when the value is acceptable.
Empty values always pass - required-ness is checked separately.
"""
import re
import unicodedata
from typing import Optional

from leadcapture.schemas.form_schema import FieldType, FormField

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 254
PHONE_MIN_DIGITS = 7
PHONE_MAX_DIGITS = 15

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*"
    r"\.[a-zA-Z]{2,}$"
)
_NON_DIGITS = re.compile(r"\D")
_REPEATED_CHAR = re.compile(r"^(.)\1{4,}$")

_NAME_PUNCTUATION = frozenset("-'.")
_NAME_KEYS = frozenset({"name", "full_name", "fullname", "full name"})
_NAME_LABELS = frozenset({"name", "full name"})


def _is_name_char(ch: str) -> bool:
    # Letters and combining marks in any script, whitespace, - ' .
    if ch.isspace() or ch in _NAME_PUNCTUATION:
        return True
    return unicodedata.category(ch)[0] in ("L", "M")


def validate_name(value: Optional[str]) -> Optional[str]:
    s = (value or "").strip()
    if not s:
        return None
    if len(s) < NAME_MIN_LENGTH:
        return "Name must be at least 2 characters."
    if len(s) > NAME_MAX_LENGTH:
        return "Name must be 100 characters or less."
    if not all(_is_name_char(ch) for ch in s):
        return "Name can only contain letters, spaces, hyphens, and apostrophes."
    if _REPEATED_CHAR.match(s):
        return "Please enter a valid name."
    return None


def validate_email(value: Optional[str]) -> Optional[str]:
    s = (value or "").strip()
    if not s:
        return None
    if len(s) > EMAIL_MAX_LENGTH:
        return "Email address is too long."
    if not _EMAIL_RE.match(s):
        return "Please enter a valid email address."
    return None


def validate_phone(value: Optional[str]) -> Optional[str]:
    """Accepts +, spaces, dashes and parentheses; only the digit count is checked."""
    s = (value or "").strip()
    if not s:
        return None
    digits = _NON_DIGITS.sub("", s)
    if len(digits) < PHONE_MIN_DIGITS:
        return "Please enter a valid phone number (at least 7 digits)."
    if len(digits) > PHONE_MAX_DIGITS:
        return "Phone number is too long."
    return None


def is_name_field(field: FormField) -> bool:
    """Whether a text field holds a person's name (by name/id or label)."""
    if field.type != FieldType.TEXT:
        return False
    key = re.sub(r"\s", "_", (field.name or field.id or "").lower())
    label = (field.label or "").lower().strip()
    return key in _NAME_KEYS or label in _NAME_LABELS
