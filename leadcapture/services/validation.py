"""
Submission validation - required fields and per-type format rules.

Fail-fast: fields are checked in schema order and the first problem wins,
so the error a visitor sees is deterministic.
"""
from typing import Any, Iterable, Mapping, Optional

from leadcapture.schemas.form_schema import FieldType, FormField
from leadcapture.utils.validators import (
    is_name_field,
    validate_email,
    validate_name,
    validate_phone,
)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        # checkbox groups
        return ", ".join(str(v) for v in value if v is not None).strip()
    return str(value).strip()


def _format_error(field: FormField, value: str) -> Optional[str]:
    if field.type == FieldType.EMAIL:
        return validate_email(value)
    if field.type == FieldType.PHONE:
        return validate_phone(value)
    if is_name_field(field):
        return validate_name(value)
    return None


def validate_submission(raw: Mapping[str, Any], fields: Iterable[FormField]) -> Optional[str]:
    """
    Validate a raw submission (keyed by field id) against the form's fields.
    Returns the first error message, or None when the submission may proceed.
    """
    for field in fields:
        if not field.collects_input:
            continue

        value = _as_text(raw.get(field.id))
        if not value:
            if field.required:
                return f"{field.label} is required."
            continue

        reason = _format_error(field, value)
        if reason:
            return f"{field.label}: {reason}"
    return None
