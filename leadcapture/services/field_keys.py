"""
Field key resolution - maps a form field to the semantic key its value is stored under.

Every path that writes or reads lead data (ingestion, lead table, CSV export,
webhook payload) must go through resolve_field_key. A second implementation
anywhere else is a data-integrity bug: values written under one key would be
read back under another.
"""
from typing import Any, Iterable, Mapping, Optional

from leadcapture.schemas.form_schema import FieldType, FormField

PHONE_KEY = "phone_number"
EMAIL_KEY = "email"


def resolve_field_key(field: FormField) -> str:
    """
    Semantic storage key for a field:
    explicit name (trimmed) > "phone_number" for phone > "email" for email > field id.
    """
    if field.name is not None and field.name.strip():
        return field.name.strip()
    if field.type == FieldType.PHONE:
        return PHONE_KEY
    if field.type == FieldType.EMAIL:
        return EMAIL_KEY
    return field.id


def build_structured_data(raw: Mapping[str, Any], fields: Iterable[FormField]) -> dict:
    """
    Map a raw submission (keyed by field id) to semantic keys, in schema order.
    Hidden and anti-spam fields are skipped; fields absent from the submission are omitted.
    """
    out: dict = {}
    for field in fields:
        if not field.collects_input:
            continue
        if field.id not in raw:
            continue
        out[resolve_field_key(field)] = raw[field.id]
    return out


def read_lead_value(data: Optional[Mapping[str, Any]], field: FormField) -> Any:
    """Read a field's value back from stored lead data. None when never submitted."""
    if not data:
        return None
    return data.get(resolve_field_key(field))
