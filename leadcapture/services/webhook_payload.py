"""
Outbound webhook payload - one fixed shape for every event:

{
  "event": "lead.created" | "lead.stage_changed" | "lead.won",
  "timestamp": "<ISO-8601 at send time>",
  "lead": {"id", "name", "email", "phone", "stage", "source", "created_at"}
}

Contact fields are best-effort lookups over known semantic-key aliases and
are empty strings when the lead has no match.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

EVENT_LEAD_CREATED = "lead.created"
EVENT_LEAD_STAGE_CHANGED = "lead.stage_changed"
EVENT_LEAD_WON = "lead.won"
WEBHOOK_TRIGGER_EVENTS = (EVENT_LEAD_CREATED, EVENT_LEAD_STAGE_CHANGED, EVENT_LEAD_WON)

DEFAULT_STAGE = "New"
DEFAULT_SOURCE = "Direct"

# Checked in order, first non-blank value wins
CONTACT_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "Name", "full_name", "fullName"),
    "email": ("email", "Email"),
    "phone": ("phone_number", "phone"),
}


@dataclass(frozen=True)
class LeadSnapshot:
    """Immutable copy of the lead fields the payload needs, safe to hand to background tasks."""
    id: str
    created_at: datetime
    data: Mapping[str, Any] = field(default_factory=dict)
    utm_source: Optional[str] = None
    stage_name: Optional[str] = None

    @classmethod
    def from_lead(cls, lead, stage_name: Optional[str] = None) -> "LeadSnapshot":
        if stage_name is None and lead.stage is not None:
            stage_name = lead.stage.name
        return cls(
            id=str(lead.id),
            created_at=lead.created_at,
            data=MappingProxyType(dict(lead.data or {})),
            utm_source=lead.utm_source,
            stage_name=stage_name,
        )


def first_non_blank(data: Mapping[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_event_payload(event: str, lead: LeadSnapshot, now: Optional[datetime] = None) -> dict:
    """Pure: builds the wire payload from a snapshot. `timestamp` is the send time."""
    data = lead.data or {}
    return {
        "event": event,
        "timestamp": _isoformat(now or datetime.now(timezone.utc)),
        "lead": {
            "id": lead.id,
            "name": first_non_blank(data, CONTACT_ALIASES["name"]),
            "email": first_non_blank(data, CONTACT_ALIASES["email"]),
            "phone": first_non_blank(data, CONTACT_ALIASES["phone"]),
            "stage": lead.stage_name or DEFAULT_STAGE,
            "source": (lead.utm_source or "").strip() or DEFAULT_SOURCE,
            "created_at": _isoformat(lead.created_at),
        },
    }


def serialize_payload(payload: dict) -> bytes:
    """Canonical body bytes - the exact bytes that are signed and sent."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


SAMPLE_LEAD = LeadSnapshot(
    id="sample-lead-id",
    created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    data=MappingProxyType({
        "name": "Sample Lead",
        "email": "sample@example.com",
        "phone": "+1234567890",
    }),
    utm_source="Direct",
    stage_name="New",
)


def is_valid_event(event: str) -> bool:
    return event in WEBHOOK_TRIGGER_EVENTS
