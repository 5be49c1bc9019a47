"""
Lead store - persists accepted submissions and reads them back.

All submission data lives in leads.data keyed by semantic field key.
Readers (lead table, CSV export) resolve keys with the same routine the
ingestion path used, so a value written under key K is read back under K.
"""
import csv
import io
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.models.lead import Lead
from leadcapture.models.lead_activity import LeadActivity
from leadcapture.schemas.form_schema import FormField
from leadcapture.services.field_keys import read_lead_value, resolve_field_key

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100
MAX_EXPORT_ROWS = 10000


@dataclass(frozen=True)
class SourceAttribution:
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    referrer_url: Optional[str] = None
    landing_page_url: Optional[str] = None


async def create_lead(
    db: AsyncSession,
    form_id: uuid.UUID,
    tenant_id: uuid.UUID,
    structured_data: dict,
    attribution: Optional[SourceAttribution] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Lead:
    """
    Insert one lead row in the caller's transaction and flush it so the id is assigned.
    Never retries: a persistence error propagates to the caller.
    """
    attribution = attribution or SourceAttribution()
    lead = Lead(
        form_id=form_id,
        tenant_id=tenant_id,
        data=dict(structured_data),
        utm_source=attribution.utm_source,
        utm_medium=attribution.utm_medium,
        utm_campaign=attribution.utm_campaign,
        utm_term=attribution.utm_term,
        utm_content=attribution.utm_content,
        referrer_url=attribution.referrer_url,
        landing_page_url=attribution.landing_page_url,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(lead)
    await db.flush()
    return lead


async def record_activity(
    db: AsyncSession,
    lead_id: uuid.UUID,
    activity_type: str,
    data: Optional[dict] = None,
) -> None:
    """
    Append a timeline entry in its own commit, after the lead change is committed.
    Failures are logged and rolled back - the timeline is advisory.
    """
    try:
        db.add(LeadActivity(lead_id=lead_id, type=activity_type, data=data))
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(
            "Failed to record %s activity for lead %s: %s",
            activity_type, str(lead_id)[:8], str(e),
        )


async def get_lead(db: AsyncSession, lead_id: uuid.UUID, tenant_id: uuid.UUID) -> Optional[Lead]:
    result = await db.execute(
        select(Lead).where(Lead.id == lead_id, Lead.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def list_leads(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    form_id: Optional[uuid.UUID] = None,
    page: int = 1,
    per_page: int = 25,
) -> tuple[Sequence[Lead], int]:
    """Newest-first page of a tenant's leads, optionally for one form. Returns (leads, total)."""
    page = max(1, page)
    per_page = min(MAX_PER_PAGE, max(1, per_page))

    query = select(Lead).where(Lead.tenant_id == tenant_id)
    if form_id is not None:
        query = query.where(Lead.form_id == form_id)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    result = await db.execute(
        query.order_by(desc(Lead.created_at)).offset((page - 1) * per_page).limit(per_page)
    )
    return result.scalars().all(), total


def lead_table_row(lead: Lead, fields: Iterable[FormField]) -> dict[str, Any]:
    """Display row for a lead: one column per input field, keyed by semantic key."""
    row: dict[str, Any] = {}
    for field in fields:
        if not field.collects_input:
            continue
        row[resolve_field_key(field)] = read_lead_value(lead.data, field)
    return row


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def export_leads_csv(leads: Iterable[Lead], fields: Sequence[FormField]) -> str:
    """CSV with one column per input field (labelled), then stage, source and created_at."""
    input_fields = [f for f in fields if f.collects_input]

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [f.label or resolve_field_key(f) for f in input_fields]
        + ["Stage", "Source", "Created At"]
    )
    for lead in leads:
        writer.writerow(
            [_csv_cell(read_lead_value(lead.data, f)) for f in input_fields]
            + [
                lead.stage.name if lead.stage else "New",
                (lead.utm_source or "").strip() or "Direct",
                lead.created_at.isoformat() if lead.created_at else "",
            ]
        )
    return output.getvalue()


async def leads_for_export(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    form_id: uuid.UUID,
    limit: int = MAX_EXPORT_ROWS,
) -> Sequence[Lead]:
    result = await db.execute(
        select(Lead)
        .where(Lead.tenant_id == tenant_id, Lead.form_id == form_id)
        .order_by(desc(Lead.created_at))
        .limit(limit)
    )
    return result.scalars().all()
