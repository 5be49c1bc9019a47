"""
Lead endpoints - public submission, stage changes, lead table and CSV export.

POST /api/v1/leads/submit is unauthenticated (called by embedded forms).
Everything else is scoped to the tenant from get_current_tenant.
Domain errors are returned as {"error": message} with the matching status.
"""
import logging
import math
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.api.deps import get_current_tenant
from leadcapture.database import get_db
from leadcapture.models.form import Form
from leadcapture.models.tenant import Tenant
from leadcapture.schemas.api import (
    LeadListResponse,
    LeadRow,
    LeadSubmissionRequest,
    LeadSubmissionResponse,
    StageChangeRequest,
    UtmParams,
)
from leadcapture.schemas.form_schema import parse_form_schema
from leadcapture.services.ingestion import (
    ERROR_FORM_NOT_FOUND,
    SubmissionError,
    SubmissionRequest,
    submit_lead,
)
from leadcapture.services.leads import (
    SourceAttribution,
    export_leads_csv,
    lead_table_row,
    leads_for_export,
    list_leads,
)
from leadcapture.services.pipelines import (
    LeadNotFoundError,
    StageNotFoundError,
    move_lead,
)
from leadcapture.services.webhook_payload import DEFAULT_SOURCE, DEFAULT_STAGE

logger = logging.getLogger(__name__)
router = APIRouter(tags=["leads"])

ATTRIBUTION_MAX_LENGTH = 255


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _clip(value: Optional[str], limit: int = ATTRIBUTION_MAX_LENGTH) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value[:limit] or None


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()[:64]
    return request.client.host if request.client else None


def _parse_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


async def _get_tenant_form(db: AsyncSession, form_id: str, tenant: Tenant) -> Optional[Form]:
    form_uuid = _parse_uuid(form_id)
    if form_uuid is None:
        return None
    result = await db.execute(
        select(Form).where(Form.id == form_uuid, Form.tenant_id == tenant.id)
    )
    return result.scalar_one_or_none()


@router.post("/api/v1/leads/submit", response_model=LeadSubmissionResponse)
async def submit_lead_endpoint(
    payload: LeadSubmissionRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Public form submission."""
    utm = payload.utm or UtmParams()
    submission = SubmissionRequest(
        form_id=payload.form_id,
        data=payload.data,
        anti_spam_token=payload.recaptcha_token,
        attribution=SourceAttribution(
            utm_source=_clip(utm.source),
            utm_medium=_clip(utm.medium),
            utm_campaign=_clip(utm.campaign),
            utm_term=_clip(utm.term),
            utm_content=_clip(utm.content),
            referrer_url=_clip(payload.referrer_url, 2048),
            landing_page_url=_clip(payload.landing_page_url, 2048),
        ),
    )

    try:
        result = await submit_lead(
            db,
            submission,
            client_ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except SubmissionError as e:
        return _error(e.status_code, e.message)

    return LeadSubmissionResponse(id=str(result.lead_id))


@router.patch("/api/v1/leads/{lead_id}/stage")
async def change_lead_stage(
    lead_id: str,
    payload: StageChangeRequest,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Move a lead to a stage, or back to New with stageId null."""
    lead_uuid = _parse_uuid(lead_id)
    if lead_uuid is None:
        return _error(404, "Lead not found")

    stage_uuid = None
    if payload.stage_id:
        stage_uuid = _parse_uuid(payload.stage_id)
        if stage_uuid is None:
            return _error(404, "Stage not found")

    try:
        await move_lead(db, lead_uuid, tenant.id, stage_uuid)
    except (LeadNotFoundError, StageNotFoundError) as e:
        return _error(404, e.message)

    return {"ok": True}


@router.get("/api/v1/leads", response_model=LeadListResponse)
async def get_leads(
    form_id: str = Query(...),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=25, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Paginated lead table for one form, one column per input field."""
    form = await _get_tenant_form(db, form_id, tenant)
    if form is None:
        return _error(404, ERROR_FORM_NOT_FOUND)

    fields = parse_form_schema(form.schema).fields
    leads, total = await list_leads(db, tenant.id, form.id, page, per_page)

    return LeadListResponse(
        leads=[
            LeadRow(
                id=str(lead.id),
                data=lead_table_row(lead, fields),
                stage=lead.stage.name if lead.stage else DEFAULT_STAGE,
                source=(lead.utm_source or "").strip() or DEFAULT_SOURCE,
                created_at=lead.created_at,
            )
            for lead in leads
        ],
        total=total,
        page=page,
        pages=max(1, math.ceil(total / per_page)),
    )


@router.get("/api/v1/leads/export")
async def export_leads(
    form_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Export a form's leads as CSV (capped at 10,000 rows)."""
    form = await _get_tenant_form(db, form_id, tenant)
    if form is None:
        return _error(404, ERROR_FORM_NOT_FOUND)

    fields = parse_form_schema(form.schema).fields
    leads = await leads_for_export(db, tenant.id, form.id)
    content = export_leads_csv(leads, fields)

    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=leads_export.csv"},
    )
