"""
Webhook subscription endpoints - CRUD, test delivery and the delivery log.
All routes are tenant-scoped.
"""
import logging
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.api.deps import get_current_tenant
from leadcapture.database import get_db
from leadcapture.models.tenant import Tenant
from leadcapture.models.webhook import WebhookSubscription
from leadcapture.schemas.api import (
    WebhookCreateRequest,
    WebhookLogEntry,
    WebhookLogListResponse,
    WebhookResponse,
    WebhookTestResponse,
    WebhookUpdateRequest,
)
from leadcapture.services.webhook_delivery import send_test_webhook
from leadcapture.services.webhooks import (
    LOGS_DEFAULT_PER_PAGE,
    LOGS_MAX_PER_PAGE,
    WebhookValidationError,
    create_webhook,
    delete_webhook,
    get_webhook,
    list_webhook_logs,
    list_webhooks,
    update_webhook,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])

ERROR_NOT_FOUND = "Webhook not found"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def _to_response(webhook: WebhookSubscription) -> WebhookResponse:
    # The secret itself is never echoed back
    return WebhookResponse(
        id=str(webhook.id),
        name=webhook.name,
        url=webhook.url,
        trigger_event=webhook.trigger_event,
        has_secret=bool(webhook.secret_key),
        active=webhook.active,
        created_at=webhook.created_at,
    )


@router.get("/api/v1/webhooks")
async def get_webhooks(
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    webhooks = await list_webhooks(db, tenant.id)
    return {"webhooks": [_to_response(w) for w in webhooks]}


@router.post("/api/v1/webhooks")
async def create_webhook_endpoint(
    payload: WebhookCreateRequest,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    if not payload.name.strip():
        return _error(400, "Webhook name is required")
    if not payload.url.strip():
        return _error(400, "Webhook URL is required")

    try:
        webhook = await create_webhook(
            db,
            tenant.id,
            url=payload.url,
            trigger_event=payload.trigger_event,
            name=payload.name,
            secret_key=payload.secret_key,
            active=payload.active,
        )
    except WebhookValidationError as e:
        return _error(400, e.message)

    return {"webhook": _to_response(webhook)}


@router.get("/api/v1/webhooks/logs", response_model=WebhookLogListResponse)
async def get_webhook_logs(
    event: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=LOGS_DEFAULT_PER_PAGE, ge=1, le=LOGS_MAX_PER_PAGE),
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Delivery log across all of the tenant's webhooks, newest first."""
    rows, total = await list_webhook_logs(db, tenant.id, event, status, page, per_page)
    return WebhookLogListResponse(
        logs=[
            WebhookLogEntry(
                id=str(log.id),
                webhook_id=str(log.webhook_id),
                webhook_name=name,
                event=log.event,
                target_url=log.target_url,
                status=log.status,
                http_status=log.http_status,
                response_time_ms=log.response_time_ms,
                attempt_count=log.attempt_count,
                error_message=log.error_message,
                created_at=log.created_at,
            )
            for log, name in rows
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/api/v1/webhooks/{webhook_id}")
async def get_webhook_endpoint(
    webhook_id: str,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    webhook_uuid = _parse_uuid(webhook_id)
    webhook = await get_webhook(db, webhook_uuid, tenant.id) if webhook_uuid else None
    if webhook is None:
        return _error(404, ERROR_NOT_FOUND)
    return {"webhook": _to_response(webhook)}


@router.patch("/api/v1/webhooks/{webhook_id}")
async def update_webhook_endpoint(
    webhook_id: str,
    payload: WebhookUpdateRequest,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    webhook_uuid = _parse_uuid(webhook_id)
    if webhook_uuid is None:
        return _error(404, ERROR_NOT_FOUND)

    try:
        webhook = await update_webhook(
            db, webhook_uuid, tenant.id, payload.model_dump(exclude_unset=True)
        )
    except WebhookValidationError as e:
        return _error(400, e.message)

    if webhook is None:
        return _error(404, ERROR_NOT_FOUND)
    return {"webhook": _to_response(webhook)}


@router.delete("/api/v1/webhooks/{webhook_id}")
async def delete_webhook_endpoint(
    webhook_id: str,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    webhook_uuid = _parse_uuid(webhook_id)
    if webhook_uuid is None or not await delete_webhook(db, webhook_uuid, tenant.id):
        return _error(404, ERROR_NOT_FOUND)
    return {"ok": True}


@router.post("/api/v1/webhooks/{webhook_id}/test", response_model=WebhookTestResponse)
async def send_test_webhook_endpoint(
    webhook_id: str,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Send one sample lead.created delivery (no retry) and report the outcome."""
    webhook_uuid = _parse_uuid(webhook_id)
    webhook = await get_webhook(db, webhook_uuid, tenant.id) if webhook_uuid else None
    if webhook is None:
        return _error(404, ERROR_NOT_FOUND)

    result = await send_test_webhook(db, webhook.id, tenant.id)
    return WebhookTestResponse(
        success=result.success,
        status_code=result.status_code,
        response_time_ms=result.response_time_ms,
        error=result.error,
    )
