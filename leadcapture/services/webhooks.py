"""
Webhook subscription management - tenant-scoped CRUD and the delivery log view.
Every query is filtered by tenant_id; another tenant's subscription is simply not found.
"""
import logging
import uuid
from typing import Any, Optional, Sequence
from urllib.parse import urlparse

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.models.webhook import WebhookDeliveryLog, WebhookSubscription
from leadcapture.services.webhook_delivery import STATUS_FAILED, STATUS_SUCCESS
from leadcapture.services.webhook_payload import EVENT_LEAD_CREATED, is_valid_event

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Webhook"
LOGS_DEFAULT_PER_PAGE = 20
LOGS_MAX_PER_PAGE = 50

ERROR_INVALID_URL = "Invalid webhook URL"
ERROR_INVALID_EVENT = "Invalid trigger event"


class WebhookValidationError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def is_valid_webhook_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _clean_url(url: Optional[str]) -> str:
    url = (url or "").strip()
    if not is_valid_webhook_url(url):
        raise WebhookValidationError(ERROR_INVALID_URL)
    return url


def _clean_event(event: Optional[str]) -> str:
    event = (event or "").strip()
    if not is_valid_event(event):
        raise WebhookValidationError(ERROR_INVALID_EVENT)
    return event


def _clean_secret(secret: Optional[str]) -> Optional[str]:
    return (secret or "").strip() or None


async def list_webhooks(db: AsyncSession, tenant_id: uuid.UUID) -> Sequence[WebhookSubscription]:
    result = await db.execute(
        select(WebhookSubscription)
        .where(WebhookSubscription.tenant_id == tenant_id)
        .order_by(desc(WebhookSubscription.created_at))
    )
    return result.scalars().all()


async def get_webhook(
    db: AsyncSession,
    webhook_id: uuid.UUID,
    tenant_id: uuid.UUID,
) -> Optional[WebhookSubscription]:
    result = await db.execute(
        select(WebhookSubscription).where(
            WebhookSubscription.id == webhook_id,
            WebhookSubscription.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


async def create_webhook(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    url: str,
    trigger_event: str = EVENT_LEAD_CREATED,
    name: Optional[str] = None,
    secret_key: Optional[str] = None,
    active: bool = True,
) -> WebhookSubscription:
    webhook = WebhookSubscription(
        tenant_id=tenant_id,
        name=(name or "").strip() or DEFAULT_NAME,
        url=_clean_url(url),
        trigger_event=_clean_event(trigger_event),
        secret_key=_clean_secret(secret_key),
        active=active,
    )
    db.add(webhook)
    await db.flush()
    logger.info(
        "Webhook %s created for %s", str(webhook.id)[:8], webhook.trigger_event,
        extra={"tenant_id": str(tenant_id), "webhook_id": str(webhook.id)},
    )
    return webhook


async def update_webhook(
    db: AsyncSession,
    webhook_id: uuid.UUID,
    tenant_id: uuid.UUID,
    changes: dict[str, Any],
) -> Optional[WebhookSubscription]:
    """
    Apply a partial update. Only keys present in `changes` are touched.
    Returns None when the webhook does not exist for this tenant.
    """
    webhook = await get_webhook(db, webhook_id, tenant_id)
    if webhook is None:
        return None

    # Validate everything before touching the row
    values: dict[str, Any] = {}
    if "url" in changes:
        values["url"] = _clean_url(changes["url"])
    if "trigger_event" in changes:
        values["trigger_event"] = _clean_event(changes["trigger_event"])
    if "name" in changes:
        values["name"] = (changes["name"] or "").strip() or webhook.name
    if "secret_key" in changes:
        values["secret_key"] = _clean_secret(changes["secret_key"])
    if "active" in changes and changes["active"] is not None:
        values["active"] = bool(changes["active"])

    for key, value in values.items():
        setattr(webhook, key, value)

    await db.flush()
    return webhook


async def delete_webhook(db: AsyncSession, webhook_id: uuid.UUID, tenant_id: uuid.UUID) -> bool:
    webhook = await get_webhook(db, webhook_id, tenant_id)
    if webhook is None:
        return False
    await db.delete(webhook)
    await db.flush()
    logger.info(
        "Webhook %s deleted", str(webhook_id)[:8],
        extra={"tenant_id": str(tenant_id), "webhook_id": str(webhook_id)},
    )
    return True


async def list_webhook_logs(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    event: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    per_page: int = LOGS_DEFAULT_PER_PAGE,
) -> tuple[list[tuple[WebhookDeliveryLog, str]], int]:
    """
    Newest-first delivery logs across the tenant's webhooks.
    Returns ([(log, webhook_name), ...], total). Unknown status filters are ignored.
    """
    page = max(1, page)
    per_page = min(LOGS_MAX_PER_PAGE, max(1, per_page))

    query = (
        select(WebhookDeliveryLog, WebhookSubscription.name)
        .join(WebhookSubscription, WebhookDeliveryLog.webhook_id == WebhookSubscription.id)
        .where(WebhookSubscription.tenant_id == tenant_id)
    )
    event = (event or "").strip()
    if event:
        query = query.where(WebhookDeliveryLog.event == event)
    status = (status or "").strip()
    if status in (STATUS_SUCCESS, STATUS_FAILED):
        query = query.where(WebhookDeliveryLog.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    result = await db.execute(
        query.order_by(desc(WebhookDeliveryLog.created_at))
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(log, name) for log, name in result.all()], total
