"""
Lead event dispatcher - starts the notification work for a lead event.

Called after the lead change is committed. Everything here is scheduled on
the background runner and nothing is awaited, so a slow or failing
notification never delays or fails the request that caused it.
"""
import logging
import uuid

from leadcapture.config import Settings
from leadcapture.models.tenant import Tenant
from leadcapture.schemas.form_schema import FormSettings
from leadcapture.services.notifications import LeadSummary, notify_new_lead
from leadcapture.services.plan_limits import has_email_alerts
from leadcapture.services.webhook_delivery import dispatch_webhooks
from leadcapture.services.webhook_payload import (
    CONTACT_ALIASES,
    DEFAULT_SOURCE,
    EVENT_LEAD_CREATED,
    EVENT_LEAD_STAGE_CHANGED,
    EVENT_LEAD_WON,
    LeadSnapshot,
    first_non_blank,
)
from leadcapture.utils.background import spawn
from leadcapture.utils.logging import mask_email

logger = logging.getLogger(__name__)

WON_STAGE_NAME = "Won"


def should_send_email_alert(tenant: Tenant, form_settings: FormSettings, settings: Settings) -> bool:
    """Alert only when the form asks for it, the plan includes it and there is somewhere to send it."""
    return bool(
        form_settings.email_alert_enabled
        and tenant.email
        and has_email_alerts(tenant.plan)
        and settings.sendgrid_api_key
    )


def dispatch_lead_created(
    tenant: Tenant,
    form_name: str,
    form_settings: FormSettings,
    lead: LeadSnapshot,
    settings: Settings,
) -> None:
    if should_send_email_alert(tenant, form_settings, settings):
        summary = LeadSummary(
            form_name=form_name,
            name=first_non_blank(lead.data, CONTACT_ALIASES["name"]),
            email=first_non_blank(lead.data, CONTACT_ALIASES["email"]),
            source=(lead.utm_source or "").strip() or DEFAULT_SOURCE,
        )
        spawn(notify_new_lead(tenant.email, summary), name=f"lead-alert:{lead.id[:8]}")
        logger.info(
            "New-lead alert scheduled for %s", mask_email(tenant.email),
            extra={"lead_id": lead.id, "tenant_id": str(tenant.id)},
        )

    dispatch_webhooks(tenant.id, EVENT_LEAD_CREATED, lead)


def dispatch_stage_changed(tenant_id: uuid.UUID, lead: LeadSnapshot) -> None:
    """lead.stage_changed always; lead.won too when the destination stage is exactly "Won"."""
    dispatch_webhooks(tenant_id, EVENT_LEAD_STAGE_CHANGED, lead)
    if lead.stage_name == WON_STAGE_NAME:
        dispatch_webhooks(tenant_id, EVENT_LEAD_WON, lead)
