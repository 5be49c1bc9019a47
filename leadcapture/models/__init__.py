"""
Database models - import all models here so Alembic can discover them.
"""
from leadcapture.models.tenant import Tenant
from leadcapture.models.form import Form
from leadcapture.models.pipeline import Pipeline, PipelineStage
from leadcapture.models.lead import Lead
from leadcapture.models.lead_activity import LeadActivity
from leadcapture.models.otp_verification import OtpVerification
from leadcapture.models.webhook import WebhookSubscription, WebhookDeliveryLog

__all__ = [
    "Tenant",
    "Form",
    "Pipeline",
    "PipelineStage",
    "Lead",
    "LeadActivity",
    "OtpVerification",
    "WebhookSubscription",
    "WebhookDeliveryLog",
]
