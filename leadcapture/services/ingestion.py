"""
Public lead submission - the single entry point for an untrusted form post.

Pipeline (each step can reject; nothing is persisted until all checks pass):
1. Resolve the form (exists, not locked, public)
2. Monthly quota for the owning tenant
3. Required and format validation
4. Anti-spam token and OTP gates
5. Map to semantic keys, persist, commit
6. Dispatch notifications (detached) and record the "created" activity

Rejections raise SubmissionError with the message shown to the visitor and
the HTTP status the API layer returns.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.config import Settings, get_settings
from leadcapture.models.form import Form
from leadcapture.models.tenant import Tenant
from leadcapture.schemas.form_schema import parse_form_schema
from leadcapture.services.dispatcher import dispatch_lead_created
from leadcapture.services.field_keys import build_structured_data
from leadcapture.services.leads import SourceAttribution, create_lead, record_activity
from leadcapture.services.plan_limits import check_monthly_lead_quota
from leadcapture.services.validation import validate_submission
from leadcapture.services.verification import (
    AntiSpamVerifier,
    OtpRecordVerifier,
    PasscodeVerifier,
    RecaptchaVerifier,
    check_verification_gates,
)
from leadcapture.services.webhook_payload import DEFAULT_STAGE, LeadSnapshot

logger = logging.getLogger(__name__)

ERROR_FORM_NOT_FOUND = "Form not found"
ERROR_FORM_LOCKED = "This form is not accepting submissions. Upgrade to unlock."
ERROR_SUBMISSION_FAILED = "Submission failed"

ACTIVITY_CREATED = "created"


class SubmissionError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class SubmissionRequest:
    form_id: str
    data: dict[str, Any] = field(default_factory=dict)
    anti_spam_token: Optional[str] = None
    attribution: SourceAttribution = field(default_factory=SourceAttribution)


@dataclass(frozen=True)
class SubmissionResult:
    lead_id: uuid.UUID


async def _load_form(db: AsyncSession, form_id: str) -> Optional[Form]:
    try:
        form_uuid = uuid.UUID(str(form_id))
    except ValueError:
        return None
    result = await db.execute(select(Form).where(Form.id == form_uuid))
    return result.scalar_one_or_none()


async def submit_lead(
    db: AsyncSession,
    request: SubmissionRequest,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    anti_spam: Optional[AntiSpamVerifier] = None,
    passcodes: Optional[PasscodeVerifier] = None,
    settings: Optional[Settings] = None,
) -> SubmissionResult:
    settings = settings or get_settings()

    form = await _load_form(db, request.form_id)
    if form is None:
        raise SubmissionError(ERROR_FORM_NOT_FOUND, 404)
    if form.locked_at is not None:
        raise SubmissionError(ERROR_FORM_LOCKED, 403)

    schema = parse_form_schema(form.schema)
    if not schema.settings.is_public:
        raise SubmissionError(ERROR_FORM_NOT_FOUND, 404)

    tenant = await db.get(Tenant, form.tenant_id)
    if tenant is None:
        raise SubmissionError(ERROR_FORM_NOT_FOUND, 404)

    quota_error = await check_monthly_lead_quota(db, tenant)
    if quota_error:
        logger.info(
            "Submission rejected: monthly quota reached",
            extra={"tenant_id": str(tenant.id), "form_id": str(form.id)},
        )
        raise SubmissionError(quota_error, 403)

    validation_error = validate_submission(request.data, schema.fields)
    if validation_error:
        raise SubmissionError(validation_error, 400)

    gate_error = await check_verification_gates(
        schema,
        request.data,
        form.id,
        request.anti_spam_token,
        anti_spam or RecaptchaVerifier(settings.recaptcha_secret_key, settings.recaptcha_v3_threshold),
        passcodes or OtpRecordVerifier(db, settings.otp_submission_window_minutes),
        settings,
    )
    if gate_error:
        raise SubmissionError(gate_error, 400)

    structured_data = build_structured_data(request.data, schema.fields)
    form_id, tenant_id = form.id, tenant.id

    try:
        lead = await create_lead(
            db,
            form_id=form_id,
            tenant_id=tenant_id,
            structured_data=structured_data,
            attribution=request.attribution,
            ip_address=client_ip,
            user_agent=user_agent,
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            "Lead persistence failed: %s", str(e), exc_info=True,
            extra={"form_id": str(form_id), "tenant_id": str(tenant_id)},
        )
        raise SubmissionError(ERROR_SUBMISSION_FAILED, 500) from e

    logger.info(
        "Lead %s created from form %s", str(lead.id)[:8], str(form.id)[:8],
        extra={"lead_id": str(lead.id), "form_id": str(form.id), "tenant_id": str(tenant.id)},
    )

    lead_id = lead.id
    # New leads have no stage yet
    snapshot = LeadSnapshot.from_lead(lead, stage_name=DEFAULT_STAGE)
    dispatch_lead_created(tenant, form.name, schema.settings, snapshot, settings)

    # Must stay last: a failed activity write rolls back and expires loaded rows
    await record_activity(db, lead_id, ACTIVITY_CREATED, {"form_id": str(form.id)})

    return SubmissionResult(lead_id=lead_id)
