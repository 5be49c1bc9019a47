"""
Verification gates - anti-spam token and one-time passcode checks.

Both providers are external and consumed as yes/no oracles:
- AntiSpamVerifier: reCAPTCHA v3 siteverify by default (score threshold)
- PasscodeVerifier: reads the verification records written by the OTP service

Gates run after field validation and before anything is persisted.
A failed gate is an ordinary input error, never a system fault.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.config import Settings
from leadcapture.models.otp_verification import OtpVerification
from leadcapture.schemas.form_schema import FieldType, FormSchema

logger = logging.getLogger(__name__)

SITEVERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"
TIMEOUT = 10.0

CHANNEL_PHONE = "phone"
CHANNEL_EMAIL = "email"

ERROR_TOKEN_MISSING = "reCAPTCHA token missing. Please try again."
ERROR_TOKEN_REJECTED = "reCAPTCHA verification failed (low score or invalid). Please try again."
ERROR_PHONE_MISSING = "Phone number required"
ERROR_PHONE_UNVERIFIED = "Please verify your phone with OTP first"
ERROR_EMAIL_MISSING = "Email required"
ERROR_EMAIL_UNVERIFIED = "Please verify your email with OTP first"


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    score: Optional[float] = None


class AntiSpamVerifier(ABC):
    """Anti-spam provider interface."""

    @abstractmethod
    async def verify(self, token: str) -> VerificationResult:
        ...


class PasscodeVerifier(ABC):
    """One-time passcode provider interface."""

    @abstractmethod
    async def is_verified(self, form_id: uuid.UUID, channel: str, value: str) -> bool:
        """True when this exact phone/email was verified for the form within the validity window."""
        ...


class RecaptchaVerifier(AntiSpamVerifier):
    """reCAPTCHA v3 (score-based) verification against Google's siteverify API."""

    def __init__(self, secret_key: str, threshold: float = 0.3):
        self.secret_key = secret_key
        self.threshold = threshold

    async def verify(self, token: str) -> VerificationResult:
        if not self.secret_key.strip():
            return VerificationResult(success=False)
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.post(
                    SITEVERIFY_URL,
                    data={"secret": self.secret_key, "response": token},
                )
                data = response.json()
        except Exception as e:
            logger.warning("reCAPTCHA siteverify call failed: %s", str(e))
            return VerificationResult(success=False)

        score = data.get("score")
        if not data.get("success"):
            return VerificationResult(success=False, score=score)
        # v2 tokens carry no score
        if not isinstance(score, (int, float)):
            return VerificationResult(success=True)
        return VerificationResult(success=score >= self.threshold, score=float(score))


class OtpRecordVerifier(PasscodeVerifier):
    """Checks the newest OTP record for form + channel + value."""

    def __init__(self, db: AsyncSession, window_minutes: int = 30):
        self.db = db
        self.window_minutes = window_minutes

    async def is_verified(self, form_id: uuid.UUID, channel: str, value: str) -> bool:
        normalized = value.strip()
        if channel == CHANNEL_EMAIL:
            normalized = normalized.lower()

        result = await self.db.execute(
            select(OtpVerification)
            .where(
                OtpVerification.form_id == form_id,
                OtpVerification.channel == channel,
                OtpVerification.value == normalized,
            )
            .order_by(OtpVerification.created_at.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
        if record is None or record.verified_at is None:
            return False

        verified_at = record.verified_at
        if verified_at.tzinfo is None:
            verified_at = verified_at.replace(tzinfo=timezone.utc)
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=self.window_minutes)
        return verified_at >= cutoff


def _field_value(schema: FormSchema, raw: Mapping[str, Any], field_type: FieldType) -> str:
    field = schema.first_field_of_type(field_type)
    if field is None:
        return ""
    value = raw.get(field.id)
    return str(value).strip() if value is not None else ""


async def _check_anti_spam(
    schema: FormSchema,
    token: Optional[str],
    anti_spam: AntiSpamVerifier,
    settings: Settings,
) -> Optional[str]:
    if not (settings.recaptcha_configured and schema.settings.recaptcha_enabled):
        return None

    token = token.strip() if isinstance(token, str) else ""
    if not token:
        return ERROR_TOKEN_MISSING

    bypass = settings.recaptcha_bypass_token
    if bypass and token == bypass and not settings.is_production:
        logger.info("reCAPTCHA bypass token accepted (env=%s)", settings.app_env)
        return None

    result = await anti_spam.verify(token)
    if not result.success:
        logger.info("reCAPTCHA rejected submission (score=%s)", result.score)
        return ERROR_TOKEN_REJECTED
    return None


async def check_verification_gates(
    schema: FormSchema,
    raw: Mapping[str, Any],
    form_id: uuid.UUID,
    anti_spam_token: Optional[str],
    anti_spam: AntiSpamVerifier,
    passcodes: PasscodeVerifier,
    settings: Settings,
) -> Optional[str]:
    """
    Run the anti-spam gate, then the mobile and email OTP gates.
    Returns the first failure message, or None when the submission may proceed.
    """
    error = await _check_anti_spam(schema, anti_spam_token, anti_spam, settings)
    if error:
        return error

    if schema.settings.mobile_otp_enabled:
        phone = _field_value(schema, raw, FieldType.PHONE)
        if not phone:
            return ERROR_PHONE_MISSING
        if not await passcodes.is_verified(form_id, CHANNEL_PHONE, phone):
            return ERROR_PHONE_UNVERIFIED

    if schema.settings.email_otp_enabled:
        email = _field_value(schema, raw, FieldType.EMAIL)
        if not email:
            return ERROR_EMAIL_MISSING
        if not await passcodes.is_verified(form_id, CHANNEL_EMAIL, email):
            return ERROR_EMAIL_UNVERIFIED

    return None
