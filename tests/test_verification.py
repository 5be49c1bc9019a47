"""
Tests for leadcapture/services/verification.py - anti-spam and OTP gates.
"""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from leadcapture.config import Settings
from leadcapture.models.otp_verification import OtpVerification
from leadcapture.schemas.form_schema import parse_form_schema
from leadcapture.services.verification import (
    CHANNEL_EMAIL,
    CHANNEL_PHONE,
    ERROR_EMAIL_MISSING,
    ERROR_EMAIL_UNVERIFIED,
    ERROR_PHONE_MISSING,
    ERROR_PHONE_UNVERIFIED,
    ERROR_TOKEN_MISSING,
    ERROR_TOKEN_REJECTED,
    AntiSpamVerifier,
    OtpRecordVerifier,
    PasscodeVerifier,
    RecaptchaVerifier,
    VerificationResult,
    check_verification_gates,
)


class StubAntiSpam(AntiSpamVerifier):
    def __init__(self, success: bool = True):
        self.success = success
        self.tokens: list[str] = []

    async def verify(self, token: str) -> VerificationResult:
        self.tokens.append(token)
        return VerificationResult(success=self.success, score=0.9 if self.success else 0.1)


class StubPasscodes(PasscodeVerifier):
    def __init__(self, verified: set[tuple[str, str]] | None = None):
        self.verified = verified or set()
        self.calls: list[tuple[str, str]] = []

    async def is_verified(self, form_id, channel, value) -> bool:
        self.calls.append((channel, value))
        return (channel, value) in self.verified


def _settings(**overrides) -> Settings:
    values = {
        "_env_file": None,
        "app_env": "test",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "recaptcha_site_key": "site",
        "recaptcha_secret_key": "secret",
    }
    values.update(overrides)
    return Settings(**values)


def _schema(form_settings: dict | None = None):
    return parse_form_schema({
        "fields": [
            {"id": "f_email", "type": "email", "label": "Email"},
            {"id": "f_phone", "type": "phone", "label": "Phone"},
        ],
        "settings": form_settings or {},
    })


def _mock_response(json_data: dict) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = json_data
    return resp


def _build_mock_client(post_response=None, post_side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    if post_side_effect is not None:
        mock_client.post = AsyncMock(side_effect=post_side_effect)
    else:
        mock_client.post = AsyncMock(return_value=post_response)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ---------------------------------------------------------------------------
# RecaptchaVerifier
# ---------------------------------------------------------------------------


class TestRecaptchaVerifier:
    async def test_high_score_passes(self):
        mock_client = _build_mock_client(_mock_response({"success": True, "score": 0.9}))
        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await RecaptchaVerifier("secret", threshold=0.3).verify("tok")

        assert result.success is True
        assert result.score == 0.9
        call = mock_client.post.call_args
        assert call.kwargs["data"] == {"secret": "secret", "response": "tok"}

    async def test_low_score_fails(self):
        mock_client = _build_mock_client(_mock_response({"success": True, "score": 0.1}))
        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await RecaptchaVerifier("secret", threshold=0.3).verify("tok")
        assert result.success is False

    async def test_threshold_is_inclusive(self):
        mock_client = _build_mock_client(_mock_response({"success": True, "score": 0.3}))
        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await RecaptchaVerifier("secret", threshold=0.3).verify("tok")
        assert result.success is True

    async def test_missing_score_passes(self):
        mock_client = _build_mock_client(_mock_response({"success": True}))
        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await RecaptchaVerifier("secret").verify("tok")
        assert result.success is True

    async def test_provider_rejects(self):
        mock_client = _build_mock_client(_mock_response({"success": False, "error-codes": ["invalid-input-response"]}))
        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await RecaptchaVerifier("secret").verify("tok")
        assert result.success is False

    async def test_network_error_is_failure(self):
        mock_client = _build_mock_client(post_side_effect=httpx.ConnectError("boom"))
        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await RecaptchaVerifier("secret").verify("tok")
        assert result.success is False

    async def test_blank_secret_never_calls_out(self):
        with patch("httpx.AsyncClient") as mock_cls:
            result = await RecaptchaVerifier("  ").verify("tok")
        assert result.success is False
        mock_cls.assert_not_called()


# ---------------------------------------------------------------------------
# OtpRecordVerifier
# ---------------------------------------------------------------------------


class TestOtpRecordVerifier:
    async def _add(self, db, form_id, channel, value, verified_ago=None, created_ago=timedelta(minutes=1)):
        now = datetime.now(timezone.utc)
        db.add(OtpVerification(
            form_id=form_id,
            channel=channel,
            value=value,
            verified_at=now - verified_ago if verified_ago is not None else None,
            created_at=now - created_ago,
        ))
        await db.commit()

    async def test_recently_verified(self, db):
        form_id = uuid.uuid4()
        await self._add(db, form_id, CHANNEL_PHONE, "5125550100", verified_ago=timedelta(minutes=2))
        assert await OtpRecordVerifier(db).is_verified(form_id, CHANNEL_PHONE, "5125550100")

    async def test_outside_window(self, db):
        form_id = uuid.uuid4()
        await self._add(
            db, form_id, CHANNEL_PHONE, "5125550100",
            verified_ago=timedelta(hours=2), created_ago=timedelta(hours=2),
        )
        assert not await OtpRecordVerifier(db, window_minutes=30).is_verified(form_id, CHANNEL_PHONE, "5125550100")

    async def test_not_verified(self, db):
        form_id = uuid.uuid4()
        await self._add(db, form_id, CHANNEL_PHONE, "5125550100")
        assert not await OtpRecordVerifier(db).is_verified(form_id, CHANNEL_PHONE, "5125550100")

    async def test_no_record(self, db):
        assert not await OtpRecordVerifier(db).is_verified(uuid.uuid4(), CHANNEL_EMAIL, "a@b.co")

    async def test_email_compared_lowercased(self, db):
        form_id = uuid.uuid4()
        await self._add(db, form_id, CHANNEL_EMAIL, "jane@example.com", verified_ago=timedelta(minutes=1))
        assert await OtpRecordVerifier(db).is_verified(form_id, CHANNEL_EMAIL, " Jane@Example.com ")

    async def test_other_form_does_not_count(self, db):
        await self._add(db, uuid.uuid4(), CHANNEL_EMAIL, "jane@example.com", verified_ago=timedelta(minutes=1))
        assert not await OtpRecordVerifier(db).is_verified(uuid.uuid4(), CHANNEL_EMAIL, "jane@example.com")

    async def test_newest_record_decides(self, db):
        form_id = uuid.uuid4()
        await self._add(
            db, form_id, CHANNEL_PHONE, "5125550100",
            verified_ago=timedelta(minutes=5), created_ago=timedelta(minutes=6),
        )
        # A fresh code was requested afterwards and not confirmed yet
        await self._add(db, form_id, CHANNEL_PHONE, "5125550100", created_ago=timedelta(minutes=1))
        assert not await OtpRecordVerifier(db).is_verified(form_id, CHANNEL_PHONE, "5125550100")


# ---------------------------------------------------------------------------
# check_verification_gates
# ---------------------------------------------------------------------------


class TestAntiSpamGate:
    async def test_skipped_when_site_not_configured(self):
        anti_spam = StubAntiSpam(success=False)
        error = await check_verification_gates(
            _schema(), {}, uuid.uuid4(), None, anti_spam, StubPasscodes(),
            _settings(recaptcha_site_key="", recaptcha_secret_key=""),
        )
        assert error is None
        assert anti_spam.tokens == []

    async def test_skipped_when_form_disables_it(self):
        anti_spam = StubAntiSpam(success=False)
        error = await check_verification_gates(
            _schema({"recaptchaEnabled": False}), {}, uuid.uuid4(), None, anti_spam, StubPasscodes(), _settings(),
        )
        assert error is None
        assert anti_spam.tokens == []

    async def test_missing_token(self):
        error = await check_verification_gates(
            _schema(), {}, uuid.uuid4(), "  ", StubAntiSpam(), StubPasscodes(), _settings(),
        )
        assert error == ERROR_TOKEN_MISSING

    async def test_rejected_token(self):
        error = await check_verification_gates(
            _schema(), {}, uuid.uuid4(), "tok", StubAntiSpam(success=False), StubPasscodes(), _settings(),
        )
        assert error == ERROR_TOKEN_REJECTED

    async def test_accepted_token(self):
        anti_spam = StubAntiSpam(success=True)
        error = await check_verification_gates(
            _schema(), {}, uuid.uuid4(), "tok", anti_spam, StubPasscodes(), _settings(),
        )
        assert error is None
        assert anti_spam.tokens == ["tok"]

    async def test_bypass_token_outside_production(self):
        anti_spam = StubAntiSpam(success=False)
        error = await check_verification_gates(
            _schema(), {}, uuid.uuid4(), "dev-bypass", anti_spam, StubPasscodes(), _settings(app_env="development"),
        )
        assert error is None
        assert anti_spam.tokens == []

    async def test_bypass_token_ignored_in_production(self):
        anti_spam = StubAntiSpam(success=False)
        error = await check_verification_gates(
            _schema(), {}, uuid.uuid4(), "dev-bypass", anti_spam, StubPasscodes(), _settings(app_env="production"),
        )
        assert error == ERROR_TOKEN_REJECTED
        assert anti_spam.tokens == ["dev-bypass"]


class TestOtpGates:
    async def test_phone_missing(self):
        error = await check_verification_gates(
            _schema({"mobileOtpEnabled": True, "recaptchaEnabled": False}),
            {"f_email": "jane@example.com"}, uuid.uuid4(), None, StubAntiSpam(), StubPasscodes(), _settings(),
        )
        assert error == ERROR_PHONE_MISSING

    async def test_phone_unverified(self):
        error = await check_verification_gates(
            _schema({"mobileOtpEnabled": True, "recaptchaEnabled": False}),
            {"f_phone": "5125550100"}, uuid.uuid4(), None, StubAntiSpam(), StubPasscodes(), _settings(),
        )
        assert error == ERROR_PHONE_UNVERIFIED

    async def test_phone_verified(self):
        passcodes = StubPasscodes({(CHANNEL_PHONE, "5125550100")})
        error = await check_verification_gates(
            _schema({"mobileOtpEnabled": True, "recaptchaEnabled": False}),
            {"f_phone": " 5125550100 "}, uuid.uuid4(), None, StubAntiSpam(), passcodes, _settings(),
        )
        assert error is None
        assert passcodes.calls == [(CHANNEL_PHONE, "5125550100")]

    async def test_email_missing(self):
        error = await check_verification_gates(
            _schema({"emailOtpEnabled": True, "recaptchaEnabled": False}),
            {}, uuid.uuid4(), None, StubAntiSpam(), StubPasscodes(), _settings(),
        )
        assert error == ERROR_EMAIL_MISSING

    async def test_email_unverified(self):
        error = await check_verification_gates(
            _schema({"emailOtpEnabled": True, "recaptchaEnabled": False}),
            {"f_email": "jane@example.com"}, uuid.uuid4(), None, StubAntiSpam(), StubPasscodes(), _settings(),
        )
        assert error == ERROR_EMAIL_UNVERIFIED

    async def test_phone_checked_before_email(self):
        error = await check_verification_gates(
            _schema({"emailOtpEnabled": True, "mobileOtpEnabled": True, "recaptchaEnabled": False}),
            {}, uuid.uuid4(), None, StubAntiSpam(), StubPasscodes(), _settings(),
        )
        assert error == ERROR_PHONE_MISSING

    async def test_anti_spam_checked_before_otp(self):
        error = await check_verification_gates(
            _schema({"mobileOtpEnabled": True}),
            {}, uuid.uuid4(), "", StubAntiSpam(), StubPasscodes(), _settings(),
        )
        assert error == ERROR_TOKEN_MISSING
