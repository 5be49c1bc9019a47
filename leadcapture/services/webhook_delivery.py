"""
Webhook delivery engine - fans one lead event out to every matching subscription.

Per dispatch:
1. Load the tenant's active subscriptions for the event (none -> no-op)
2. Build and serialize the payload once; every subscription gets the same bytes
3. Deliver to all subscriptions concurrently
4. Per subscription: up to MAX_ATTEMPTS sequential POSTs, WEBHOOK_TIMEOUT_SECONDS each,
   RETRY_DELAY_SECONDS between attempts, then exactly one delivery log row

Delivery is at-least-once and best-effort. Retries live in memory for the
lifetime of one dispatch; a restart mid-retry drops the remaining attempts.
Nothing here ever raises to the caller - outcomes are recorded in webhook_logs.
"""
import asyncio
import hashlib
import hmac
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.database import SessionFactory, resolve_session_factory
from leadcapture.models.webhook import WebhookDeliveryLog, WebhookSubscription
from leadcapture.services.webhook_payload import (
    EVENT_LEAD_CREATED,
    SAMPLE_LEAD,
    LeadSnapshot,
    build_event_payload,
    is_valid_event,
    serialize_payload,
)
from leadcapture.utils.background import spawn

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
WEBHOOK_TIMEOUT_SECONDS = 5.0
RETRY_DELAY_SECONDS = 1.5
SIGNATURE_HEADER = "x-webhook-signature"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class WebhookTarget:
    """Detached copy of a subscription row, safe to use after its session closes."""
    id: uuid.UUID
    url: str
    secret_key: Optional[str] = None

    @classmethod
    def from_subscription(cls, subscription: WebhookSubscription) -> "WebhookTarget":
        return cls(id=subscription.id, url=subscription.url, secret_key=subscription.secret_key)


@dataclass(frozen=True)
class AttemptOutcome:
    http_status: Optional[int]
    response_time_ms: int
    error: Optional[str]

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DeliveryResult:
    webhook_id: uuid.UUID
    event: str
    target_url: str
    status: str
    http_status: Optional[int]
    response_time_ms: Optional[int]
    attempt_count: int
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == STATUS_SUCCESS


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the exact body bytes."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def build_headers(body: bytes, secret_key: Optional[str]) -> dict[str, str]:
    """JSON content type, plus the signature header only when a secret is configured."""
    headers = {"Content-Type": "application/json"}
    if secret_key:
        headers[SIGNATURE_HEADER] = compute_signature(body, secret_key)
    return headers


async def post_once(url: str, body: bytes, headers: dict[str, str]) -> AttemptOutcome:
    """One POST with its own timeout. Transport errors become a failed outcome, never an exception."""
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS, follow_redirects=True) as client:
            response = await client.post(url, content=body, headers=headers)
    except Exception as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        return AttemptOutcome(http_status=None, response_time_ms=elapsed_ms, error=str(e) or type(e).__name__)

    elapsed_ms = int((time.monotonic() - start) * 1000)
    status = response.status_code
    if 200 <= status < 300:
        return AttemptOutcome(http_status=status, response_time_ms=elapsed_ms, error=None)
    return AttemptOutcome(http_status=status, response_time_ms=elapsed_ms, error=f"HTTP {status}")


def _log_row(result: DeliveryResult) -> WebhookDeliveryLog:
    return WebhookDeliveryLog(
        webhook_id=result.webhook_id,
        event=result.event,
        target_url=result.target_url,
        status=result.status,
        http_status=result.http_status,
        response_time_ms=result.response_time_ms,
        attempt_count=result.attempt_count,
        error_message=result.error_message,
    )


async def write_delivery_log(result: DeliveryResult, session_factory: Optional[SessionFactory] = None) -> None:
    """Append the terminal log row in its own session. A write failure is logged, not raised."""
    session_factory = resolve_session_factory(session_factory)
    try:
        async with session_factory() as db:
            db.add(_log_row(result))
            await db.commit()
    except Exception as e:
        logger.error(
            "Failed to write delivery log for webhook %s (%s, %s): %s",
            str(result.webhook_id)[:8], result.event, result.status, str(e),
        )


async def deliver_to_subscription(
    target: WebhookTarget,
    event: str,
    body: bytes,
    session_factory: Optional[SessionFactory] = None,
) -> DeliveryResult:
    """
    Attempt delivery up to MAX_ATTEMPTS times, strictly in sequence.
    Writes exactly one log row once the loop ends (success or exhaustion).
    """
    headers = build_headers(body, target.secret_key)
    outcome: Optional[AttemptOutcome] = None

    for attempt in range(1, MAX_ATTEMPTS + 1):
        outcome = await post_once(target.url, body, headers)

        if outcome.ok:
            result = DeliveryResult(
                webhook_id=target.id,
                event=event,
                target_url=target.url,
                status=STATUS_SUCCESS,
                http_status=outcome.http_status,
                response_time_ms=outcome.response_time_ms,
                attempt_count=attempt,
            )
            logger.info(
                "Webhook %s delivered %s on attempt %d (HTTP %s, %dms)",
                str(target.id)[:8], event, attempt, outcome.http_status, outcome.response_time_ms,
                extra={"webhook_id": str(target.id), "event": event},
            )
            await write_delivery_log(result, session_factory)
            return result

        logger.warning(
            "Webhook %s attempt %d/%d for %s failed: %s",
            str(target.id)[:8], attempt, MAX_ATTEMPTS, event, outcome.error,
            extra={"webhook_id": str(target.id), "event": event},
        )
        if attempt < MAX_ATTEMPTS:
            await asyncio.sleep(RETRY_DELAY_SECONDS)

    result = DeliveryResult(
        webhook_id=target.id,
        event=event,
        target_url=target.url,
        status=STATUS_FAILED,
        http_status=outcome.http_status,
        response_time_ms=outcome.response_time_ms,
        attempt_count=MAX_ATTEMPTS,
        error_message=outcome.error,
    )
    logger.error(
        "Webhook %s gave up on %s after %d attempts: %s",
        str(target.id)[:8], event, MAX_ATTEMPTS, outcome.error,
        extra={"webhook_id": str(target.id), "event": event},
    )
    await write_delivery_log(result, session_factory)
    return result


async def load_subscriptions(
    tenant_id: uuid.UUID,
    event: str,
    session_factory: Optional[SessionFactory] = None,
) -> list[WebhookTarget]:
    """Active subscriptions of one tenant for one event, read at call time."""
    session_factory = resolve_session_factory(session_factory)
    async with session_factory() as db:
        result = await db.execute(
            select(WebhookSubscription).where(
                WebhookSubscription.tenant_id == tenant_id,
                WebhookSubscription.trigger_event == event,
                WebhookSubscription.active.is_(True),
            )
        )
        return [WebhookTarget.from_subscription(s) for s in result.scalars().all()]


async def deliver_event(
    tenant_id: uuid.UUID,
    event: str,
    lead: LeadSnapshot,
    session_factory: Optional[SessionFactory] = None,
) -> list[DeliveryResult]:
    """Load matching subscriptions and deliver to all of them concurrently."""
    if not is_valid_event(event):
        logger.warning("Ignoring dispatch for unknown webhook event %r", event)
        return []

    targets = await load_subscriptions(tenant_id, event, session_factory)
    if not targets:
        return []

    payload = build_event_payload(event, lead)
    body = serialize_payload(payload)

    outcomes = await asyncio.gather(
        *(deliver_to_subscription(t, event, body, session_factory) for t in targets),
        return_exceptions=True,
    )

    results: list[DeliveryResult] = []
    for target, outcome in zip(targets, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(
                "Webhook %s delivery task crashed for %s: %s",
                str(target.id)[:8], event, str(outcome),
            )
            continue
        results.append(outcome)
    return results


def dispatch_webhooks(tenant_id: uuid.UUID, event: str, lead: LeadSnapshot) -> None:
    """Fire-and-forget: schedule delivery in the background and return immediately."""
    spawn(
        deliver_event(tenant_id, event, lead),
        name=f"webhooks:{event}:{lead.id[:8]}",
    )


@dataclass(frozen=True)
class WebhookTestResult:
    success: bool
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


async def send_test_webhook(
    db: AsyncSession,
    webhook_id: uuid.UUID,
    tenant_id: uuid.UUID,
) -> WebhookTestResult:
    """Send the sample lead payload once (no retry) and log the attempt."""
    result = await db.execute(
        select(WebhookSubscription).where(
            WebhookSubscription.id == webhook_id,
            WebhookSubscription.tenant_id == tenant_id,
        )
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        return WebhookTestResult(success=False, error="Webhook not found")

    body = serialize_payload(build_event_payload(EVENT_LEAD_CREATED, SAMPLE_LEAD))
    outcome = await post_once(subscription.url, body, build_headers(body, subscription.secret_key))

    db.add(_log_row(DeliveryResult(
        webhook_id=subscription.id,
        event=EVENT_LEAD_CREATED,
        target_url=subscription.url,
        status=STATUS_SUCCESS if outcome.ok else STATUS_FAILED,
        http_status=outcome.http_status,
        response_time_ms=outcome.response_time_ms,
        attempt_count=1,
        error_message=outcome.error,
    )))
    await db.flush()

    return WebhookTestResult(
        success=outcome.ok,
        status_code=outcome.http_status,
        response_time_ms=outcome.response_time_ms,
        error=outcome.error,
    )
