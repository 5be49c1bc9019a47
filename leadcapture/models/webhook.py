"""
Outbound webhook subscriptions and their delivery audit trail.

A subscription is created by the tenant and read by the delivery engine.
A delivery log row is written once per attempt sequence (not per HTTP call)
and never updated afterwards.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadcapture.database import Base


class WebhookSubscription(Base):
    __tablename__ = "webhooks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="Webhook")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_event: Mapped[str] = mapped_column(
        String(40), nullable=False
    )  # lead.created, lead.stage_changed, lead.won
    secret_key: Mapped[Optional[str]] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    logs: Mapped[list["WebhookDeliveryLog"]] = relationship(
        back_populates="webhook", lazy="select", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_webhooks_tenant_event_active", "tenant_id", "trigger_event", "active"),
    )

    def __repr__(self) -> str:
        return f"<WebhookSubscription {self.name!r} event={self.trigger_event} active={self.active}>"


class WebhookDeliveryLog(Base):
    __tablename__ = "webhook_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    webhook_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False
    )
    event: Mapped[str] = mapped_column(String(40), nullable=False)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success, failed
    http_status: Mapped[Optional[int]] = mapped_column(Integer)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    webhook: Mapped["WebhookSubscription"] = relationship(back_populates="logs")

    __table_args__ = (
        Index("ix_webhook_logs_webhook_id", "webhook_id"),
        Index("ix_webhook_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<WebhookDeliveryLog {self.event} status={self.status} attempts={self.attempt_count}>"
