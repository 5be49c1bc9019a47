"""
Lead model - one accepted form submission.
Submitted values are stored in `data` under semantic field keys (see services.field_keys).
The record is immutable after creation except for stage, assignee and follow-up date.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadcapture.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    form_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("forms.id")
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )

    # Submission values keyed by semantic key
    data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    # Source attribution
    utm_source: Mapped[Optional[str]] = mapped_column(String(255))
    utm_medium: Mapped[Optional[str]] = mapped_column(String(255))
    utm_campaign: Mapped[Optional[str]] = mapped_column(String(255))
    utm_term: Mapped[Optional[str]] = mapped_column(String(255))
    utm_content: Mapped[Optional[str]] = mapped_column(String(255))
    referrer_url: Mapped[Optional[str]] = mapped_column(Text)
    landing_page_url: Mapped[Optional[str]] = mapped_column(Text)

    # Request metadata
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(Text)

    # Pipeline (mutable)
    stage_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pipeline_stages.id")
    )
    assigned_to_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    follow_up_by: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    stage: Mapped[Optional["PipelineStage"]] = relationship(lazy="joined")
    activities: Mapped[list["LeadActivity"]] = relationship(
        back_populates="lead", lazy="select", order_by="LeadActivity.created_at"
    )

    __table_args__ = (
        Index("ix_leads_tenant_id", "tenant_id"),
        Index("ix_leads_form_id", "form_id"),
        Index("ix_leads_stage_id", "stage_id"),
        Index("ix_leads_tenant_created_at", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Lead {str(self.id)[:8]} form={str(self.form_id)[:8]}>"
