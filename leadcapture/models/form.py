"""
Form model - a published lead capture form.
The field list and settings live in the schema JSON document written by the form builder.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadcapture.database import Base


class Form(Base):
    __tablename__ = "forms"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # {"fields": [...], "settings": {...}} - parsed with schemas.form_schema.parse_form_schema
    schema: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)

    # Set when the tenant's plan no longer covers this form
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="forms", lazy="joined")

    __table_args__ = (
        Index("ix_forms_tenant_id", "tenant_id"),
    )

    def __repr__(self) -> str:
        return f"<Form {self.name!r}>"
