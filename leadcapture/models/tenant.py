"""
Tenant model - an account owning forms, leads, pipelines and webhook subscriptions.
Account and billing management live elsewhere; the ingestion core reads plan and email.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadcapture.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[Optional[str]] = mapped_column(String(255))
    username: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    plan: Mapped[str] = mapped_column(
        String(30), default="free", nullable=False
    )  # free, pro, business

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    forms: Mapped[list["Form"]] = relationship(back_populates="tenant", lazy="select")

    def __repr__(self) -> str:
        return f"<Tenant {self.username} plan={self.plan}>"
