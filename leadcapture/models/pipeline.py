"""
Pipeline and stage models - the columns a tenant moves leads through.
A lead with no stage sits in the implicit "New" column.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadcapture.database import Base


class Pipeline(Base):
    __tablename__ = "pipelines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )
    form_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("forms.id")
    )
    name: Mapped[str] = mapped_column(String(100), default="Default", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    stages: Mapped[list["PipelineStage"]] = relationship(
        back_populates="pipeline", lazy="selectin", order_by="PipelineStage.order"
    )

    __table_args__ = (
        Index("ix_pipelines_tenant_form", "tenant_id", "form_id"),
    )


class PipelineStage(Base):
    __tablename__ = "pipeline_stages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pipelines.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    pipeline: Mapped["Pipeline"] = relationship(back_populates="stages")

    __table_args__ = (
        Index("ix_pipeline_stages_pipeline_id", "pipeline_id"),
    )

    def __repr__(self) -> str:
        return f"<PipelineStage {self.name!r} order={self.order}>"
