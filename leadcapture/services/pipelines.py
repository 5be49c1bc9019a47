"""
Pipelines and stage changes.

Moving a lead is the only mutation of a stored lead the core performs.
The change is committed before lead.stage_changed (and lead.won) go out.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.models.pipeline import Pipeline, PipelineStage
from leadcapture.services.dispatcher import dispatch_stage_changed
from leadcapture.services.leads import get_lead, record_activity
from leadcapture.services.webhook_payload import DEFAULT_STAGE, LeadSnapshot

logger = logging.getLogger(__name__)

DEFAULT_STAGES = ("To Contact", "Contacted", "Won")

ACTIVITY_STAGE_CHANGED = "stage_changed"


class LeadNotFoundError(Exception):
    def __init__(self, message: str = "Lead not found"):
        super().__init__(message)
        self.message = message


class StageNotFoundError(Exception):
    def __init__(self, message: str = "Stage not found"):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class MoveResult:
    lead_id: uuid.UUID
    from_stage: Optional[str]
    to_stage: str


async def get_or_create_pipeline(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    form_id: Optional[uuid.UUID],
) -> Pipeline:
    """The form's pipeline, created with the default stages on first use."""
    result = await db.execute(
        select(Pipeline).where(Pipeline.tenant_id == tenant_id, Pipeline.form_id == form_id)
    )
    pipeline = result.scalars().first()
    if pipeline is not None:
        return pipeline

    pipeline = Pipeline(
        tenant_id=tenant_id,
        form_id=form_id,
        name="Default",
        stages=[PipelineStage(name=name, order=i) for i, name in enumerate(DEFAULT_STAGES)],
    )
    db.add(pipeline)
    await db.flush()
    logger.info(
        "Created default pipeline for form %s", str(form_id)[:8],
        extra={"tenant_id": str(tenant_id), "form_id": str(form_id)},
    )
    return pipeline


async def get_stage_for_tenant(
    db: AsyncSession,
    stage_id: uuid.UUID,
    tenant_id: uuid.UUID,
) -> Optional[PipelineStage]:
    result = await db.execute(
        select(PipelineStage)
        .join(Pipeline, PipelineStage.pipeline_id == Pipeline.id)
        .where(PipelineStage.id == stage_id, Pipeline.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def move_lead(
    db: AsyncSession,
    lead_id: uuid.UUID,
    tenant_id: uuid.UUID,
    stage_id: Optional[uuid.UUID],
) -> MoveResult:
    """
    Move a lead to a stage of one of the tenant's pipelines, or back to "New" with None.
    Raises LeadNotFoundError / StageNotFoundError for anything outside the tenant.
    """
    lead = await get_lead(db, lead_id, tenant_id)
    if lead is None:
        raise LeadNotFoundError()

    stage = None
    if stage_id is not None:
        stage = await get_stage_for_tenant(db, stage_id, tenant_id)
        if stage is None:
            raise StageNotFoundError()

    from_stage_id = lead.stage_id
    from_stage = None
    if from_stage_id is not None:
        previous = await db.get(PipelineStage, from_stage_id)
        from_stage = previous.name if previous is not None else None
    to_stage = stage.name if stage is not None else DEFAULT_STAGE

    lead.stage = stage
    await db.commit()

    snapshot = LeadSnapshot.from_lead(lead, stage_name=to_stage)
    dispatch_stage_changed(tenant_id, snapshot)

    logger.info(
        "Lead %s moved: %s -> %s", str(lead_id)[:8], from_stage or DEFAULT_STAGE, to_stage,
        extra={"lead_id": str(lead_id), "tenant_id": str(tenant_id)},
    )

    await record_activity(db, lead_id, ACTIVITY_STAGE_CHANGED, {
        "stage_id": str(stage.id) if stage is not None else None,
        "stage_name": to_stage,
        "from_stage_id": str(from_stage_id) if from_stage_id else None,
        "from_stage_name": from_stage,
    })

    return MoveResult(lead_id=lead_id, from_stage=from_stage, to_stage=to_stage)
