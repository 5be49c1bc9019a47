"""
Plan-based submission limits.

Central source of truth for what each plan includes. The monthly lead cap is
checked against the durable store at submission time; two submissions arriving
together may both pass the check (accepted approximation).
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from leadcapture.models.lead import Lead
from leadcapture.models.tenant import Tenant


PLAN_LIMITS: dict[str, dict] = {
    "free": {
        "monthly_lead_limit": 50,
        "email_alerts": False,
    },
    "pro": {
        "monthly_lead_limit": None,  # unlimited
        "email_alerts": True,
    },
    "business": {
        "monthly_lead_limit": None,  # unlimited
        "email_alerts": True,
    },
}


def get_plan_limits(plan: str) -> dict:
    """Get limits for a given plan. Defaults to free for unknown plans."""
    return PLAN_LIMITS.get(plan, PLAN_LIMITS["free"])


def get_monthly_lead_limit(plan: str) -> Optional[int]:
    """Get the monthly lead limit. None means unlimited."""
    return get_plan_limits(plan)["monthly_lead_limit"]


def has_email_alerts(plan: str) -> bool:
    """Check if new-lead email alerts are included in this plan."""
    return get_plan_limits(plan)["email_alerts"]


def start_of_month(now: Optional[datetime] = None) -> datetime:
    """First instant of the current UTC month."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def lead_limit_message(limit: int) -> str:
    return f"Monthly lead limit ({limit}) reached for the free plan. Upgrade to accept more."


async def count_leads_this_month(db: AsyncSession, tenant_id) -> int:
    result = await db.execute(
        select(func.count(Lead.id)).where(
            Lead.tenant_id == tenant_id,
            Lead.created_at >= start_of_month(),
        )
    )
    return result.scalar() or 0


async def check_monthly_lead_quota(db: AsyncSession, tenant: Tenant) -> Optional[str]:
    """Returns the limit-reached message when the tenant is at or over its cap, else None."""
    limit = get_monthly_lead_limit(tenant.plan)
    if limit is None:
        return None
    used = await count_leads_this_month(db, tenant.id)
    if used >= limit:
        return lead_limit_message(limit)
    return None
