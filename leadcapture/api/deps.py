"""
Shared API dependencies.

Sessions and sign-in live in the upstream auth proxy, which forwards the
authenticated tenant as the X-Tenant-ID header on every dashboard request.
"""
import uuid
from typing import Optional
from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from leadcapture.database import get_db
from leadcapture.models.tenant import Tenant


async def get_current_tenant(
    x_tenant_id: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Tenant:
    """Dependency resolving the authenticated tenant."""
    if not x_tenant_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        tenant_uuid = uuid.UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid tenant")

    result = await db.execute(select(Tenant).where(Tenant.id == tenant_uuid))
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise HTTPException(status_code=401, detail="Tenant not found")
    return tenant

