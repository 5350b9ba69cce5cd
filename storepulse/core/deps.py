"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storepulse.core.database import get_async_session

if TYPE_CHECKING:
    from storepulse.models.tenant import Tenant
    from storepulse.workers.publisher import WebhookPublisher


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for the request."""
    async for session in get_async_session():
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


def get_webhook_publisher() -> "WebhookPublisher":
    """Publisher used by the webhook ingress. Overridden in tests."""
    from storepulse.workers.publisher import WebhookPublisher

    return WebhookPublisher()


async def get_tenant_or_404(
    tenant_id: UUID = Query(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_db),
) -> "Tenant":
    """Get tenant from query parameter.

    Used by the report endpoints, which are always scoped to one tenant.
    """
    from storepulse.models.tenant import Tenant

    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
    tenant = result.scalar_one_or_none()

    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found",
        )

    return tenant


__all__ = [
    "DBSession",
    "get_db",
    "get_tenant_or_404",
    "get_webhook_publisher",
]
