"""Tenant resolution: map a shop domain to its tenant, creating it on first sight."""

import logging

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from storepulse.models.tenant import Tenant

logger = logging.getLogger(__name__)


def normalize_shop_domain(shop_domain: str) -> str:
    """Lowercase and strip a shop domain so lookups are stable."""
    return shop_domain.strip().lower()


def tenant_name_from_domain(shop_domain: str) -> str:
    """Derive a display name from the first label of the domain."""
    return shop_domain.split(".")[0]


async def get_tenant_by_domain(session: AsyncSession, shop_domain: str) -> Tenant | None:
    stmt = select(Tenant).where(Tenant.shop_domain == normalize_shop_domain(shop_domain))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_tenant(session: AsyncSession, shop_domain: str) -> Tenant:
    """Return the tenant for a shop domain, creating it if needed.

    Safe under concurrent callers: the insert relies on the unique constraint
    on shop_domain and does nothing on conflict, in which case the row another
    worker created is fetched instead. Two workers resolving the same new
    domain therefore always end up with the same single tenant.

    Does not commit; the caller owns the transaction.
    """
    domain = normalize_shop_domain(shop_domain)
    if not domain:
        raise ValueError("shop domain is empty")

    tenant = await get_tenant_by_domain(session, domain)
    if tenant is not None:
        return tenant

    stmt = (
        pg_insert(Tenant)
        .values(name=tenant_name_from_domain(domain), shop_domain=domain)
        .on_conflict_do_nothing(index_elements=["shop_domain"])
        .returning(Tenant.id)
    )
    created_id = (await session.execute(stmt)).scalar_one_or_none()

    tenant = await get_tenant_by_domain(session, domain)
    if tenant is None:
        # Only reachable under REPEATABLE READ or stricter isolation
        raise RuntimeError(f"Tenant for {domain} could not be resolved")

    if created_id is not None:
        logger.info("Created new tenant: name=%s domain=%s", tenant.name, domain)
    return tenant
