"""Store report endpoints for the dashboard."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from storepulse.core.deps import get_db, get_tenant_or_404
from storepulse.core.rate_limit import REPORTS_RATE_LIMIT, limiter
from storepulse.models.tenant import Tenant
from storepulse.schemas.reports import (
    AbandonedCartSummary,
    CategoryRevenue,
    DailyCount,
    OrderPoint,
    StatsSummary,
    TopCustomer,
    TopProduct,
)
from storepulse.services.report_service import ReportService

router = APIRouter()


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start_date must not be after end_date",
        )


@router.get("/stats", response_model=StatsSummary)
@limiter.limit(REPORTS_RATE_LIMIT)
async def stats(
    request: Request,  # noqa: ARG001
    tenant: Tenant = Depends(get_tenant_or_404),
    db: AsyncSession = Depends(get_db),
) -> StatsSummary:
    """Total customers, total orders and paid revenue."""
    return await ReportService(db).get_stats(tenant.id)


@router.get("/orders-by-date", response_model=list[OrderPoint])
@limiter.limit(REPORTS_RATE_LIMIT)
async def orders_by_date(
    request: Request,  # noqa: ARG001
    start_date: date = Query(...),
    end_date: date = Query(...),
    tenant: Tenant = Depends(get_tenant_or_404),
    db: AsyncSession = Depends(get_db),
) -> list[OrderPoint]:
    """Orders placed between two dates (inclusive), oldest first."""
    _check_range(start_date, end_date)
    return await ReportService(db).get_orders_by_date(tenant.id, start_date, end_date)


@router.get("/new-customers-by-date", response_model=list[DailyCount])
@limiter.limit(REPORTS_RATE_LIMIT)
async def new_customers_by_date(
    request: Request,  # noqa: ARG001
    start_date: date = Query(...),
    end_date: date = Query(...),
    tenant: Tenant = Depends(get_tenant_or_404),
    db: AsyncSession = Depends(get_db),
) -> list[DailyCount]:
    """Daily new customer counts between two dates (inclusive)."""
    _check_range(start_date, end_date)
    return await ReportService(db).get_new_customers_by_date(tenant.id, start_date, end_date)


@router.get("/top-customers", response_model=list[TopCustomer])
@limiter.limit(REPORTS_RATE_LIMIT)
async def top_customers(
    request: Request,  # noqa: ARG001
    limit: int = Query(5, ge=1, le=100),
    tenant: Tenant = Depends(get_tenant_or_404),
    db: AsyncSession = Depends(get_db),
) -> list[TopCustomer]:
    return await ReportService(db).get_top_customers(tenant.id, limit)


@router.get("/top-products", response_model=list[TopProduct])
@limiter.limit(REPORTS_RATE_LIMIT)
async def top_products(
    request: Request,  # noqa: ARG001
    limit: int = Query(5, ge=1, le=100),
    tenant: Tenant = Depends(get_tenant_or_404),
    db: AsyncSession = Depends(get_db),
) -> list[TopProduct]:
    return await ReportService(db).get_top_products(tenant.id, limit)


@router.get("/category-revenue", response_model=list[CategoryRevenue])
@limiter.limit(REPORTS_RATE_LIMIT)
async def category_revenue(
    request: Request,  # noqa: ARG001
    tenant: Tenant = Depends(get_tenant_or_404),
    db: AsyncSession = Depends(get_db),
) -> list[CategoryRevenue]:
    """Paid revenue per product type."""
    return await ReportService(db).get_category_revenue(tenant.id)


@router.get("/abandoned-carts", response_model=AbandonedCartSummary)
@limiter.limit(REPORTS_RATE_LIMIT)
async def abandoned_carts(
    request: Request,  # noqa: ARG001
    tenant: Tenant = Depends(get_tenant_or_404),
    db: AsyncSession = Depends(get_db),
) -> AbandonedCartSummary:
    return await ReportService(db).get_abandoned_carts(tenant.id)
