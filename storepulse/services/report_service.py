"""Store report service using SQL aggregation.

Every query is scoped to one tenant. Revenue figures only count orders whose
financial status is ``paid``.
"""

import logging
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import Date

from storepulse.models.cart import Cart, CartStatus
from storepulse.models.customer import Customer
from storepulse.models.order import Order, OrderItem
from storepulse.models.product import Product
from storepulse.schemas.reports import (
    AbandonedCartSummary,
    CategoryRevenue,
    DailyCount,
    OrderPoint,
    StatsSummary,
    TopCustomer,
    TopProduct,
)

logger = logging.getLogger(__name__)

PAID_STATUS = "paid"
UNCATEGORIZED = "Uncategorized"


def _day_bounds(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """Half-open UTC range covering both dates in full."""
    start = datetime.combine(start_date, time.min, tzinfo=UTC)
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=UTC)
    return start, end


class ReportService:
    """Read-only reports over a tenant's reconciled store data."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_stats(self, tenant_id: UUID) -> StatsSummary:
        """Customer and order totals plus paid revenue."""
        customers = (
            await self.db.execute(
                select(func.count()).select_from(Customer).where(Customer.tenant_id == tenant_id)
            )
        ).scalar() or 0

        # Order count + paid revenue in a single query
        stmt = select(
            func.count().label("orders"),
            func.coalesce(
                func.sum(Order.total_price).filter(Order.financial_status == PAID_STATUS), 0
            ).label("revenue"),
        ).where(Order.tenant_id == tenant_id)
        row = (await self.db.execute(stmt)).one()

        return StatsSummary(
            total_customers=customers,
            total_orders=row.orders or 0,
            total_revenue=Decimal(row.revenue),
        )

    async def get_orders_by_date(
        self, tenant_id: UUID, start_date: date, end_date: date
    ) -> list[OrderPoint]:
        """Orders created in the date range, oldest first."""
        start, end = _day_bounds(start_date, end_date)
        stmt = (
            select(Order.created_at, Order.total_price)
            .where(
                Order.tenant_id == tenant_id,
                Order.created_at >= start,
                Order.created_at < end,
            )
            .order_by(Order.created_at)
        )
        rows = (await self.db.execute(stmt)).all()
        return [OrderPoint(created_at=row.created_at, total_price=row.total_price) for row in rows]

    async def get_new_customers_by_date(
        self, tenant_id: UUID, start_date: date, end_date: date
    ) -> list[DailyCount]:
        """Daily counts of customers first seen in the date range."""
        start, end = _day_bounds(start_date, end_date)
        stmt = (
            select(
                cast(Customer.created_at, Date).label("day"),
                func.count().label("count"),
            )
            .where(
                Customer.tenant_id == tenant_id,
                Customer.created_at >= start,
                Customer.created_at < end,
            )
            .group_by("day")
            .order_by("day")
        )
        rows = (await self.db.execute(stmt)).all()
        return [DailyCount(date=str(row.day), count=row.count) for row in rows]

    async def get_top_customers(self, tenant_id: UUID, limit: int = 5) -> list[TopCustomer]:
        """Customers ranked by paid spend."""
        total_spend = func.sum(Order.total_price).label("total_spend")
        stmt = (
            select(Customer.first_name, Customer.last_name, Customer.email, total_spend)
            .join(Order, Order.customer_id == Customer.id)
            .where(
                Customer.tenant_id == tenant_id,
                Order.financial_status == PAID_STATUS,
            )
            .group_by(Customer.id)
            .order_by(total_spend.desc())
            .limit(limit)
        )
        rows = (await self.db.execute(stmt)).all()
        return [
            TopCustomer(
                name=" ".join(part for part in (row.first_name, row.last_name) if part),
                email=row.email,
                total_spend=row.total_spend,
            )
            for row in rows
        ]

    async def get_top_products(self, tenant_id: UUID, limit: int = 5) -> list[TopProduct]:
        """Products ranked by paid line-item revenue."""
        revenue = func.sum(OrderItem.price * OrderItem.quantity).label("revenue")
        stmt = (
            select(Product.title, revenue)
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, OrderItem.order_id == Order.id)
            .where(
                Product.tenant_id == tenant_id,
                Order.financial_status == PAID_STATUS,
            )
            .group_by(Product.id)
            .order_by(revenue.desc())
            .limit(limit)
        )
        rows = (await self.db.execute(stmt)).all()
        return [TopProduct(name=row.title, revenue=row.revenue) for row in rows]

    async def get_category_revenue(self, tenant_id: UUID) -> list[CategoryRevenue]:
        """Paid line-item revenue grouped by product type."""
        category = func.coalesce(func.nullif(Product.product_type, ""), UNCATEGORIZED).label(
            "category"
        )
        value = func.sum(OrderItem.price * OrderItem.quantity).label("value")
        stmt = (
            select(category, value)
            .select_from(OrderItem)
            .join(Order, OrderItem.order_id == Order.id)
            .outerjoin(Product, OrderItem.product_id == Product.id)
            .where(
                OrderItem.tenant_id == tenant_id,
                Order.financial_status == PAID_STATUS,
            )
            .group_by("category")
            .order_by(value.desc())
        )
        rows = (await self.db.execute(stmt)).all()
        return [CategoryRevenue(name=row.category, value=row.value) for row in rows]

    async def get_abandoned_carts(self, tenant_id: UUID) -> AbandonedCartSummary:
        """Counts of abandoned and checkout-started carts."""
        stmt = (
            select(Cart.status, func.count().label("count"))
            .where(
                Cart.tenant_id == tenant_id,
                Cart.status.in_([CartStatus.ABANDONED.value, CartStatus.CHECKOUT_STARTED.value]),
            )
            .group_by(Cart.status)
        )
        counts = {row.status: row.count for row in (await self.db.execute(stmt)).all()}
        return AbandonedCartSummary(
            abandoned=counts.get(CartStatus.ABANDONED.value, 0),
            checkout_started=counts.get(CartStatus.CHECKOUT_STARTED.value, 0),
        )
