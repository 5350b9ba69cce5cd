"""Report Pydantic schemas for the store dashboard."""

from datetime import datetime
from decimal import Decimal

from storepulse.schemas.common import BaseSchema


class StatsSummary(BaseSchema):
    """Headline numbers for a tenant."""

    total_customers: int
    total_orders: int
    total_revenue: Decimal  # paid orders only


class OrderPoint(BaseSchema):
    """Single order on the revenue timeline."""

    created_at: datetime
    total_price: Decimal


class DailyCount(BaseSchema):
    """Single day count for trend data."""

    date: str  # YYYY-MM-DD
    count: int


class TopCustomer(BaseSchema):
    name: str
    email: str | None
    total_spend: Decimal


class TopProduct(BaseSchema):
    name: str
    revenue: Decimal


class CategoryRevenue(BaseSchema):
    """Revenue for one product type."""

    name: str
    value: Decimal


class AbandonedCartSummary(BaseSchema):
    abandoned: int
    checkout_started: int
