"""Customer model synced from Shopify customer webhooks."""

from typing import TYPE_CHECKING

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storepulse.models.base import Base, TenantScopedMixin

if TYPE_CHECKING:
    from storepulse.models.tenant import Tenant


class Customer(TenantScopedMixin, Base):
    """A shop's customer.

    Orders and carts reference customers optionally; guest checkouts have no
    customer row.
    """

    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint(
            "shopify_customer_id", "tenant_id", name="uq_customers_shopify_customer_tenant"
        ),
    )

    shopify_customer_id: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Default address, stored as serialized JSON text
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="customers")

    def __repr__(self) -> str:
        return f"<Customer {self.email} ({self.shopify_customer_id})>"
