"""Order, line item and transaction models synced from Shopify order webhooks."""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storepulse.models.base import Base, TenantScopedMixin

if TYPE_CHECKING:
    from storepulse.models.customer import Customer
    from storepulse.models.product import Product
    from storepulse.models.tenant import Tenant


class Order(TenantScopedMixin, Base):
    """A placed order.

    customer_id is null for guest orders and for orders whose customer has
    not been synced.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("shopify_order_id", "tenant_id", name="uq_orders_shopify_order_tenant"),
    )

    shopify_order_id: Mapped[str] = mapped_column(String(255), nullable=False)
    order_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    financial_status: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    fulfillment_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="orders")
    customer: Mapped["Customer | None"] = relationship("Customer")
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} ({self.shopify_order_id})>"


class OrderItem(TenantScopedMixin, Base):
    """A line item of an order. product_id stays null if the product is unknown."""

    __tablename__ = "order_items"
    __table_args__ = (
        UniqueConstraint(
            "shopify_line_item_id", "tenant_id", name="uq_order_items_shopify_line_item_tenant"
        ),
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    shopify_line_item_id: Mapped[str] = mapped_column(String(255), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped["Product | None"] = relationship("Product")

    def __repr__(self) -> str:
        return f"<OrderItem {self.shopify_line_item_id} x{self.quantity}>"


class Transaction(TenantScopedMixin, Base):
    """A payment transaction (sale, capture, refund, ...) on an order."""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint(
            "shopify_transaction_id",
            "tenant_id",
            name="uq_transactions_shopify_transaction_tenant",
        ),
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shopify_transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    kind: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<Transaction {self.kind} {self.amount} ({self.shopify_transaction_id})>"
