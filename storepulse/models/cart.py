"""Cart model for Shopify carts and the checkouts that grow out of them."""

import enum
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


class CartStatus(str, enum.Enum):
    """Lifecycle stage of a cart."""

    ACTIVE = "active"
    CHECKOUT_STARTED = "checkout_started"
    ABANDONED = "abandoned"


class Cart(TenantScopedMixin, Base):
    """A cart keyed by its Shopify cart token.

    Checkout webhooks carry the same cart token, so a checkout is stored as
    the same row in a later lifecycle stage rather than as its own entity.
    """

    __tablename__ = "carts"
    __table_args__ = (
        UniqueConstraint("shopify_cart_token", "tenant_id", name="uq_carts_shopify_cart_tenant"),
    )

    shopify_cart_token: Mapped[str] = mapped_column(String(255), nullable=False)

    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=CartStatus.ACTIVE.value,
        index=True,
    )

    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="carts")
    customer: Mapped["Customer | None"] = relationship("Customer")
    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Cart {self.shopify_cart_token} ({self.status})>"


class CartItem(TenantScopedMixin, Base):
    """A line in a cart. Replaced wholesale on every cart update."""

    __tablename__ = "cart_items"

    cart_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Cart lines may not carry an id; synthesized as "<cart token>-<variant id>"
    shopify_line_item_id: Mapped[str] = mapped_column(String(255), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    cart: Mapped["Cart"] = relationship("Cart", back_populates="items")
    product: Mapped["Product | None"] = relationship("Product")

    def __repr__(self) -> str:
        return f"<CartItem {self.shopify_line_item_id} x{self.quantity}>"
