"""Tenant model: one row per Shopify shop sending webhooks."""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storepulse.models.base import Base

if TYPE_CHECKING:
    from storepulse.models.cart import Cart
    from storepulse.models.customer import Customer
    from storepulse.models.order import Order
    from storepulse.models.product import Product


class Tenant(Base):
    """A Shopify shop, created lazily the first time it sends a webhook.

    Every synced entity is scoped to a tenant. Tenants are never deleted by
    the ingestion pipeline.
    """

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    shop_domain: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Relationships
    customers: Mapped[list["Customer"]] = relationship(
        "Customer",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )
    products: Mapped[list["Product"]] = relationship(
        "Product",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )
    orders: Mapped[list["Order"]] = relationship(
        "Order",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )
    carts: Mapped[list["Cart"]] = relationship(
        "Cart",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.name} ({self.shop_domain})>"
