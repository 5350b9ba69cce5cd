"""Product and variant models synced from Shopify product webhooks."""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storepulse.models.base import Base, TenantScopedMixin

if TYPE_CHECKING:
    from storepulse.models.tenant import Tenant


class Product(TenantScopedMixin, Base):
    """Product model synced from Shopify.

    The shopify_product_id is the external ID from Shopify. It is only unique
    within a tenant.
    """

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint(
            "shopify_product_id", "tenant_id", name="uq_products_shopify_product_tenant"
        ),
    )

    shopify_product_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Product data
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    handle: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    product_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="products")
    variants: Mapped[list["Variant"]] = relationship(
        "Variant",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Product {self.title} ({self.shopify_product_id})>"


class Variant(TenantScopedMixin, Base):
    """A purchasable variant of a product (size, colour, ...)."""

    __tablename__ = "variants"
    __table_args__ = (
        UniqueConstraint(
            "shopify_variant_id", "tenant_id", name="uq_variants_shopify_variant_tenant"
        ),
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shopify_variant_id: Mapped[str] = mapped_column(String(255), nullable=False)

    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="variants")

    def __repr__(self) -> str:
        return f"<Variant {self.sku} ({self.shopify_variant_id})>"
