"""Initial schema: tenants and the Shopify entities synced from webhooks.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def _tenant_fk(table: str) -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.UUID(),
        sa.ForeignKey(
            "tenants.id", name=op.f(f"fk_{table}_tenant_id_tenants"), ondelete="CASCADE"
        ),
        nullable=False,
    )


def upgrade() -> None:
    # Create tenants table
    op.create_table(
        "tenants",
        *_base_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_tenants")),
    )
    op.create_index(op.f("ix_tenants_shop_domain"), "tenants", ["shop_domain"], unique=True)

    # Create customers table
    op.create_table(
        "customers",
        *_base_columns(),
        _tenant_fk("customers"),
        sa.Column("shopify_customer_id", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_customers")),
        sa.UniqueConstraint(
            "shopify_customer_id", "tenant_id", name="uq_customers_shopify_customer_tenant"
        ),
    )
    op.create_index(op.f("ix_customers_tenant_id"), "customers", ["tenant_id"])
    op.create_index(op.f("ix_customers_email"), "customers", ["email"])

    # Create products table
    op.create_table(
        "products",
        *_base_columns(),
        _tenant_fk("products"),
        sa.Column("shopify_product_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("handle", sa.String(255), nullable=True),
        sa.Column("vendor", sa.String(255), nullable=True),
        sa.Column("product_type", sa.String(255), nullable=True),
        sa.Column("image_url", sa.String(2048), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_products")),
        sa.UniqueConstraint(
            "shopify_product_id", "tenant_id", name="uq_products_shopify_product_tenant"
        ),
    )
    op.create_index(op.f("ix_products_tenant_id"), "products", ["tenant_id"])

    # Create variants table
    op.create_table(
        "variants",
        *_base_columns(),
        _tenant_fk("variants"),
        sa.Column(
            "product_id",
            sa.UUID(),
            sa.ForeignKey(
                "products.id", name=op.f("fk_variants_product_id_products"), ondelete="CASCADE"
            ),
            nullable=False,
        ),
        sa.Column("shopify_variant_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("sku", sa.String(255), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_variants")),
        sa.UniqueConstraint(
            "shopify_variant_id", "tenant_id", name="uq_variants_shopify_variant_tenant"
        ),
    )
    op.create_index(op.f("ix_variants_tenant_id"), "variants", ["tenant_id"])
    op.create_index(op.f("ix_variants_product_id"), "variants", ["product_id"])

    # Create orders table
    op.create_table(
        "orders",
        *_base_columns(),
        _tenant_fk("orders"),
        sa.Column("shopify_order_id", sa.String(255), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("financial_status", sa.String(50), nullable=True),
        sa.Column("fulfillment_status", sa.String(50), nullable=True),
        sa.Column(
            "customer_id",
            sa.UUID(),
            sa.ForeignKey(
                "customers.id", name=op.f("fk_orders_customer_id_customers"), ondelete="SET NULL"
            ),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_orders")),
        sa.UniqueConstraint("shopify_order_id", "tenant_id", name="uq_orders_shopify_order_tenant"),
    )
    op.create_index(op.f("ix_orders_tenant_id"), "orders", ["tenant_id"])
    op.create_index(op.f("ix_orders_financial_status"), "orders", ["financial_status"])
    op.create_index(op.f("ix_orders_customer_id"), "orders", ["customer_id"])

    # Create order_items table
    op.create_table(
        "order_items",
        *_base_columns(),
        _tenant_fk("order_items"),
        sa.Column(
            "order_id",
            sa.UUID(),
            sa.ForeignKey(
                "orders.id", name=op.f("fk_order_items_order_id_orders"), ondelete="CASCADE"
            ),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.UUID(),
            sa.ForeignKey(
                "products.id",
                name=op.f("fk_order_items_product_id_products"),
                ondelete="SET NULL",
            ),
            nullable=True,
        ),
        sa.Column("shopify_line_item_id", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_order_items")),
        sa.UniqueConstraint(
            "shopify_line_item_id", "tenant_id", name="uq_order_items_shopify_line_item_tenant"
        ),
    )
    op.create_index(op.f("ix_order_items_tenant_id"), "order_items", ["tenant_id"])
    op.create_index(op.f("ix_order_items_order_id"), "order_items", ["order_id"])
    op.create_index(op.f("ix_order_items_product_id"), "order_items", ["product_id"])

    # Create transactions table
    op.create_table(
        "transactions",
        *_base_columns(),
        _tenant_fk("transactions"),
        sa.Column(
            "order_id",
            sa.UUID(),
            sa.ForeignKey(
                "orders.id", name=op.f("fk_transactions_order_id_orders"), ondelete="CASCADE"
            ),
            nullable=False,
        ),
        sa.Column("shopify_transaction_id", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("kind", sa.String(50), nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_transactions")),
        sa.UniqueConstraint(
            "shopify_transaction_id",
            "tenant_id",
            name="uq_transactions_shopify_transaction_tenant",
        ),
    )
    op.create_index(op.f("ix_transactions_tenant_id"), "transactions", ["tenant_id"])
    op.create_index(op.f("ix_transactions_order_id"), "transactions", ["order_id"])

    # Create carts table
    op.create_table(
        "carts",
        *_base_columns(),
        _tenant_fk("carts"),
        sa.Column("shopify_cart_token", sa.String(255), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column(
            "customer_id",
            sa.UUID(),
            sa.ForeignKey(
                "customers.id", name=op.f("fk_carts_customer_id_customers"), ondelete="SET NULL"
            ),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_carts")),
        sa.UniqueConstraint("shopify_cart_token", "tenant_id", name="uq_carts_shopify_cart_tenant"),
    )
    op.create_index(op.f("ix_carts_tenant_id"), "carts", ["tenant_id"])
    op.create_index(op.f("ix_carts_status"), "carts", ["status"])
    op.create_index(op.f("ix_carts_customer_id"), "carts", ["customer_id"])

    # Create cart_items table
    op.create_table(
        "cart_items",
        *_base_columns(),
        _tenant_fk("cart_items"),
        sa.Column(
            "cart_id",
            sa.UUID(),
            sa.ForeignKey(
                "carts.id", name=op.f("fk_cart_items_cart_id_carts"), ondelete="CASCADE"
            ),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.UUID(),
            sa.ForeignKey(
                "products.id",
                name=op.f("fk_cart_items_product_id_products"),
                ondelete="SET NULL",
            ),
            nullable=True,
        ),
        sa.Column("shopify_line_item_id", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_cart_items")),
    )
    op.create_index(op.f("ix_cart_items_tenant_id"), "cart_items", ["tenant_id"])
    op.create_index(op.f("ix_cart_items_cart_id"), "cart_items", ["cart_id"])
    op.create_index(op.f("ix_cart_items_product_id"), "cart_items", ["product_id"])


def downgrade() -> None:
    op.drop_table("cart_items")
    op.drop_table("carts")
    op.drop_table("transactions")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("variants")
    op.drop_table("products")
    op.drop_table("customers")
    op.drop_table("tenants")
