"""Entity reconciliation: materialize Shopify webhook payloads into tenant-scoped rows.

Every entity is upserted on its (external id, tenant id) unique constraint
with INSERT ... ON CONFLICT DO UPDATE, so replaying a webhook any number of
times leaves the same row state and concurrent workers never duplicate rows.

References to other entities (order -> customer, line item -> product) are
resolved by external id within the tenant. A reference to a row we have not
seen yet is stored as NULL; webhook delivery order across topics is not
guaranteed and a missing link must not fail the message.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import case, delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storepulse.models.cart import Cart, CartItem, CartStatus
from storepulse.models.customer import Customer
from storepulse.models.order import Order, OrderItem, Transaction
from storepulse.models.product import Product, Variant
from storepulse.schemas.common import BaseSchema
from storepulse.schemas.webhooks import (
    CartPayload,
    CheckoutPayload,
    CustomerPayload,
    DeletePayload,
    OrderPayload,
    ProductPayload,
    WebhookTopic,
)

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, uuid.UUID, Any], Awaitable[dict[str, Any]]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _sent_fields(
    payload: BaseSchema, columns: dict[str, str], values: dict[str, Any]
) -> dict[str, Any]:
    """Columns to overwrite on conflict: those whose payload field was actually sent."""
    return {
        column: values[column]
        for column, field in columns.items()
        if field in payload.model_fields_set
    }


async def _upsert(
    session: AsyncSession,
    model: Any,
    constraint: str,
    values: dict[str, Any],
    updates: dict[str, Any],
) -> uuid.UUID:
    """Insert a row, or update it on conflict with the composite unique key."""
    stmt = pg_insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        constraint=constraint,
        set_={**updates, "updated_at": datetime.now(UTC)},
    ).returning(model.id)
    result = await session.execute(stmt)
    return result.scalar_one()


async def _delete(
    session: AsyncSession,
    model: Any,
    column: Any,
    external_id: str,
    tenant_id: uuid.UUID,
) -> bool:
    """Delete by (external id, tenant). A missing row is a no-op."""
    try:
        result = await session.execute(
            delete(model).where(column == external_id, model.tenant_id == tenant_id)
        )
    except SQLAlchemyError:
        logger.exception(
            "Error deleting %s %s for tenant %s", model.__tablename__, external_id, tenant_id
        )
        raise
    return bool(result.rowcount)


async def _find_customer_id(
    session: AsyncSession, tenant_id: uuid.UUID, shopify_customer_id: str
) -> uuid.UUID | None:
    stmt = select(Customer.id).where(
        Customer.shopify_customer_id == shopify_customer_id,
        Customer.tenant_id == tenant_id,
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def _find_product_id(
    session: AsyncSession, tenant_id: uuid.UUID, shopify_product_id: str | None
) -> uuid.UUID | None:
    if not shopify_product_id:
        return None
    stmt = select(Product.id).where(
        Product.shopify_product_id == shopify_product_id,
        Product.tenant_id == tenant_id,
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def _link_customer(
    session: AsyncSession, tenant_id: uuid.UUID, customer: CustomerPayload | None
) -> uuid.UUID | None:
    """Resolve an embedded customer, upserting it first if we have not seen it."""
    if customer is None or not customer.id:
        return None
    customer_id = await _find_customer_id(session, tenant_id, customer.id)
    if customer_id is None:
        customer_id = await upsert_customer(session, tenant_id, customer)
    return customer_id


def _skipped(entity: str, reason: str) -> dict[str, Any]:
    logger.info("Skipping %s webhook: %s", entity, reason)
    return {"status": "skipped", "entity": entity, "reason": reason}


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

_CUSTOMER_FIELDS = {
    "first_name": "first_name",
    "last_name": "last_name",
    "email": "email",
    "phone": "phone",
    "address": "default_address",
}


async def upsert_customer(
    session: AsyncSession, tenant_id: uuid.UUID, payload: CustomerPayload
) -> uuid.UUID:
    """Upsert a customer and return its internal id."""
    if not payload.id:
        raise ValueError("customer payload has no id")

    values: dict[str, Any] = {
        "tenant_id": tenant_id,
        "shopify_customer_id": payload.id,
        "first_name": payload.first_name,
        "last_name": payload.last_name,
        "email": payload.email,
        "phone": payload.phone,
        "address": payload.address_json(),
    }
    updates = _sent_fields(payload, _CUSTOMER_FIELDS, values)
    if updates.get("address", "") is None:
        # Keep the stored address when the payload has none
        del updates["address"]

    customer_id = await _upsert(
        session, Customer, "uq_customers_shopify_customer_tenant", values, updates
    )
    logger.info("Upserted customer %s for tenant %s", payload.id, tenant_id)
    return customer_id


async def delete_customer(
    session: AsyncSession, tenant_id: uuid.UUID, shopify_customer_id: str
) -> bool:
    deleted = await _delete(
        session, Customer, Customer.shopify_customer_id, shopify_customer_id, tenant_id
    )
    logger.info(
        "Deleted customer %s for tenant %s (found=%s)", shopify_customer_id, tenant_id, deleted
    )
    return deleted


# ---------------------------------------------------------------------------
# Products & variants
# ---------------------------------------------------------------------------

_PRODUCT_FIELDS = {
    "title": "title",
    "handle": "handle",
    "vendor": "vendor",
    "product_type": "product_type",
    "image_url": "image",
}

_VARIANT_FIELDS = {
    "title": "title",
    "sku": "sku",
    "price": "price",
}


async def upsert_product(
    session: AsyncSession, tenant_id: uuid.UUID, payload: ProductPayload
) -> uuid.UUID:
    """Upsert a product and each of its variants."""
    if not payload.id:
        raise ValueError("product payload has no id")

    values: dict[str, Any] = {
        "tenant_id": tenant_id,
        "shopify_product_id": payload.id,
        "title": payload.title,
        "handle": payload.handle,
        "vendor": payload.vendor,
        "product_type": payload.product_type,
        "image_url": payload.image_url,
    }
    updates = _sent_fields(payload, _PRODUCT_FIELDS, values)
    if not payload.title:
        updates.pop("title", None)
    product_id = await _upsert(
        session, Product, "uq_products_shopify_product_tenant", values, updates
    )
    logger.info("Upserted product %s for tenant %s", payload.id, tenant_id)

    upserted = 0
    for variant in payload.variants:
        if not variant.id:
            continue
        variant_values: dict[str, Any] = {
            "tenant_id": tenant_id,
            "product_id": product_id,
            "shopify_variant_id": variant.id,
            "title": variant.title,
            "sku": variant.sku,
            "price": variant.price,
        }
        updates = _sent_fields(variant, _VARIANT_FIELDS, variant_values)
        updates["product_id"] = product_id
        await _upsert(
            session, Variant, "uq_variants_shopify_variant_tenant", variant_values, updates
        )
        upserted += 1

    if upserted:
        logger.info("Upserted %d variants for product %s", upserted, payload.id)
    return product_id


async def delete_product(
    session: AsyncSession, tenant_id: uuid.UUID, shopify_product_id: str
) -> bool:
    """Delete a product. Variants cascade; line items keep their row with a null product."""
    deleted = await _delete(
        session, Product, Product.shopify_product_id, shopify_product_id, tenant_id
    )
    logger.info(
        "Deleted product %s for tenant %s (found=%s)", shopify_product_id, tenant_id, deleted
    )
    return deleted


# ---------------------------------------------------------------------------
# Orders, line items & transactions
# ---------------------------------------------------------------------------

_ORDER_FIELDS = {
    "order_number": "order_number",
    "total_price": "total_price",
    "currency": "currency",
    "financial_status": "financial_status",
    "fulfillment_status": "fulfillment_status",
}

_LINE_ITEM_FIELDS = {
    "quantity": "quantity",
    "price": "price",
}

_TRANSACTION_FIELDS = {
    "amount": "amount",
    "kind": "kind",
    "status": "status",
}


async def upsert_order(
    session: AsyncSession, tenant_id: uuid.UUID, payload: OrderPayload
) -> uuid.UUID:
    """Upsert an order with its line items and transactions.

    Line items are linked to products already synced for the tenant. An
    unknown product leaves product_id null; a later products/create does not
    backfill it, but replaying the order does.
    """
    if not payload.id:
        raise ValueError("order payload has no id")

    customer_id = await _link_customer(session, tenant_id, payload.customer)

    values: dict[str, Any] = {
        "tenant_id": tenant_id,
        "shopify_order_id": payload.id,
        "order_number": payload.order_number,
        "total_price": payload.total_price,
        "currency": payload.currency,
        "financial_status": payload.financial_status,
        "fulfillment_status": payload.fulfillment_status,
        "customer_id": customer_id,
    }
    updates = _sent_fields(payload, _ORDER_FIELDS, values)
    if customer_id is not None:
        updates["customer_id"] = customer_id

    order_id = await _upsert(session, Order, "uq_orders_shopify_order_tenant", values, updates)
    logger.info("Upserted order %s for tenant %s", payload.id, tenant_id)

    for item in payload.line_items:
        if not item.id:
            continue
        product_id = await _find_product_id(session, tenant_id, item.product_id)
        item_values: dict[str, Any] = {
            "tenant_id": tenant_id,
            "order_id": order_id,
            "product_id": product_id,
            "shopify_line_item_id": item.id,
            "quantity": item.quantity,
            "price": item.price,
        }
        item_updates = _sent_fields(item, _LINE_ITEM_FIELDS, item_values)
        item_updates["order_id"] = order_id
        if product_id is not None:
            item_updates["product_id"] = product_id
        await _upsert(
            session, OrderItem, "uq_order_items_shopify_line_item_tenant", item_values, item_updates
        )

    for transaction in payload.transactions:
        if not transaction.id:
            continue
        transaction_values: dict[str, Any] = {
            "tenant_id": tenant_id,
            "order_id": order_id,
            "shopify_transaction_id": transaction.id,
            "amount": transaction.amount,
            "kind": transaction.kind,
            "status": transaction.status,
        }
        transaction_updates = _sent_fields(transaction, _TRANSACTION_FIELDS, transaction_values)
        transaction_updates["order_id"] = order_id
        await _upsert(
            session,
            Transaction,
            "uq_transactions_shopify_transaction_tenant",
            transaction_values,
            transaction_updates,
        )

    return order_id


async def delete_order(session: AsyncSession, tenant_id: uuid.UUID, shopify_order_id: str) -> bool:
    """Delete an order. Line items and transactions cascade."""
    deleted = await _delete(session, Order, Order.shopify_order_id, shopify_order_id, tenant_id)
    logger.info("Deleted order %s for tenant %s (found=%s)", shopify_order_id, tenant_id, deleted)
    return deleted


# ---------------------------------------------------------------------------
# Carts & checkouts
# ---------------------------------------------------------------------------

# Lifecycle order; a stored status is never moved back to an earlier stage.
_CART_STAGES = (CartStatus.ACTIVE, CartStatus.CHECKOUT_STARTED, CartStatus.ABANDONED)


def _forward_status(status: CartStatus) -> Any:
    """ON CONFLICT value for Cart.status that keeps a later stored stage."""
    later = [stage.value for stage in _CART_STAGES[_CART_STAGES.index(status) + 1 :]]
    if not later:
        return status.value
    return case((Cart.status.in_(later), Cart.status), else_=status.value)


async def upsert_cart(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    payload: CartPayload,
    status: CartStatus = CartStatus.ACTIVE,
) -> uuid.UUID | None:
    """Upsert a cart and replace its items.

    Cart payloads describe the full current state, so existing items are
    deleted and the payload's items inserted rather than diffed. The status
    only moves forward: a late carts/update does not reopen a checkout and a
    redelivered checkouts/update does not revive an abandoned cart. Returns
    None when the payload has no cart token.
    """
    cart_token = payload.cart_key
    if not cart_token:
        logger.info("No cart token found, skipping upsert")
        return None

    customer_id = await _link_customer(session, tenant_id, payload.customer)

    values: dict[str, Any] = {
        "tenant_id": tenant_id,
        "shopify_cart_token": cart_token,
        "total_price": payload.computed_total(),
        "status": status.value,
        "customer_id": customer_id,
    }
    updates: dict[str, Any] = {
        "total_price": values["total_price"],
        "status": _forward_status(status),
    }
    if customer_id is not None:
        updates["customer_id"] = customer_id

    cart_id = await _upsert(session, Cart, "uq_carts_shopify_cart_tenant", values, updates)

    await session.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    for item in payload.line_items:
        product_id = await _find_product_id(session, tenant_id, item.product_id)
        session.add(
            CartItem(
                tenant_id=tenant_id,
                cart_id=cart_id,
                product_id=product_id,
                shopify_line_item_id=item.id or f"{cart_token}-{item.variant_id}",
                quantity=item.quantity,
                price=item.price,
            )
        )
    await session.flush()

    logger.info(
        "Upserted cart %s for tenant %s (status=%s, items=%d)",
        cart_token,
        tenant_id,
        status.value,
        len(payload.line_items),
    )
    return cart_id


async def delete_cart(session: AsyncSession, tenant_id: uuid.UUID, shopify_cart_token: str) -> bool:
    deleted = await _delete(session, Cart, Cart.shopify_cart_token, shopify_cart_token, tenant_id)
    logger.info("Deleted cart %s for tenant %s (found=%s)", shopify_cart_token, tenant_id, deleted)
    return deleted


async def close_checkout(
    session: AsyncSession, tenant_id: uuid.UUID, payload: CheckoutPayload
) -> str | None:
    """Handle checkouts/delete.

    Shopify sends it both when a checkout completes and when it is discarded.
    A completed_at timestamp means it became an order and the cart is
    removed; otherwise the cart is kept and marked abandoned. Returns the
    action taken, or None if no cart matched.
    """
    cart_token = payload.cart_key
    if not cart_token:
        return None

    if payload.completed_at is not None:
        return "deleted" if await delete_cart(session, tenant_id, cart_token) else None

    result = await session.execute(
        update(Cart)
        .where(Cart.shopify_cart_token == cart_token, Cart.tenant_id == tenant_id)
        .values(status=CartStatus.ABANDONED.value, updated_at=datetime.now(UTC))
    )
    if not result.rowcount:
        return None
    logger.info("Marked cart %s abandoned for tenant %s", cart_token, tenant_id)
    return "abandoned"


# ---------------------------------------------------------------------------
# Topic handlers
# ---------------------------------------------------------------------------


async def _handle_customer_upsert(
    session: AsyncSession, tenant_id: uuid.UUID, data: Any
) -> dict[str, Any]:
    payload = CustomerPayload.model_validate(data)
    if not payload.id:
        return _skipped("customer", "no customer id")
    await upsert_customer(session, tenant_id, payload)
    return {"status": "upserted", "entity": "customer", "id": payload.id}


async def _handle_product_upsert(
    session: AsyncSession, tenant_id: uuid.UUID, data: Any
) -> dict[str, Any]:
    payload = ProductPayload.model_validate(data)
    if not payload.id:
        return _skipped("product", "no product id")
    await upsert_product(session, tenant_id, payload)
    return {"status": "upserted", "entity": "product", "id": payload.id}


async def _handle_order_upsert(
    session: AsyncSession, tenant_id: uuid.UUID, data: Any
) -> dict[str, Any]:
    payload = OrderPayload.model_validate(data)
    if not payload.id:
        return _skipped("order", "no order id")
    await upsert_order(session, tenant_id, payload)
    return {"status": "upserted", "entity": "order", "id": payload.id}


async def _handle_cart_upsert(
    session: AsyncSession, tenant_id: uuid.UUID, data: Any
) -> dict[str, Any]:
    payload = CartPayload.model_validate(data)
    if await upsert_cart(session, tenant_id, payload, CartStatus.ACTIVE) is None:
        return _skipped("cart", "no cart token")
    return {"status": "upserted", "entity": "cart", "id": payload.cart_key}


async def _handle_checkout_upsert(
    session: AsyncSession, tenant_id: uuid.UUID, data: Any
) -> dict[str, Any]:
    payload = CheckoutPayload.model_validate(data)
    if await upsert_cart(session, tenant_id, payload, CartStatus.CHECKOUT_STARTED) is None:
        return _skipped("checkout", "no cart token")
    return {"status": "upserted", "entity": "cart", "id": payload.cart_key}


async def _handle_checkout_delete(
    session: AsyncSession, tenant_id: uuid.UUID, data: Any
) -> dict[str, Any]:
    payload = CheckoutPayload.model_validate(data)
    if not payload.cart_key:
        return _skipped("checkout", "no cart token")
    action = await close_checkout(session, tenant_id, payload)
    return {"status": action or "not_found", "entity": "cart", "id": payload.cart_key}


def _delete_handler(
    entity: str, remove: Callable[[AsyncSession, uuid.UUID, str], Awaitable[bool]]
) -> Handler:
    async def _handle(session: AsyncSession, tenant_id: uuid.UUID, data: Any) -> dict[str, Any]:
        payload = DeletePayload.model_validate(data)
        if not payload.id:
            return _skipped(entity, f"no {entity} id")
        found = await remove(session, tenant_id, payload.id)
        return {"status": "deleted" if found else "not_found", "entity": entity, "id": payload.id}

    return _handle


TOPIC_HANDLERS: dict[WebhookTopic, Handler] = {
    WebhookTopic.CUSTOMERS_CREATE: _handle_customer_upsert,
    WebhookTopic.CUSTOMERS_UPDATE: _handle_customer_upsert,
    WebhookTopic.CUSTOMERS_DELETE: _delete_handler("customer", delete_customer),
    WebhookTopic.PRODUCTS_CREATE: _handle_product_upsert,
    WebhookTopic.PRODUCTS_UPDATE: _handle_product_upsert,
    WebhookTopic.PRODUCTS_DELETE: _delete_handler("product", delete_product),
    WebhookTopic.ORDERS_CREATE: _handle_order_upsert,
    WebhookTopic.ORDERS_UPDATED: _handle_order_upsert,
    WebhookTopic.ORDERS_PAID: _handle_order_upsert,
    WebhookTopic.ORDERS_FULFILLED: _handle_order_upsert,
    WebhookTopic.ORDERS_CANCELLED: _handle_order_upsert,
    WebhookTopic.ORDERS_DELETE: _delete_handler("order", delete_order),
    WebhookTopic.CARTS_CREATE: _handle_cart_upsert,
    WebhookTopic.CARTS_UPDATE: _handle_cart_upsert,
    WebhookTopic.CHECKOUTS_CREATE: _handle_checkout_upsert,
    WebhookTopic.CHECKOUTS_UPDATE: _handle_checkout_upsert,
    WebhookTopic.CHECKOUTS_DELETE: _handle_checkout_delete,
}


async def reconcile(
    session: AsyncSession, topic: str, tenant_id: uuid.UUID, data: Any
) -> dict[str, Any]:
    """Dispatch a parsed webhook body to the handler for its topic.

    Unknown topics are logged and ignored. Validation and database errors
    propagate to the caller, which fails the message.
    """
    webhook_topic = WebhookTopic(topic)
    handler = TOPIC_HANDLERS.get(webhook_topic)
    if handler is None:
        logger.warning("Unhandled webhook topic: %s", topic)
        return {"status": "ignored", "reason": "unknown topic", "topic": topic}

    logger.debug("Processing webhook topic: %s for tenant: %s", topic, tenant_id)
    return await handler(session, tenant_id, data)
