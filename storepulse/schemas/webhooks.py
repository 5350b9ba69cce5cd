"""Pydantic schemas for queued webhook envelopes and Shopify webhook payloads.

Shopify payloads are large and loosely typed. Each topic gets a schema with
only the fields we store, every one of them optional with a default, so a
missing field never crashes reconciliation. An explicit JSON null on a
list or title field falls back to the same default. Numeric ids are coerced to
strings; money fields are parsed as Decimal and an unparseable amount is a
validation error that fails the message.
"""

import enum
import json
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BeforeValidator, Field

from storepulse.schemas.common import BaseSchema


def _coerce_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _money_or_zero(value: Any) -> Any:
    if value is None or value == "":
        return Decimal("0")
    return value


def _money_or_none(value: Any) -> Any:
    if value == "":
        return None
    return value


def _quantity(value: Any) -> Any:
    return 1 if value is None else value


def _empty_if_none(value: Any) -> Any:
    return [] if value is None else value


def _blank_if_none(value: Any) -> Any:
    return "" if value is None else value


ShopifyId = Annotated[str, BeforeValidator(_coerce_id)]
Money = Annotated[Decimal, BeforeValidator(_money_or_zero)]
OptionalMoney = Annotated[Decimal | None, BeforeValidator(_money_or_none)]
Quantity = Annotated[int, BeforeValidator(_quantity)]
Title = Annotated[str, BeforeValidator(_blank_if_none)]


class WebhookTopic(str, enum.Enum):
    """Shopify webhook topics the reconciler knows how to handle."""

    CUSTOMERS_CREATE = "customers/create"
    CUSTOMERS_UPDATE = "customers/update"
    CUSTOMERS_DELETE = "customers/delete"
    PRODUCTS_CREATE = "products/create"
    PRODUCTS_UPDATE = "products/update"
    PRODUCTS_DELETE = "products/delete"
    ORDERS_CREATE = "orders/create"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_PAID = "orders/paid"
    ORDERS_FULFILLED = "orders/fulfilled"
    ORDERS_CANCELLED = "orders/cancelled"
    ORDERS_DELETE = "orders/delete"
    CARTS_CREATE = "carts/create"
    CARTS_UPDATE = "carts/update"
    CHECKOUTS_CREATE = "checkouts/create"
    CHECKOUTS_UPDATE = "checkouts/update"
    CHECKOUTS_DELETE = "checkouts/delete"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> "WebhookTopic":
        return cls.UNKNOWN


# ---------------------------------------------------------------------------
# Queue envelope
# ---------------------------------------------------------------------------


class WebhookEnvelope(BaseSchema):
    """Message published to the webhook queue.

    body is the raw JSON text exactly as received, so the worker can verify
    the signature again.
    """

    topic: str
    shop_domain: str = Field(alias="shopDomain")
    hmac: str = ""
    body: str

    @classmethod
    def from_request(
        cls, topic: str, shop_domain: str, hmac: str, raw_body: bytes
    ) -> "WebhookEnvelope":
        # surrogateescape keeps non-UTF-8 bytes recoverable by raw_body()
        return cls(
            topic=topic,
            shop_domain=shop_domain,
            hmac=hmac,
            body=raw_body.decode("utf-8", errors="surrogateescape"),
        )

    def raw_body(self) -> bytes:
        """The exact bytes Shopify signed."""
        return self.body.encode("utf-8", errors="surrogateescape")

    def to_message(self) -> dict[str, str]:
        """Serialize to the wire format used on the queue."""
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Topic payloads
# ---------------------------------------------------------------------------


class CustomerPayload(BaseSchema):
    """customers/* payload, also embedded in orders and carts."""

    id: ShopifyId | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    default_address: dict[str, Any] | None = None

    def address_json(self) -> str | None:
        """Default address serialized as an opaque JSON blob."""
        if not self.default_address:
            return None
        return json.dumps(self.default_address)


class VariantPayload(BaseSchema):
    """Entry of a product's variants list."""

    id: ShopifyId | None = None
    title: str | None = None
    sku: str | None = None
    price: Money = Decimal("0")


class ImagePayload(BaseSchema):
    """A product's featured image."""

    src: str | None = None


class ProductPayload(BaseSchema):
    """products/* payload."""

    id: ShopifyId | None = None
    title: Title = ""
    handle: str | None = None
    vendor: str | None = None
    product_type: str | None = None
    image: ImagePayload | None = None
    variants: Annotated[list[VariantPayload], BeforeValidator(_empty_if_none)] = []

    @property
    def image_url(self) -> str | None:
        return self.image.src if self.image else None


class LineItemPayload(BaseSchema):
    """Line item of an order, cart or checkout."""

    id: ShopifyId | None = None
    product_id: ShopifyId | None = None
    variant_id: ShopifyId | None = None
    quantity: Quantity = 1
    price: Money = Decimal("0")


class TransactionPayload(BaseSchema):
    """Entry of an order's transactions list."""

    id: ShopifyId | None = None
    amount: Money = Decimal("0")
    kind: str | None = None
    status: str | None = None


class OrderPayload(BaseSchema):
    """orders/* payload."""

    id: ShopifyId | None = None
    order_number: ShopifyId | None = None
    total_price: Money = Decimal("0")
    currency: str | None = None
    financial_status: str | None = None
    fulfillment_status: str | None = None
    customer: CustomerPayload | None = None
    line_items: Annotated[list[LineItemPayload], BeforeValidator(_empty_if_none)] = []
    transactions: Annotated[list[TransactionPayload], BeforeValidator(_empty_if_none)] = []


class CartPayload(BaseSchema):
    """carts/* payload.

    Cart webhooks carry the token in ``token``; some payloads only have
    ``id``, which holds the same value.
    """

    id: ShopifyId | None = None
    token: str | None = None
    total_price: OptionalMoney = None
    customer: CustomerPayload | None = None
    line_items: Annotated[list[LineItemPayload], BeforeValidator(_empty_if_none)] = []

    @property
    def cart_key(self) -> str | None:
        return self.token or self.id

    def computed_total(self) -> Decimal:
        """total_price if present, else the sum of line prices."""
        if self.total_price is not None:
            return self.total_price
        return sum((item.price * item.quantity for item in self.line_items), Decimal("0"))


class CheckoutPayload(CartPayload):
    """checkouts/* payload.

    A checkout has its own token, but ``cart_token`` points at the cart it
    was started from. That is the key we store it under.
    """

    cart_token: str | None = None
    completed_at: datetime | None = None

    @property
    def cart_key(self) -> str | None:
        return self.cart_token or None


class DeletePayload(BaseSchema):
    """customers/delete, products/delete and orders/delete payload."""

    id: ShopifyId | None = None
