"""Pytest configuration and fixtures for the StorePulse test suite.

Provides:
- Test database with table truncation cleanup per test
- Disabled rate limiting
- A recording webhook publisher in place of the Celery broker
- Signed Shopify webhook helpers (headers, queue envelopes)
- Model factory fixtures for Tenant, Customer, Product, Order and Cart
"""

import base64
import hashlib
import hmac
import json
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import datetime
from decimal import Decimal
from typing import Any
from unittest.mock import patch
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from storepulse.core.config import settings
from storepulse.core.database import get_async_session
from storepulse.core.deps import get_db, get_webhook_publisher
from storepulse.core.rate_limit import limiter
from storepulse.main import app
from storepulse.models.base import Base
from storepulse.models.cart import Cart, CartStatus
from storepulse.models.customer import Customer
from storepulse.models.order import Order, OrderItem
from storepulse.models.product import Product
from storepulse.models.tenant import Tenant
from storepulse.schemas.webhooks import WebhookEnvelope
from storepulse.services.webhook_processor import WebhookProcessor
from storepulse.workers.publisher import QueueUnavailableError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SHOPIFY_TEST_CLIENT_SECRET = "test-shopify-client-secret"
SHOPIFY_TEST_SHOP = "test-store.myshopify.com"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False

# ---------------------------------------------------------------------------
# Session-scoped engine & table setup
# ---------------------------------------------------------------------------

_test_engine: Any = None
_test_session_factory: Any = None
_base_url = str(settings.database_url)
_TEST_DATABASE_URL = (
    _base_url
    if _base_url.endswith("/storepulse_test")
    else _base_url.replace("/storepulse", "/storepulse_test")
)

# Tables to truncate after each test (reverse dependency order)
_TABLES_TO_TRUNCATE = [
    "cart_items",
    "carts",
    "transactions",
    "order_items",
    "orders",
    "variants",
    "products",
    "customers",
    "tenants",
]


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def _create_tables() -> AsyncGenerator[None, None]:
    """Create all tables once per test session in the storepulse_test database.

    The engine is created here (not at module level) so that it is bound to
    the session-scoped event loop. NullPool gives every session its own
    connection, which the concurrent tenant resolution tests rely on.
    """
    global _test_engine, _test_session_factory  # noqa: PLW0603
    _test_engine = create_async_engine(
        _TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=NullPool,
    )
    _test_session_factory = async_sessionmaker(
        _test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await _test_engine.dispose()


# ---------------------------------------------------------------------------
# Per-test database session + cleanup
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(loop_scope="session")
async def db_session(_create_tables: None) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and assertions.

    Cleanup is handled by the ``_cleanup_tables`` autouse fixture.
    """
    async with _test_session_factory() as session:
        yield session


@pytest.fixture
def session_factory(_create_tables: None) -> async_sessionmaker[AsyncSession]:
    """The test database session factory, for code that opens its own sessions."""
    return _test_session_factory


@pytest_asyncio.fixture(autouse=True)
async def _cleanup_tables() -> AsyncGenerator[None, None]:
    """Truncate all tables after each test to restore a clean state."""
    yield
    if _test_engine is not None:
        async with _test_engine.begin() as conn:
            await conn.execute(text(f"TRUNCATE {', '.join(_TABLES_TO_TRUNCATE)} CASCADE"))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def set_shopify_test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure Shopify settings are set for all tests."""
    monkeypatch.setattr(
        "storepulse.core.config.settings.shopify_client_secret", SHOPIFY_TEST_CLIENT_SECRET
    )
    monkeypatch.setattr("storepulse.core.config.settings.webhook_verify_on_ingress", False)


# ---------------------------------------------------------------------------
# Webhook publisher
# ---------------------------------------------------------------------------


class RecordingPublisher:
    """Stands in for the broker: keeps published envelopes in memory."""

    def __init__(self) -> None:
        self.published: list[WebhookEnvelope] = []
        self.unavailable = False

    def publish(self, envelope: WebhookEnvelope) -> str:
        if self.unavailable:
            raise QueueUnavailableError("Connection refused")
        self.published.append(envelope)
        return f"msg-{len(self.published)}"


@pytest.fixture
def recording_publisher() -> RecordingPublisher:
    return RecordingPublisher()


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,  # noqa: ARG001  # Ensures _create_tables runs
    recording_publisher: RecordingPublisher,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with the database and publisher overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with _test_session_factory() as s:
            yield s

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_webhook_publisher] = lambda: recording_publisher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def ingress_client(
    recording_publisher: RecordingPublisher,
) -> AsyncGenerator[AsyncClient, None]:
    """Client for the webhook ingress only. No database is touched."""
    app.dependency_overrides[get_webhook_publisher] = lambda: recording_publisher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Shopify webhook helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def shopify_webhook_signature() -> Callable[[bytes], str]:
    """Generate a valid Shopify webhook HMAC signature for a given body.

    Usage:
        signature = shopify_webhook_signature(b'{"id": 123}')
        headers = {"X-Shopify-Hmac-Sha256": signature, ...}
    """

    def _sign(body: bytes) -> str:
        return base64.b64encode(
            hmac.new(
                SHOPIFY_TEST_CLIENT_SECRET.encode(),
                body,
                hashlib.sha256,
            ).digest()
        ).decode()

    return _sign


@pytest.fixture
def shopify_webhook_headers(
    shopify_webhook_signature: Callable[[bytes], str],
) -> Callable[..., dict[str, str]]:
    """Generate complete Shopify webhook headers for a given body, topic and shop.

    Usage:
        body = b'{"id": 123, "title": "Product"}'
        headers = shopify_webhook_headers(body, "products/create")
        response = await client.post("/api/v1/webhooks/shopify", content=body, headers=headers)
    """

    def _headers(body: bytes, topic: str, shop: str = SHOPIFY_TEST_SHOP) -> dict[str, str]:
        return {
            "X-Shopify-Topic": topic,
            "X-Shopify-Hmac-Sha256": shopify_webhook_signature(body),
            "X-Shopify-Shop-Domain": shop,
            "Content-Type": "application/json",
        }

    return _headers


@pytest.fixture
def signed_envelope(
    shopify_webhook_signature: Callable[[bytes], str],
) -> Callable[..., dict[str, str]]:
    """Build a queue message the way the ingress publishes it, correctly signed.

    Usage:
        message = signed_envelope("customers/create", {"id": 1, "email": "a@b.c"})
    """

    def _build(topic: str, payload: Any, shop: str = SHOPIFY_TEST_SHOP) -> dict[str, str]:
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        envelope = WebhookEnvelope.from_request(topic, shop, shopify_webhook_signature(body), body)
        return envelope.to_message()

    return _build


@pytest.fixture
def processor(session_factory: async_sessionmaker[AsyncSession]) -> WebhookProcessor:
    """Webhook processor wired to the test database."""
    return WebhookProcessor(session_factory, SHOPIFY_TEST_CLIENT_SECRET)


@pytest.fixture
def mock_async_session_maker(_create_tables: None) -> Generator[None, None, None]:
    """Patch async_session_maker so the Celery task uses the test database."""
    with patch("storepulse.workers.tasks.webhooks.async_session_maker", _test_session_factory):
        yield


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def tenant_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Tenant instances in the test database."""

    async def _create(
        *,
        shop_domain: str = SHOPIFY_TEST_SHOP,
        name: str | None = None,
    ) -> Tenant:
        tenant = Tenant(name=name or shop_domain.split(".")[0], shop_domain=shop_domain)
        db_session.add(tenant)
        await db_session.commit()
        await db_session.refresh(tenant)
        return tenant

    return _create


@pytest.fixture
def customer_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Customer instances."""

    async def _create(
        *,
        tenant_id: UUID,
        shopify_customer_id: str = "1001",
        first_name: str | None = "Ada",
        last_name: str | None = "Lovelace",
        email: str | None = "ada@example.com",
        created_at: datetime | None = None,
    ) -> Customer:
        extra = {"created_at": created_at} if created_at else {}
        customer = Customer(
            **extra,
            tenant_id=tenant_id,
            shopify_customer_id=shopify_customer_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
        )
        db_session.add(customer)
        await db_session.commit()
        await db_session.refresh(customer)
        return customer

    return _create


@pytest.fixture
def product_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Product instances."""

    async def _create(
        *,
        tenant_id: UUID,
        shopify_product_id: str = "2001",
        title: str = "Test Product",
        product_type: str | None = "Test Type",
    ) -> Product:
        product = Product(
            tenant_id=tenant_id,
            shopify_product_id=shopify_product_id,
            title=title,
            product_type=product_type,
        )
        db_session.add(product)
        await db_session.commit()
        await db_session.refresh(product)
        return product

    return _create


@pytest.fixture
def order_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Order instances with optional line items.

    items is a list of (product_id, quantity, price) tuples.
    """

    async def _create(
        *,
        tenant_id: UUID,
        shopify_order_id: str = "3001",
        total_price: Decimal = Decimal("100.00"),
        financial_status: str | None = "paid",
        customer_id: UUID | None = None,
        items: list[tuple[UUID | None, int, Decimal]] | None = None,
        created_at: datetime | None = None,
    ) -> Order:
        extra = {"created_at": created_at} if created_at else {}
        order = Order(
            **extra,
            tenant_id=tenant_id,
            shopify_order_id=shopify_order_id,
            order_number=shopify_order_id,
            total_price=total_price,
            currency="USD",
            financial_status=financial_status,
            customer_id=customer_id,
        )
        db_session.add(order)
        await db_session.flush()
        for index, (product_id, quantity, price) in enumerate(items or []):
            db_session.add(
                OrderItem(
                    tenant_id=tenant_id,
                    order_id=order.id,
                    product_id=product_id,
                    shopify_line_item_id=f"{shopify_order_id}-{index}",
                    quantity=quantity,
                    price=price,
                )
            )
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _create


@pytest.fixture
def cart_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Cart instances."""

    async def _create(
        *,
        tenant_id: UUID,
        shopify_cart_token: str = "cart-token-1",
        status: CartStatus = CartStatus.ACTIVE,
        total_price: Decimal = Decimal("0"),
    ) -> Cart:
        cart = Cart(
            tenant_id=tenant_id,
            shopify_cart_token=shopify_cart_token,
            status=status.value,
            total_price=total_price,
        )
        db_session.add(cart)
        await db_session.commit()
        await db_session.refresh(cart)
        return cart

    return _create


# ---------------------------------------------------------------------------
# Sample Shopify payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_shopify_customer() -> dict[str, Any]:
    return {
        "id": 1001,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "phone": "+15550001111",
        "default_address": {"address1": "12 St James's Square", "city": "London"},
    }


@pytest.fixture
def sample_shopify_product() -> dict[str, Any]:
    """Sample Shopify product payload, as sent by products/create."""
    return {
        "id": 2001,
        "title": "Analytical Engine T-Shirt",
        "handle": "analytical-engine-t-shirt",
        "vendor": "Babbage & Co",
        "product_type": "Apparel",
        "image": {"src": "https://cdn.shopify.com/engine.jpg"},
        "variants": [
            {"id": 4001, "title": "Small", "sku": "AE-S", "price": "25.00"},
            {"id": 4002, "title": "Large", "sku": "AE-L", "price": "27.50"},
        ],
    }


@pytest.fixture
def sample_shopify_order() -> dict[str, Any]:
    """Sample Shopify order payload referencing the sample customer and product."""
    return {
        "id": 3001,
        "order_number": 1001,
        "total_price": "52.50",
        "currency": "USD",
        "financial_status": "paid",
        "fulfillment_status": None,
        "customer": {"id": 1001, "email": "ada@example.com"},
        "line_items": [
            {"id": 5001, "product_id": 2001, "variant_id": 4001, "quantity": 1, "price": "25.00"},
            {"id": 5002, "product_id": 2001, "variant_id": 4002, "quantity": 1, "price": "27.50"},
        ],
        "transactions": [
            {"id": 6001, "amount": "52.50", "kind": "sale", "status": "success"},
        ],
    }


@pytest.fixture
def sample_shopify_cart() -> dict[str, Any]:
    return {
        "id": "cart-token-1",
        "token": "cart-token-1",
        "line_items": [
            {"product_id": 2001, "variant_id": 4001, "quantity": 2, "price": "25.00"},
        ],
    }
