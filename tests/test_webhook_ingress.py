"""Tests for the Shopify webhook ingress endpoint.

Covers:
- POST /api/v1/webhooks/shopify and the bare POST /webhooks alias
- Envelope contents handed to the publisher
- Missing headers, broker outage, optional synchronous verification
"""

import json
from collections.abc import Callable

import pytest
from httpx import AsyncClient

from storepulse.integrations.shopify.webhooks import verify_webhook
from tests.conftest import SHOPIFY_TEST_CLIENT_SECRET, SHOPIFY_TEST_SHOP, RecordingPublisher

WEBHOOK_URL = "/api/v1/webhooks/shopify"


class TestWebhookIngress:
    """Webhook ingress: accept, wrap, publish."""

    async def test_accepts_and_publishes(
        self,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
        shopify_webhook_headers: Callable[..., dict[str, str]],
    ) -> None:
        body = json.dumps({"id": 1, "first_name": "Ada"}).encode()

        response = await ingress_client.post(
            WEBHOOK_URL,
            content=body,
            headers=shopify_webhook_headers(body, "customers/create"),
        )

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        assert len(recording_publisher.published) == 1
        envelope = recording_publisher.published[0]
        assert envelope.topic == "customers/create"
        assert envelope.shop_domain == SHOPIFY_TEST_SHOP

    async def test_forwards_raw_body_unchanged(
        self,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
        shopify_webhook_headers: Callable[..., dict[str, str]],
    ) -> None:
        """Odd whitespace and key order survive, so the worker can re-verify."""
        body = b'{ "title":"Caf\xc3\xa9",   "id" : 7 }'
        headers = shopify_webhook_headers(body, "products/create")

        await ingress_client.post(WEBHOOK_URL, content=body, headers=headers)

        envelope = recording_publisher.published[0]
        assert envelope.raw_body() == body
        assert envelope.hmac == headers["X-Shopify-Hmac-Sha256"]
        assert verify_webhook(envelope.raw_body(), envelope.hmac, SHOPIFY_TEST_CLIENT_SECRET)

    async def test_does_not_verify_by_default(
        self,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
    ) -> None:
        """A bad signature is still accepted; the worker drops it."""
        response = await ingress_client.post(
            WEBHOOK_URL,
            content=b'{"id": 1}',
            headers={
                "X-Shopify-Topic": "customers/create",
                "X-Shopify-Shop-Domain": SHOPIFY_TEST_SHOP,
                "X-Shopify-Hmac-Sha256": "not-a-real-signature",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        assert len(recording_publisher.published) == 1

    async def test_bare_webhooks_path(
        self,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
        shopify_webhook_headers: Callable[..., dict[str, str]],
    ) -> None:
        body = b'{"id": 1}'

        response = await ingress_client.post(
            "/webhooks",
            content=body,
            headers=shopify_webhook_headers(body, "orders/create"),
        )

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        assert recording_publisher.published[0].topic == "orders/create"

    @pytest.mark.parametrize(
        "missing",
        ["X-Shopify-Topic", "X-Shopify-Shop-Domain", "X-Shopify-Hmac-Sha256"],
    )
    async def test_missing_header_is_ignored(
        self,
        missing: str,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
        shopify_webhook_headers: Callable[..., dict[str, str]],
    ) -> None:
        body = b'{"id": 1}'
        headers = shopify_webhook_headers(body, "customers/create")
        del headers[missing]

        response = await ingress_client.post(WEBHOOK_URL, content=body, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        assert recording_publisher.published == []

    async def test_broker_unavailable_returns_503(
        self,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
        shopify_webhook_headers: Callable[..., dict[str, str]],
    ) -> None:
        """Shopify retries non-2xx deliveries, so an outage must not look accepted."""
        recording_publisher.unavailable = True
        body = b'{"id": 1}'

        response = await ingress_client.post(
            WEBHOOK_URL,
            content=body,
            headers=shopify_webhook_headers(body, "customers/create"),
        )

        assert response.status_code == 503
        assert response.json()["detail"] == "Webhook queue unavailable"


class TestIngressVerification:
    """Synchronous verification, enabled with WEBHOOK_VERIFY_ON_INGRESS."""

    @pytest.fixture(autouse=True)
    def _verify_on_ingress(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("storepulse.core.config.settings.webhook_verify_on_ingress", True)

    async def test_rejects_invalid_hmac(
        self,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
    ) -> None:
        response = await ingress_client.post(
            WEBHOOK_URL,
            content=b'{"id": 1}',
            headers={
                "X-Shopify-Topic": "customers/create",
                "X-Shopify-Shop-Domain": SHOPIFY_TEST_SHOP,
                "X-Shopify-Hmac-Sha256": "invalid-signature",
            },
        )

        assert response.status_code == 401
        assert "Invalid webhook signature" in response.json()["detail"]
        assert recording_publisher.published == []

    async def test_accepts_valid_hmac(
        self,
        ingress_client: AsyncClient,
        recording_publisher: RecordingPublisher,
        shopify_webhook_headers: Callable[..., dict[str, str]],
    ) -> None:
        body = b'{"id": 1}'

        response = await ingress_client.post(
            WEBHOOK_URL,
            content=body,
            headers=shopify_webhook_headers(body, "customers/create"),
        )

        assert response.status_code == 200
        assert len(recording_publisher.published) == 1
