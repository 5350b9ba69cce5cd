"""Tests for webhook envelope and Shopify payload schemas."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from storepulse.schemas.webhooks import (
    CartPayload,
    CheckoutPayload,
    CustomerPayload,
    OrderPayload,
    ProductPayload,
    WebhookEnvelope,
    WebhookTopic,
)


class TestWebhookTopic:
    def test_known_topic(self) -> None:
        assert WebhookTopic("orders/paid") is WebhookTopic.ORDERS_PAID

    def test_unknown_topic_maps_to_unknown(self) -> None:
        assert WebhookTopic("app/uninstalled") is WebhookTopic.UNKNOWN


class TestWebhookEnvelope:
    """The envelope carries the raw body byte-for-byte."""

    def test_wire_format_uses_camel_case_shop_domain(self) -> None:
        envelope = WebhookEnvelope.from_request(
            "customers/create", "acme.myshopify.com", "sig", b"{}"
        )

        assert envelope.to_message() == {
            "topic": "customers/create",
            "shopDomain": "acme.myshopify.com",
            "hmac": "sig",
            "body": "{}",
        }

    def test_accepts_wire_format(self) -> None:
        envelope = WebhookEnvelope.model_validate(
            {"topic": "t", "shopDomain": "s.myshopify.com", "hmac": "h", "body": "{}"}
        )

        assert envelope.shop_domain == "s.myshopify.com"

    def test_raw_body_round_trips_non_utf8_bytes(self) -> None:
        raw = b'{"note": "\xff\xfe"}'
        envelope = WebhookEnvelope.from_request("t", "s", "h", raw)

        assert envelope.raw_body() == raw

    def test_missing_body_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            WebhookEnvelope.model_validate({"topic": "t", "shopDomain": "s"})


class TestCustomerPayload:
    def test_numeric_id_coerced_to_string(self) -> None:
        assert CustomerPayload.model_validate({"id": 1001}).id == "1001"

    def test_address_serialized_as_json(self) -> None:
        payload = CustomerPayload.model_validate({"id": 1, "default_address": {"city": "London"}})

        assert payload.address_json() == '{"city": "London"}'

    def test_missing_address_is_none(self) -> None:
        assert CustomerPayload.model_validate({"id": 1}).address_json() is None

    def test_ignores_unknown_fields(self) -> None:
        payload = CustomerPayload.model_validate(
            {"id": 1, "tags": "vip", "accepts_marketing": True}
        )

        assert payload.id == "1"


class TestProductPayload:
    def test_image_url_from_featured_image(self) -> None:
        payload = ProductPayload.model_validate({"id": 1, "image": {"src": "https://x/y.jpg"}})

        assert payload.image_url == "https://x/y.jpg"

    def test_no_image(self) -> None:
        assert ProductPayload.model_validate({"id": 1, "image": None}).image_url is None

    def test_variant_price_parsed_as_decimal(self) -> None:
        payload = ProductPayload.model_validate(
            {"id": 1, "variants": [{"id": 2, "price": "19.99"}]}
        )

        assert payload.variants[0].price == Decimal("19.99")

    def test_null_title_and_variants_default(self) -> None:
        payload = ProductPayload.model_validate({"id": 1, "title": None, "variants": None})

        assert payload.title == ""
        assert payload.variants == []


class TestOrderPayload:
    def test_missing_fields_default(self) -> None:
        payload = OrderPayload.model_validate({"id": 1})

        assert payload.total_price == Decimal("0")
        assert payload.customer is None
        assert payload.line_items == []
        assert payload.transactions == []

    def test_null_quantity_defaults_to_one(self) -> None:
        payload = OrderPayload.model_validate(
            {"id": 1, "line_items": [{"id": 2, "quantity": None}]}
        )

        assert payload.line_items[0].quantity == 1

    def test_unparseable_money_is_an_error(self) -> None:
        with pytest.raises(ValidationError):
            OrderPayload.model_validate({"id": 1, "total_price": "twelve dollars"})

    def test_null_line_items_and_transactions_default(self) -> None:
        payload = OrderPayload.model_validate({"id": 1, "line_items": None, "transactions": None})

        assert payload.line_items == []
        assert payload.transactions == []


class TestCartPayload:
    def test_cart_key_prefers_token(self) -> None:
        assert CartPayload.model_validate({"id": "a", "token": "b"}).cart_key == "b"

    def test_cart_key_falls_back_to_id(self) -> None:
        assert CartPayload.model_validate({"id": "a"}).cart_key == "a"

    def test_total_from_payload(self) -> None:
        payload = CartPayload.model_validate({"token": "t", "total_price": "10.00"})

        assert payload.computed_total() == Decimal("10.00")

    def test_total_summed_from_lines_when_missing(self) -> None:
        payload = CartPayload.model_validate(
            {
                "token": "t",
                "line_items": [
                    {"quantity": 2, "price": "5.00"},
                    {"quantity": 1, "price": "2.50"},
                ],
            }
        )

        assert payload.computed_total() == Decimal("12.50")

    def test_null_line_items_default(self) -> None:
        payload = CartPayload.model_validate({"token": "t", "line_items": None})

        assert payload.line_items == []
        assert payload.computed_total() == Decimal("0")


class TestCheckoutPayload:
    def test_keyed_by_cart_token_not_checkout_token(self) -> None:
        payload = CheckoutPayload.model_validate(
            {"token": "checkout-tok", "cart_token": "cart-tok"}
        )

        assert payload.cart_key == "cart-tok"

    def test_no_cart_token(self) -> None:
        assert CheckoutPayload.model_validate({"token": "checkout-tok"}).cart_key is None

    def test_completed_at_parsed(self) -> None:
        payload = CheckoutPayload.model_validate(
            {"cart_token": "c", "completed_at": "2026-01-01T10:00:00-05:00"}
        )

        assert payload.completed_at is not None
        assert payload.completed_at.year == 2026
