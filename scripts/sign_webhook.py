"""HMAC signing helper for simulating Shopify webhooks.

Reads a JSON body from stdin and prints its base64-encoded HMAC-SHA256
signature, using SHOPIFY_CLIENT_SECRET from the environment (or .env file).
With --topic it instead posts the signed body to a running ingress.

Usage:
    echo '{"id": 123}' | python -m scripts.sign_webhook

    # Sign and deliver in one go:
    echo '{"id":1,"first_name":"Ada","email":"ada@example.com"}' | \\
      python -m scripts.sign_webhook --topic customers/create --shop acme.myshopify.com
"""

import argparse
import sys

import httpx

from storepulse.core.config import settings
from storepulse.integrations.shopify.webhooks import sign_webhook

DEFAULT_URL = "http://localhost:8000/api/v1/webhooks/shopify"


def deliver(url: str, topic: str, shop_domain: str, body: bytes, signature: str) -> httpx.Response:
    """POST a signed webhook the way Shopify would."""
    return httpx.post(
        url,
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Shopify-Topic": topic,
            "X-Shopify-Shop-Domain": shop_domain,
            "X-Shopify-Hmac-Sha256": signature,
        },
        timeout=10.0,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--topic", help="send to the ingress with this X-Shopify-Topic")
    parser.add_argument("--shop", default="test-shop.myshopify.com", help="shop domain header")
    parser.add_argument("--url", default=DEFAULT_URL, help="ingress URL")
    args = parser.parse_args()

    secret = settings.shopify_client_secret
    if not secret:
        print("ERROR: SHOPIFY_CLIENT_SECRET is not set in .env", file=sys.stderr)
        sys.exit(1)

    body = sys.stdin.buffer.read()
    if not body:
        print("ERROR: No input received on stdin", file=sys.stderr)
        sys.exit(1)

    signature = sign_webhook(body, secret)
    if not args.topic:
        print(signature, end="")
        return

    response = deliver(args.url, args.topic, args.shop, body, signature)
    print(f"{response.status_code} {response.text}")
    if response.is_error:
        sys.exit(1)


if __name__ == "__main__":
    main()
