"""Shopify webhook HMAC signing and verification."""

import base64
import hashlib
import hmac


def sign_webhook(data: bytes, secret: str) -> str:
    """Compute the base64-encoded HMAC-SHA256 signature Shopify sends."""
    return base64.b64encode(
        hmac.new(
            secret.encode("utf-8"),
            data,
            hashlib.sha256,
        ).digest()
    ).decode("utf-8")


def verify_webhook(data: bytes, hmac_header: str | None, secret: str) -> bool:
    """Verify a Shopify webhook's HMAC-SHA256 signature.

    The signature is computed over the exact bytes Shopify sent. Re-serialized
    JSON will not verify, so callers must keep the raw body around.

    Args:
        data: The raw request body bytes.
        hmac_header: The X-Shopify-Hmac-Sha256 header value.
        secret: The Shopify client secret.

    Returns:
        True if the signature is valid. False for a missing secret or header.
    """
    if not secret or not hmac_header:
        return False

    return hmac.compare_digest(sign_webhook(data, secret), hmac_header)
