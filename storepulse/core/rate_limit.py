"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from starlette.requests import Request

# Applied per client to the report endpoints. Webhook ingress is never limited.
REPORTS_RATE_LIMIT = "120/minute"


def _get_client_ip(request: Request) -> str:
    """Client IP, preferring the first X-Forwarded-For hop behind a proxy."""
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else "127.0.0.1"


limiter = Limiter(key_func=_get_client_ip)
