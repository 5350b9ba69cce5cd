"""Shopify webhook ingress: accept, wrap and enqueue."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from storepulse.core.config import settings
from storepulse.core.deps import get_webhook_publisher
from storepulse.integrations.shopify.webhooks import verify_webhook
from storepulse.schemas.common import StatusResponse
from storepulse.schemas.webhooks import WebhookEnvelope
from storepulse.workers.publisher import QueueUnavailableError, WebhookPublisher

logger = logging.getLogger(__name__)

router = APIRouter()

TOPIC_HEADER = "X-Shopify-Topic"
SHOP_DOMAIN_HEADER = "X-Shopify-Shop-Domain"
HMAC_HEADER = "X-Shopify-Hmac-Sha256"


@router.post("", response_model=StatusResponse)
async def receive_webhook(
    request: Request,
    publisher: WebhookPublisher = Depends(get_webhook_publisher),
) -> dict[str, str]:
    """Receive any Shopify webhook and hand it to the worker queue.

    The raw body is forwarded untouched so the worker can verify the HMAC
    over the exact bytes Shopify signed. Requests missing a required header
    are acknowledged and dropped so Shopify does not retry them.
    """
    body = await request.body()
    topic = request.headers.get(TOPIC_HEADER, "")
    shop_domain = request.headers.get(SHOP_DOMAIN_HEADER, "")
    hmac_header = request.headers.get(HMAC_HEADER, "")

    missing = [
        name
        for name, value in (
            (TOPIC_HEADER, topic),
            (SHOP_DOMAIN_HEADER, shop_domain),
            (HMAC_HEADER, hmac_header),
        )
        if not value
    ]
    if missing:
        logger.warning("Ignoring webhook missing headers: %s", ", ".join(missing))
        return {"status": "ignored"}

    if settings.webhook_verify_on_ingress and not verify_webhook(
        body, hmac_header, settings.shopify_client_secret
    ):
        logger.warning(
            "Rejected webhook with invalid signature from %s",
            shop_domain,
            extra={"topic": topic, "shop_domain": shop_domain},
        )
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    envelope = WebhookEnvelope.from_request(topic, shop_domain, hmac_header, body)
    try:
        await run_in_threadpool(publisher.publish, envelope)
    except QueueUnavailableError:
        logger.exception(
            "Webhook queue unavailable, could not enqueue %s from %s",
            topic,
            shop_domain,
            extra={"topic": topic, "shop_domain": shop_domain},
        )
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Webhook queue unavailable"
        ) from None

    logger.info(
        "Webhook for topic %s sent to queue",
        topic,
        extra={"topic": topic, "shop_domain": shop_domain},
    )
    return {"status": "accepted"}
