"""Celery task consuming the Shopify webhook queue."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

import sentry_sdk
from celery.exceptions import Reject, SoftTimeLimitExceeded

from storepulse.core.config import settings
from storepulse.core.database import async_session_maker, engine
from storepulse.services.webhook_processor import (
    ProcessingResult,
    ProcessingStage,
    WebhookProcessor,
)
from storepulse.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)


def _run_async[T](coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    Each Celery prefork worker creates a new event loop per task. asyncpg connections
    are bound to the loop that created them, so pooled connections from a previous
    (closed) loop must not be reused. Disposing the engine after each task clears them.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.webhooks.process_webhook",
    base=BaseTask,
    bind=True,
)
def process_webhook(
    self: BaseTask,
    envelope: Any,
) -> dict[str, Any]:
    """Verify, resolve and reconcile one queued webhook.

    Returns normally (message acked) on success, bad signatures and
    undecodable envelopes. Raises Reject without requeue when
    reconciliation fails or the soft time limit is hit.
    """
    delivery_info = self.request.delivery_info or {}
    if delivery_info.get("redelivered"):
        # Back on the queue after a worker died mid-task. reject_on_worker_lost has
        # no retry cap, so a message that keeps killing the worker shows up here.
        logger.warning(
            "Processing redelivered webhook message",
            extra={"redelivered": True, "task_id": self.request.id},
        )

    try:
        result = _run_async(_process_webhook_async(envelope))
    except SoftTimeLimitExceeded as e:
        logger.error(
            "Webhook processing exceeded %ss, rejecting message",
            settings.webhook_soft_time_limit,
            extra={"stage": ProcessingStage.REJECTED.value},
        )
        sentry_sdk.capture_exception(e)
        raise Reject("soft time limit exceeded", requeue=False) from e

    if not result.acked:
        if result.error is not None:
            sentry_sdk.capture_exception(result.error)
        logger.warning(
            "Rejecting webhook message: topic=%s shop=%s",
            result.topic,
            result.shop_domain,
            extra={
                "topic": result.topic,
                "shop_domain": result.shop_domain,
                "stage": ProcessingStage.REJECTED.value,
            },
        )
        raise Reject(f"{result.stage.value}: {result.error}", requeue=False)

    return result.to_dict()


async def _process_webhook_async(envelope: Any) -> ProcessingResult:
    """Async implementation of webhook processing."""
    processor = WebhookProcessor(async_session_maker, settings.shopify_client_secret)
    return await processor.process(envelope)
