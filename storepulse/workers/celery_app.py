"""Celery application configuration."""

from typing import Any

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from celery.signals import worker_process_init
from kombu import Exchange, Queue

from storepulse.core.config import settings
from storepulse.core.logging_config import setup_logging

# Create Celery app
celery_app = Celery(
    "storepulse",
    broker=settings.celery_broker_url,
    include=[
        "storepulse.workers.tasks.webhooks",
    ],
)

webhook_queue = Queue(
    settings.webhook_queue_name,
    Exchange(settings.webhook_queue_name, type="direct", durable=True),
    routing_key=settings.webhook_queue_name,
    durable=True,
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # No result backend; outcomes are logged
    task_ignore_result=True,
    # Task safety limits
    task_time_limit=settings.webhook_time_limit,
    task_soft_time_limit=settings.webhook_soft_time_limit,
    # Ack only after the handler returns; a crashed worker leaves the message queued.
    # Worker-lost requeues are uncapped (Celery keeps no delivery count), so a message
    # that kills the worker process loops until removed. The task logs redeliveries.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Messages survive a broker restart
    task_default_delivery_mode="persistent",
    # One unacked message at a time keeps per-queue ordering
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    # Default queue name (must match worker -Q flag)
    task_queues=(webhook_queue,),
    task_default_queue=settings.webhook_queue_name,
    task_routes={
        "tasks.webhooks.*": {"queue": settings.webhook_queue_name},
    },
    broker_connection_retry_on_startup=True,
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs: Any) -> None:
    """Use the JSON log format in workers instead of Celery's own."""
    setup_logging(debug=settings.debug)


@worker_process_init.connect
def _init_worker_sentry(**kwargs: Any) -> None:
    if settings.sentry_dsn:
        import sentry_sdk
        from sentry_sdk.integrations.celery import CeleryIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            integrations=[CeleryIntegration()],
            traces_sample_rate=0.1 if settings.environment == "production" else 1.0,
        )


# Task base class with common error handling
class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Base task class for webhook processing.

    Webhook messages are never retried by Celery. A failed message is
    rejected without requeue so a poison message cannot loop forever. The
    exception is a message whose worker process dies (OOM, segfault): it is
    requeued by reject_on_worker_lost and shows up as redelivered.
    """

    abstract = True
    acks_late = True
    reject_on_worker_lost = True
    max_retries = 0
