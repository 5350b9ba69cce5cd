"""Publishing webhook envelopes onto the durable queue."""

import logging

from celery import Task
from kombu.exceptions import OperationalError

from storepulse.core.config import settings
from storepulse.schemas.webhooks import WebhookEnvelope
from storepulse.workers.tasks.webhooks import process_webhook

logger = logging.getLogger(__name__)


class QueueUnavailableError(Exception):
    """Raised when the broker cannot accept a message."""


class WebhookPublisher:
    """Sends webhook envelopes to the webhook queue as persistent messages.

    Publishing is fire-and-forget: the caller gets back the message id but
    never waits on processing.
    """

    def __init__(self, task: Task = process_webhook, queue: str | None = None) -> None:
        self.task = task
        self.queue = queue or settings.webhook_queue_name

    def publish(self, envelope: WebhookEnvelope) -> str:
        """Publish an envelope. Blocking; run it in a threadpool from async code.

        Raises:
            QueueUnavailableError: The broker is unreachable.
        """
        try:
            result = self.task.apply_async(
                args=[envelope.to_message()],
                queue=self.queue,
                delivery_mode="persistent",
                retry=False,
            )
        except OperationalError as e:
            raise QueueUnavailableError(str(e)) from e

        logger.debug("Published webhook %s to %s as %s", envelope.topic, self.queue, result.id)
        return str(result.id)
