"""Per-message webhook processing: verify, resolve tenant, reconcile.

One queued message moves through

    RECEIVED -> VERIFIED -> TENANT_RESOLVED -> RECONCILED -> ACKED

with three failure exits:

    MALFORMED        -> ACKED     envelope cannot be decoded; redelivery would not help
    VERIFY_FAILED    -> ACKED     HMAC mismatch; possibly malicious, never retried
    RECONCILE_FAILED -> REJECTED  database or payload error; rejected without requeue

The processor decides the outcome only. Acknowledging or rejecting the
broker message is left to the Celery task that drives it.
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storepulse.integrations.shopify.webhooks import verify_webhook
from storepulse.schemas.webhooks import WebhookEnvelope
from storepulse.services.reconciler import reconcile
from storepulse.services.tenant_service import resolve_tenant

logger = logging.getLogger(__name__)


class ProcessingStage(str, enum.Enum):
    """Stages of the per-message state machine."""

    RECEIVED = "received"
    VERIFIED = "verified"
    TENANT_RESOLVED = "tenant_resolved"
    RECONCILED = "reconciled"
    ACKED = "acked"
    MALFORMED = "malformed"
    VERIFY_FAILED = "verify_failed"
    RECONCILE_FAILED = "reconcile_failed"
    REJECTED = "rejected"


@dataclass
class ProcessingResult:
    """Outcome of processing one message."""

    outcome: ProcessingStage
    stage: ProcessingStage
    topic: str | None = None
    shop_domain: str | None = None
    tenant_id: UUID | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    error: Exception | None = None

    @property
    def acked(self) -> bool:
        return self.outcome is ProcessingStage.ACKED

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "stage": self.stage.value,
            "topic": self.topic,
            "shop_domain": self.shop_domain,
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "detail": self.detail,
            "error": str(self.error) if self.error else None,
        }


def decode_envelope(message: Any) -> WebhookEnvelope:
    """Parse a queue message (dict, JSON text or bytes) into an envelope.

    Raises ValueError (including pydantic's ValidationError) or TypeError
    for anything that is not a well-formed envelope.
    """
    if isinstance(message, bytes | bytearray):
        message = message.decode("utf-8")
    if isinstance(message, str):
        message = json.loads(message)
    return WebhookEnvelope.model_validate(message)


class WebhookProcessor:
    """Runs one queued webhook through verification and reconciliation.

    Dependencies are injected so the worker, tests and any future consumer
    can supply their own session factory and secret.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], secret: str) -> None:
        self.session_factory = session_factory
        self.secret = secret

    async def process(self, message: Any) -> ProcessingResult:
        try:
            envelope = decode_envelope(message)
        except (ValueError, TypeError) as e:
            logger.warning(
                "Dropping malformed webhook envelope: %s",
                e,
                extra={"stage": ProcessingStage.MALFORMED.value},
            )
            return ProcessingResult(
                outcome=ProcessingStage.ACKED,
                stage=ProcessingStage.MALFORMED,
                error=e,
            )

        log_extra: dict[str, Any] = {
            "topic": envelope.topic,
            "shop_domain": envelope.shop_domain,
        }
        logger.info("Received message for topic: %s", envelope.topic, extra=log_extra)

        if not verify_webhook(envelope.raw_body(), envelope.hmac, self.secret):
            logger.warning(
                "HMAC verification failed for topic %s from %s. Discarding message.",
                envelope.topic,
                envelope.shop_domain,
                extra={**log_extra, "stage": ProcessingStage.VERIFY_FAILED.value},
            )
            return ProcessingResult(
                outcome=ProcessingStage.ACKED,
                stage=ProcessingStage.VERIFY_FAILED,
                topic=envelope.topic,
                shop_domain=envelope.shop_domain,
            )

        stage = ProcessingStage.VERIFIED
        tenant_id: UUID | None = None
        try:
            async with self.session_factory() as session, session.begin():
                tenant = await resolve_tenant(session, envelope.shop_domain)
                tenant_id = tenant.id
                stage = ProcessingStage.TENANT_RESOLVED

                data = json.loads(envelope.body)
                detail = await reconcile(session, envelope.topic, tenant.id, data)
        except Exception as e:
            logger.exception(
                "Error processing webhook: topic=%s shop=%s tenant=%s stage=%s",
                envelope.topic,
                envelope.shop_domain,
                tenant_id,
                stage.value,
                extra={
                    **log_extra,
                    "tenant_id": str(tenant_id) if tenant_id else None,
                    "stage": ProcessingStage.RECONCILE_FAILED.value,
                },
            )
            return ProcessingResult(
                outcome=ProcessingStage.REJECTED,
                stage=ProcessingStage.RECONCILE_FAILED,
                topic=envelope.topic,
                shop_domain=envelope.shop_domain,
                tenant_id=tenant_id,
                error=e,
            )

        logger.info(
            "Successfully processed webhook for topic: %s",
            envelope.topic,
            extra={**log_extra, "tenant_id": str(tenant_id), "status": detail.get("status")},
        )
        return ProcessingResult(
            outcome=ProcessingStage.ACKED,
            stage=ProcessingStage.RECONCILED,
            topic=envelope.topic,
            shop_domain=envelope.shop_domain,
            tenant_id=tenant_id,
            detail=detail,
        )
