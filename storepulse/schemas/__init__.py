"""Pydantic schemas for request/response validation."""

from storepulse.schemas.common import BaseSchema, HealthResponse, StatusResponse
from storepulse.schemas.webhooks import WebhookEnvelope, WebhookTopic

__all__ = [
    "BaseSchema",
    "HealthResponse",
    "StatusResponse",
    "WebhookEnvelope",
    "WebhookTopic",
]
