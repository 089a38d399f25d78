"""Webhook domain primitives.

All models serialize with camelCase keys (``model_dump(by_alias=True)``) and
accept either camelCase or snake_case input, so the same classes read asyncpg
records and wire payloads.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from webhook_service.domain.enums import WebhookStatus

# Queued by the webhook test endpoint; delivered even to inactive webhooks.
TEST_EVENT = "webhook.test"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class WebhookResponse(WireModel):
    """HTTP response recorded for a delivery attempt."""

    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""


class Webhook(WireModel):
    id: UUID
    tenant_id: UUID
    name: str
    url: str
    events: list[str] = Field(default_factory=list)
    secret: str | None = None
    active: bool = True
    created_at: datetime
    updated_at: datetime

    def subscribes_to(self, event: str) -> bool:
        return "*" in self.events or event in self.events


class WebhookEvent(WireModel):
    id: UUID
    webhook_id: UUID
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: WebhookStatus
    response: WebhookResponse | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime


class WebhookDelivery(WireModel):
    id: UUID
    webhook_id: UUID
    event_id: UUID
    status: WebhookStatus
    response: WebhookResponse | None = None
    error: str | None = None
    retry_count: int = Field(default=0, ge=0)
    next_retry_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _terminal_has_no_retry(self) -> "WebhookDelivery":
        if self.status.is_terminal and self.next_retry_at is not None:
            raise ValueError(f"nextRetryAt must be empty for a {self.status.value} delivery")
        return self


class DispatchJob(BaseModel):
    """A claimed delivery joined with what is needed to send it."""

    delivery: WebhookDelivery
    tenant_id: UUID
    url: str
    secret: str | None = None
    event: str
    payload: dict[str, Any]
    event_created_at: datetime

    def request_body(self) -> dict[str, Any]:
        return {
            "id": str(self.delivery.event_id),
            "event": self.event,
            "webhookId": str(self.delivery.webhook_id),
            "createdAt": self.event_created_at.isoformat(),
            "payload": self.payload,
        }
