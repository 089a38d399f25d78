"""Aggregate statistics returned by the ``/stats`` endpoints."""
from __future__ import annotations

from uuid import UUID

from pydantic import Field

from webhook_service.domain.webhooks import WireModel


class WebhookCount(WireModel):
    webhook_id: UUID
    webhook_name: str
    count: int


class EventNameCount(WireModel):
    event: str
    count: int


class EventIdCount(WireModel):
    event_id: UUID
    event_name: str
    count: int


class StatusCount(WireModel):
    status: str
    count: int


class DayCount(WireModel):
    day: str
    count: int


class WebhookEventStats(WireModel):
    total_events: int = 0
    total_pending: int = 0
    total_processing: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_events_by_webhook: list[WebhookCount] = Field(default_factory=list)
    total_events_by_event: list[EventNameCount] = Field(default_factory=list)
    total_events_by_status: list[StatusCount] = Field(default_factory=list)
    total_events_by_day: list[DayCount] = Field(default_factory=list)


class WebhookDeliveryStats(WireModel):
    total_deliveries: int = 0
    total_pending: int = 0
    total_processing: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_deliveries_by_webhook: list[WebhookCount] = Field(default_factory=list)
    total_deliveries_by_event: list[EventIdCount] = Field(default_factory=list)
    total_deliveries_by_status: list[StatusCount] = Field(default_factory=list)
    total_deliveries_by_day: list[DayCount] = Field(default_factory=list)
