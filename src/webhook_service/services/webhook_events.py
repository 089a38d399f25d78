"""Webhook event service: fan-out of domain events to subscribed webhooks."""
from __future__ import annotations

from typing import Any, List
from uuid import UUID

import structlog

from webhook_service.domain.dto import DateWindow, EventFilters
from webhook_service.domain.stats import WebhookEventStats
from webhook_service.domain.webhooks import WebhookEvent
from webhook_service.repositories.webhook_events import WebhookEventRepository
from webhook_service.repositories.webhooks import WebhookRepository
from webhook_service.services.stats import build_event_stats

logger = structlog.get_logger(__name__)


class WebhookEventService:
    def __init__(
        self,
        webhook_repository: WebhookRepository,
        event_repository: WebhookEventRepository,
    ):
        self._webhooks = webhook_repository
        self._events = event_repository

    async def emit(
        self,
        tenant_id: UUID,
        *,
        event: str,
        payload: dict[str, Any],
    ) -> List[WebhookEvent]:
        """Queue *event* once per active webhook subscribed to it.

        Each queued event gets one pending delivery picked up by the dispatcher.
        """
        webhooks = await self._webhooks.list_active_matching(tenant_id, event)
        events: List[WebhookEvent] = []
        for webhook in webhooks:
            queued, delivery = await self._events.enqueue(
                tenant_id=tenant_id,
                webhook_id=webhook.id,
                event=event,
                payload=payload,
            )
            events.append(queued)
            logger.info(
                "webhook event queued",
                webhook_id=str(webhook.id),
                event_id=str(queued.id),
                delivery_id=str(delivery.id),
                event_name=event,
            )
        return events

    async def get_event(self, tenant_id: UUID, event_id: UUID) -> WebhookEvent:
        return await self._events.get(tenant_id, event_id)

    async def list_events(
        self,
        tenant_id: UUID,
        filters: EventFilters,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[WebhookEvent], int]:
        return await self._events.list_by_tenant(tenant_id, filters, limit=limit, offset=offset)

    async def get_stats(self, tenant_id: UUID, window: DateWindow) -> WebhookEventStats:
        rows = await self._events.stats_rows(tenant_id, window)
        return build_event_stats(rows)
