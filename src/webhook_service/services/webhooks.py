"""Webhook subscription service."""
from __future__ import annotations

from typing import List
from uuid import UUID

from webhook_service.domain.dto import WebhookCreateDTO, WebhookUpdateDTO
from webhook_service.domain.webhooks import TEST_EVENT, Webhook, WebhookDelivery, WebhookEvent
from webhook_service.repositories.webhook_events import WebhookEventRepository
from webhook_service.repositories.webhooks import WebhookRepository


class WebhookService:
    def __init__(
        self,
        webhook_repository: WebhookRepository,
        event_repository: WebhookEventRepository,
    ):
        self._webhooks = webhook_repository
        self._events = event_repository

    async def create_webhook(self, tenant_id: UUID, data: WebhookCreateDTO) -> Webhook:
        return await self._webhooks.create(tenant_id, data)

    async def get_webhook(self, tenant_id: UUID, webhook_id: UUID) -> Webhook:
        return await self._webhooks.get(tenant_id, webhook_id)

    async def list_webhooks(
        self, tenant_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> tuple[List[Webhook], int]:
        return await self._webhooks.list_by_tenant(tenant_id, limit=limit, offset=offset)

    async def update_webhook(
        self, tenant_id: UUID, webhook_id: UUID, data: WebhookUpdateDTO
    ) -> Webhook:
        return await self._webhooks.update(tenant_id, webhook_id, data)

    async def delete_webhook(self, tenant_id: UUID, webhook_id: UUID) -> None:
        await self._webhooks.delete(tenant_id, webhook_id)

    async def send_test(
        self, tenant_id: UUID, webhook_id: UUID
    ) -> tuple[WebhookEvent, WebhookDelivery]:
        """Queue a ``webhook.test`` event for one webhook, active or not."""
        webhook = await self._webhooks.get(tenant_id, webhook_id)
        return await self._events.enqueue(
            tenant_id=tenant_id,
            webhook_id=webhook.id,
            event=TEST_EVENT,
            payload={"message": "Test delivery", "webhookName": webhook.name},
        )
