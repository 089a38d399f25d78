"""Read side of webhook deliveries."""
from __future__ import annotations

from typing import List
from uuid import UUID

from webhook_service.domain.dto import DateWindow, DeliveryFilters
from webhook_service.domain.stats import WebhookDeliveryStats
from webhook_service.domain.webhooks import WebhookDelivery
from webhook_service.repositories.webhook_deliveries import WebhookDeliveryRepository
from webhook_service.services.stats import build_delivery_stats


class WebhookDeliveryService:
    def __init__(self, repository: WebhookDeliveryRepository):
        self._repository = repository

    async def get_delivery(self, tenant_id: UUID, delivery_id: UUID) -> WebhookDelivery:
        return await self._repository.get(tenant_id, delivery_id)

    async def list_deliveries(
        self,
        tenant_id: UUID,
        filters: DeliveryFilters,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[WebhookDelivery], int]:
        return await self._repository.list_by_tenant(
            tenant_id, filters, limit=limit, offset=offset
        )

    async def get_stats(self, tenant_id: UUID, window: DateWindow) -> WebhookDeliveryStats:
        rows = await self._repository.stats_rows(tenant_id, window)
        return build_delivery_stats(rows)
