"""Worker: reclaim stuck webhook deliveries."""
from __future__ import annotations

from datetime import datetime, timedelta

from webhook_service.db.pool import get_pool
from webhook_service.repositories.webhook_deliveries import WebhookDeliveryRepository
from webhook_service.settings import settings


async def webhook_reclaim_stuck(now: datetime) -> str | None:
    """Release deliveries stuck in ``processing`` longer than ``webhook_stuck_minutes``."""
    pool = await get_pool()
    cutoff = now - timedelta(minutes=settings.webhook_stuck_minutes)
    reclaimed = await WebhookDeliveryRepository(pool).reclaim_stuck(cutoff)
    return f"reclaimed={reclaimed}" if reclaimed else None
