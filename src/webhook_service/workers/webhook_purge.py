"""Worker: purge old completed webhook events."""
from __future__ import annotations

from datetime import datetime, timedelta

from webhook_service.db.pool import get_pool
from webhook_service.repositories.webhook_events import WebhookEventRepository
from webhook_service.settings import settings


async def webhook_purge_completed(now: datetime) -> str | None:
    """Delete completed events (with their deliveries) older than the retention window."""
    pool = await get_pool()
    cutoff = now - timedelta(days=settings.webhook_completed_retention_days)
    purged = await WebhookEventRepository(pool).delete_old_completed(cutoff)
    return f"purged={purged}" if purged else None
