"""Webhook event repository (outbox entries, one per subscribed webhook)."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.dto import DateWindow, EventFilters
from webhook_service.domain.webhooks import WebhookDelivery, WebhookEvent
from webhook_service.repositories.base import BaseRepository, Conditions

_JSON_COLUMNS = ("payload", "response")


class WebhookEventRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record) -> WebhookEvent:
        return WebhookEvent.model_validate(cls._decode_json(dict(record), *_JSON_COLUMNS))

    async def enqueue(
        self,
        *,
        tenant_id: UUID,
        webhook_id: UUID,
        event: str,
        payload: dict[str, Any],
    ) -> Tuple[WebhookEvent, WebhookDelivery]:
        """Store a pending event and its first pending delivery atomically."""
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                event_record = await conn.fetchrow(
                    """
                    INSERT INTO webhook_events (tenant_id, webhook_id, event, payload, status)
                    VALUES ($1, $2, $3, $4::jsonb, 'pending')
                    RETURNING *
                    """,
                    tenant_id,
                    webhook_id,
                    event,
                    json.dumps(payload),
                )
                delivery_record = await conn.fetchrow(
                    """
                    INSERT INTO webhook_deliveries (tenant_id, webhook_id, event_id, status, retry_count)
                    VALUES ($1, $2, $3, 'pending', 0)
                    RETURNING *
                    """,
                    tenant_id,
                    webhook_id,
                    event_record["id"],
                )
        delivery = WebhookDelivery.model_validate(
            self._decode_json(dict(delivery_record), "response")
        )
        return self._to_model(event_record), delivery

    async def get(self, tenant_id: UUID, event_id: UUID) -> WebhookEvent:
        record = await self._fetchrow(
            "SELECT * FROM webhook_events WHERE tenant_id = $1 AND id = $2",
            tenant_id,
            event_id,
        )
        if record is None:
            raise NotFoundError("Webhook event not found")
        return self._to_model(record)

    async def list_by_tenant(
        self,
        tenant_id: UUID,
        filters: EventFilters,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookEvent], int]:
        where = Conditions("tenant_id = {}", tenant_id)
        where.add("webhook_id = {}", filters.webhook_id)
        where.add("event = {}", filters.event)
        where.add("status = {}", filters.status.value if filters.status else None)
        where.created_between("created_at", filters.date_from, filters.date_to)
        idx = where.next_index
        records = await self._fetch(
            f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_events
            WHERE {where.sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *where.values,
            limit,
            offset,
        )
        items: List[WebhookEvent] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total = int(rec_dict.pop("total_count"))
            items.append(WebhookEvent.model_validate(self._decode_json(rec_dict, *_JSON_COLUMNS)))
        if total is None:
            total = await self._count(where)
        return items, total

    async def _count(self, where: Conditions) -> int:
        record = await self._fetchrow(
            f"SELECT COUNT(*) AS total FROM webhook_events WHERE {where.sql}",
            *where.values,
        )
        return int(record["total"]) if record else 0

    async def stats_rows(self, tenant_id: UUID, window: DateWindow) -> dict[str, list[dict[str, Any]]]:
        """Grouped counts used to build :class:`WebhookEventStats`."""
        where = Conditions("e.tenant_id = {}", tenant_id)
        where.created_between("e.created_at", window.date_from, window.date_to)
        by_status = await self._fetch(
            f"""
            SELECT e.status::text AS status, COUNT(*) AS count
            FROM webhook_events e
            WHERE {where.sql}
            GROUP BY e.status
            """,
            *where.values,
        )
        by_webhook = await self._fetch(
            f"""
            SELECT w.id AS webhook_id, w.name AS webhook_name, COUNT(*) AS count
            FROM webhook_events e
            JOIN webhooks w ON w.id = e.webhook_id
            WHERE {where.sql}
            GROUP BY w.id, w.name
            ORDER BY count DESC, w.name ASC
            """,
            *where.values,
        )
        by_event = await self._fetch(
            f"""
            SELECT e.event AS event, COUNT(*) AS count
            FROM webhook_events e
            WHERE {where.sql}
            GROUP BY e.event
            ORDER BY count DESC, e.event ASC
            """,
            *where.values,
        )
        by_day = await self._fetch(
            f"""
            SELECT to_char(e.created_at AT TIME ZONE 'UTC', 'YYYY-MM-DD') AS day, COUNT(*) AS count
            FROM webhook_events e
            WHERE {where.sql}
            GROUP BY day
            ORDER BY day ASC
            """,
            *where.values,
        )
        return {
            "by_status": [dict(r) for r in by_status],
            "by_webhook": [dict(r) for r in by_webhook],
            "by_event": [dict(r) for r in by_event],
            "by_day": [dict(r) for r in by_day],
        }

    async def delete_old_completed(self, updated_before: datetime) -> int:
        """Delete completed events (and their deliveries) last touched before the cutoff."""
        result = await self._execute(
            "DELETE FROM webhook_events WHERE status = 'completed' AND updated_at < $1",
            updated_before,
        )
        return self._affected(result)
