"""Webhook delivery repository (attempt state + dispatch queue)."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.dto import DateWindow, DeliveryFilters
from webhook_service.domain.enums import WebhookStatus
from webhook_service.domain.webhooks import TEST_EVENT, DispatchJob, WebhookDelivery
from webhook_service.repositories.base import BaseRepository, Conditions
from webhook_service.services.retry_policy import DeliveryPlan
from webhook_service.services.state_machine import event_status_for, validate_event_transition


class WebhookDeliveryRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record) -> WebhookDelivery:
        return WebhookDelivery.model_validate(cls._decode_json(dict(record), "response"))

    async def get(self, tenant_id: UUID, delivery_id: UUID) -> WebhookDelivery:
        record = await self._fetchrow(
            "SELECT * FROM webhook_deliveries WHERE tenant_id = $1 AND id = $2",
            tenant_id,
            delivery_id,
        )
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def list_by_tenant(
        self,
        tenant_id: UUID,
        filters: DeliveryFilters,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookDelivery], int]:
        where = Conditions("tenant_id = {}", tenant_id)
        where.add("webhook_id = {}", filters.webhook_id)
        where.add("event_id = {}", filters.event_id)
        where.add("status = {}", filters.status.value if filters.status else None)
        where.created_between("created_at", filters.date_from, filters.date_to)
        idx = where.next_index
        records = await self._fetch(
            f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE {where.sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *where.values,
            limit,
            offset,
        )
        items: List[WebhookDelivery] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total = int(rec_dict.pop("total_count"))
            items.append(WebhookDelivery.model_validate(self._decode_json(rec_dict, "response")))
        if total is None:
            total = await self._count(where)
        return items, total

    async def _count(self, where: Conditions) -> int:
        record = await self._fetchrow(
            f"SELECT COUNT(*) AS total FROM webhook_deliveries WHERE {where.sql}",
            *where.values,
        )
        return int(record["total"]) if record else 0

    async def stats_rows(self, tenant_id: UUID, window: DateWindow) -> dict[str, list[dict[str, Any]]]:
        """Grouped counts used to build :class:`WebhookDeliveryStats`."""
        where = Conditions("d.tenant_id = {}", tenant_id)
        where.created_between("d.created_at", window.date_from, window.date_to)
        by_status = await self._fetch(
            f"""
            SELECT d.status::text AS status, COUNT(*) AS count
            FROM webhook_deliveries d
            WHERE {where.sql}
            GROUP BY d.status
            """,
            *where.values,
        )
        by_webhook = await self._fetch(
            f"""
            SELECT w.id AS webhook_id, w.name AS webhook_name, COUNT(*) AS count
            FROM webhook_deliveries d
            JOIN webhooks w ON w.id = d.webhook_id
            WHERE {where.sql}
            GROUP BY w.id, w.name
            ORDER BY count DESC, w.name ASC
            """,
            *where.values,
        )
        by_event = await self._fetch(
            f"""
            SELECT e.id AS event_id, e.event AS event_name, COUNT(*) AS count
            FROM webhook_deliveries d
            JOIN webhook_events e ON e.id = d.event_id
            WHERE {where.sql}
            GROUP BY e.id, e.event
            ORDER BY count DESC, e.event ASC
            """,
            *where.values,
        )
        by_day = await self._fetch(
            f"""
            SELECT to_char(d.created_at AT TIME ZONE 'UTC', 'YYYY-MM-DD') AS day, COUNT(*) AS count
            FROM webhook_deliveries d
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

    async def claim_due(self, *, limit: int = 100) -> List[DispatchJob]:
        """
        Atomically claim due deliveries for sending.

        A delivery is due when it is pending, its ``next_retry_at`` is unset
        (never attempted) or has elapsed, and its webhook is active. Test events
        are sent to inactive webhooks too. Rows are locked with
        ``FOR UPDATE SKIP LOCKED`` so concurrent dispatchers never share one.

        Side-effects:
          - delivery status -> processing, locked_at -> now()
          - pending events of the claimed deliveries -> processing
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                claimed = await conn.fetch(
                    """
                    WITH due AS (
                        SELECT pd.id
                        FROM webhook_deliveries pd
                        WHERE pd.status = 'pending'
                          AND (pd.next_retry_at IS NULL OR pd.next_retry_at <= now())
                          AND EXISTS (
                              SELECT 1
                              FROM webhooks w
                              JOIN webhook_events e ON e.id = pd.event_id
                              WHERE w.id = pd.webhook_id
                                AND (w.active OR e.event = $2)
                          )
                        ORDER BY COALESCE(pd.next_retry_at, pd.created_at) ASC, pd.created_at ASC
                        FOR UPDATE OF pd SKIP LOCKED
                        LIMIT $1
                    )
                    UPDATE webhook_deliveries d
                    SET status = 'processing',
                        locked_at = now(),
                        updated_at = now()
                    FROM due
                    WHERE d.id = due.id
                    RETURNING d.id, d.event_id
                    """,
                    limit,
                    TEST_EVENT,
                )
                if not claimed:
                    return []
                delivery_ids = [r["id"] for r in claimed]
                await conn.execute(
                    """
                    UPDATE webhook_events
                    SET status = 'processing',
                        updated_at = now()
                    WHERE id = ANY($1::uuid[])
                      AND status = 'pending'
                    """,
                    [r["event_id"] for r in claimed],
                )
                records = await conn.fetch(
                    """
                    SELECT d.*,
                           w.url AS url,
                           w.secret AS secret,
                           e.event AS event,
                           e.payload AS payload,
                           e.created_at AS event_created_at
                    FROM webhook_deliveries d
                    JOIN webhooks w ON w.id = d.webhook_id
                    JOIN webhook_events e ON e.id = d.event_id
                    WHERE d.id = ANY($1::uuid[])
                    """,
                    delivery_ids,
                )
        jobs: List[DispatchJob] = []
        for rec in records:
            rec_dict = self._decode_json(dict(rec), "payload", "response")
            jobs.append(
                DispatchJob(
                    delivery=WebhookDelivery.model_validate(rec_dict),
                    tenant_id=rec_dict["tenant_id"],
                    url=rec_dict["url"],
                    secret=rec_dict["secret"],
                    event=rec_dict["event"],
                    payload=rec_dict["payload"],
                    event_created_at=rec_dict["event_created_at"],
                )
            )
        return jobs

    async def record_attempt(
        self, delivery: WebhookDelivery, plan: DeliveryPlan
    ) -> WebhookDelivery | None:
        """Persist the outcome of an attempt on the delivery and its event.

        Returns ``None`` when the delivery is no longer ``processing`` (e.g.
        it was reclaimed meanwhile), in which case nothing is written.
        """
        response_json = (
            json.dumps(plan.response.model_dump(mode="json")) if plan.response else None
        )
        event_status = event_status_for(plan.status)
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                record = await conn.fetchrow(
                    """
                    UPDATE webhook_deliveries
                    SET status = $2,
                        retry_count = GREATEST(retry_count, $3),
                        next_retry_at = $4,
                        response = $5::jsonb,
                        error = $6,
                        locked_at = NULL,
                        updated_at = now()
                    WHERE id = $1
                      AND status = 'processing'
                    RETURNING *
                    """,
                    delivery.id,
                    plan.status.value,
                    plan.retry_count,
                    plan.next_retry_at if plan.status == WebhookStatus.PENDING else None,
                    response_json,
                    plan.error,
                )
                if record is None:
                    return None
                current = await conn.fetchval(
                    "SELECT status::text FROM webhook_events WHERE id = $1 FOR UPDATE",
                    delivery.event_id,
                )
                if current is not None and not WebhookStatus(current).is_terminal:
                    validate_event_transition(WebhookStatus(current), event_status)
                    await conn.execute(
                        """
                        UPDATE webhook_events
                        SET status = $2,
                            response = $3::jsonb,
                            error = $4,
                            updated_at = now()
                        WHERE id = $1
                        """,
                        delivery.event_id,
                        event_status.value,
                        response_json,
                        plan.error,
                    )
        return self._to_model(record)

    async def reclaim_stuck(self, locked_before: datetime) -> int:
        """Return deliveries stuck in ``processing`` (e.g. after a crash) to ``pending``.

        ``retry_count`` and ``next_retry_at`` are left untouched, so a reclaimed
        delivery is due immediately and its history stays consistent.
        """
        result = await self._execute(
            """
            UPDATE webhook_deliveries
            SET status = 'pending',
                locked_at = NULL,
                updated_at = now()
            WHERE status = 'processing'
              AND locked_at < $1
            """,
            locked_before,
        )
        return self._affected(result)
