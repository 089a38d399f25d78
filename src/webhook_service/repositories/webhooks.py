"""Webhook subscription repository."""
from __future__ import annotations

from typing import List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.dto import WebhookCreateDTO, WebhookUpdateDTO
from webhook_service.domain.webhooks import Webhook
from webhook_service.repositories.base import BaseRepository


class WebhookRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> Webhook:
        return Webhook.model_validate(dict(record))

    async def create(self, tenant_id: UUID, data: WebhookCreateDTO) -> Webhook:
        record = await self._fetchrow(
            """
            INSERT INTO webhooks (tenant_id, name, url, events, secret, active)
            VALUES ($1, $2, $3, $4::text[], $5, $6)
            RETURNING *
            """,
            tenant_id,
            data.name,
            data.url,
            data.events,
            data.secret,
            data.active,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, tenant_id: UUID, webhook_id: UUID) -> Webhook:
        record = await self._fetchrow(
            "SELECT * FROM webhooks WHERE tenant_id = $1 AND id = $2",
            tenant_id,
            webhook_id,
        )
        if record is None:
            raise NotFoundError("Webhook not found")
        return self._to_model(record)

    async def list_by_tenant(
        self, tenant_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[Webhook], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhooks
            WHERE tenant_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            tenant_id,
            limit,
            offset,
        )
        items: List[Webhook] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total = int(rec_dict.pop("total_count"))
            items.append(Webhook.model_validate(rec_dict))
        if total is None:
            total = await self._count_by_tenant(tenant_id)
        return items, total

    async def _count_by_tenant(self, tenant_id: UUID) -> int:
        record = await self._fetchrow(
            "SELECT COUNT(*) AS total FROM webhooks WHERE tenant_id = $1",
            tenant_id,
        )
        return int(record["total"]) if record else 0

    async def update(self, tenant_id: UUID, webhook_id: UUID, data: WebhookUpdateDTO) -> Webhook:
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return await self.get(tenant_id, webhook_id)
        assignments: list[str] = []
        values: list[object] = [tenant_id, webhook_id]
        for column, value in changes.items():
            values.append(value)
            cast = "::text[]" if column == "events" else ""
            assignments.append(f"{column} = ${len(values)}{cast}")
        record = await self._fetchrow(
            f"""
            UPDATE webhooks
            SET {", ".join(assignments)},
                updated_at = now()
            WHERE tenant_id = $1 AND id = $2
            RETURNING *
            """,
            *values,
        )
        if record is None:
            raise NotFoundError("Webhook not found")
        return self._to_model(record)

    async def delete(self, tenant_id: UUID, webhook_id: UUID) -> None:
        record = await self._fetchrow(
            """
            DELETE FROM webhooks
            WHERE tenant_id = $1 AND id = $2
            RETURNING id
            """,
            tenant_id,
            webhook_id,
        )
        if record is None:
            raise NotFoundError("Webhook not found")

    async def list_active_matching(self, tenant_id: UUID, event: str) -> List[Webhook]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhooks
            WHERE tenant_id = $1
              AND active = true
              AND ($2 = ANY(events) OR '*' = ANY(events))
            ORDER BY created_at ASC
            """,
            tenant_id,
            event,
        )
        return [self._to_model(r) for r in records]
