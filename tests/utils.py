from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any

import asyncpg


def make_headers(
    tenant_id: uuid.UUID,
    role: str = "owner",
    *,
    user_id: uuid.UUID | None = None,
) -> dict[str, str]:
    """Construct identity headers forwarded by the API gateway."""
    return {
        "X-User-Id": str(user_id or uuid.uuid4()),
        "X-Tenant-Id": str(tenant_id),
        "X-Tenant-Role": role,
    }


async def insert_webhook(
    pool: asyncpg.Pool,
    tenant_id: uuid.UUID,
    *,
    name: str = "Invoices hook",
    url: str = "http://127.0.0.1:9/hook",
    events: list[str] | None = None,
    secret: str | None = None,
    active: bool = True,
) -> uuid.UUID:
    return await pool.fetchval(
        """
        INSERT INTO webhooks (tenant_id, name, url, events, secret, active)
        VALUES ($1, $2, $3, $4::text[], $5, $6)
        RETURNING id
        """,
        tenant_id,
        name,
        url,
        events or ["invoice.created"],
        secret,
        active,
    )


async def insert_event(
    pool: asyncpg.Pool,
    tenant_id: uuid.UUID,
    webhook_id: uuid.UUID,
    *,
    event: str = "invoice.created",
    payload: dict[str, Any] | None = None,
    status: str = "pending",
    error: str | None = None,
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
) -> uuid.UUID:
    return await pool.fetchval(
        """
        INSERT INTO webhook_events
            (tenant_id, webhook_id, event, payload, status, error, created_at, updated_at)
        VALUES ($1, $2, $3, $4::jsonb, $5, $6, COALESCE($7, now()), COALESCE($8, now()))
        RETURNING id
        """,
        tenant_id,
        webhook_id,
        event,
        json.dumps(payload or {}),
        status,
        error,
        created_at,
        updated_at,
    )


async def insert_delivery(
    pool: asyncpg.Pool,
    tenant_id: uuid.UUID,
    webhook_id: uuid.UUID,
    event_id: uuid.UUID,
    *,
    status: str = "pending",
    retry_count: int = 0,
    next_retry_at: datetime | None = None,
    locked_at: datetime | None = None,
    error: str | None = None,
    response: dict[str, Any] | None = None,
) -> uuid.UUID:
    return await pool.fetchval(
        """
        INSERT INTO webhook_deliveries
            (tenant_id, webhook_id, event_id, status, retry_count,
             next_retry_at, locked_at, error, response)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
        RETURNING id
        """,
        tenant_id,
        webhook_id,
        event_id,
        status,
        retry_count,
        next_retry_at,
        locked_at,
        error,
        json.dumps(response) if response is not None else None,
    )


async def seed_delivery(
    pool: asyncpg.Pool,
    tenant_id: uuid.UUID | None = None,
    **webhook_fields: Any,
) -> tuple[uuid.UUID, uuid.UUID, uuid.UUID]:
    """A webhook with one pending event and its pending delivery."""
    tenant_id = tenant_id or uuid.uuid4()
    webhook_id = await insert_webhook(pool, tenant_id, **webhook_fields)
    event_id = await insert_event(pool, tenant_id, webhook_id, payload={"invoice": {"id": 42}})
    delivery_id = await insert_delivery(pool, tenant_id, webhook_id, event_id)
    return webhook_id, event_id, delivery_id


async def fetch_delivery(pool: asyncpg.Pool, delivery_id: uuid.UUID) -> asyncpg.Record:
    return await pool.fetchrow("SELECT * FROM webhook_deliveries WHERE id = $1", delivery_id)


async def fetch_event_status(pool: asyncpg.Pool, event_id: uuid.UUID) -> str:
    return await pool.fetchval("SELECT status::text FROM webhook_events WHERE id = $1", event_id)


async def make_due(pool: asyncpg.Pool, delivery_id: uuid.UUID) -> None:
    """Pretend the backoff delay of *delivery_id* has elapsed."""
    await pool.execute(
        """
        UPDATE webhook_deliveries
        SET next_retry_at = now() - interval '1 second'
        WHERE id = $1 AND next_retry_at IS NOT NULL
        """,
        delivery_id,
    )
