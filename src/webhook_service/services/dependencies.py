"""Shared dependency providers for aiohttp handlers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from aiohttp import web

from webhook_service.db.pool import get_pool
from webhook_service.repositories import (
    WebhookDeliveryRepository,
    WebhookEventRepository,
    WebhookRepository,
)
from webhook_service.services.webhook_deliveries import WebhookDeliveryService
from webhook_service.services.webhook_events import WebhookEventService
from webhook_service.services.webhooks import WebhookService

TService = TypeVar("TService")

_WEBHOOK_SERVICE_KEY = "webhook_service"
_EVENT_SERVICE_KEY = "webhook_event_service"
_DELIVERY_SERVICE_KEY = "webhook_delivery_service"

USER_ID_HEADER = "X-User-Id"
TENANT_ID_HEADER = "X-Tenant-Id"
TENANT_ROLE_HEADER = "X-Tenant-Role"

WRITE_ROLES = ("owner", "admin")


@dataclass
class UserContext:
    user_id: UUID
    tenant_id: UUID | None
    role: str | None


async def require_current_user(request: web.Request) -> UserContext:
    """Identity forwarded by the API gateway after authentication."""
    user_header = request.headers.get(USER_ID_HEADER)
    if user_header is None:
        raise web.HTTPUnauthorized(reason=f"Header {USER_ID_HEADER} is required")
    try:
        user_id = UUID(user_header)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {USER_ID_HEADER}") from exc

    tenant_header = request.headers.get(TENANT_ID_HEADER)
    tenant_id: UUID | None = None
    if tenant_header:
        try:
            tenant_id = UUID(tenant_header)
        except ValueError as exc:
            raise web.HTTPBadRequest(text=f"Invalid {TENANT_ID_HEADER}") from exc

    return UserContext(
        user_id=user_id,
        tenant_id=tenant_id,
        role=request.headers.get(TENANT_ROLE_HEADER),
    )


def resolve_tenant_id(
    user: UserContext,
    *,
    require_role: tuple[str, ...] | None = None,
) -> UUID:
    if user.tenant_id is None or user.role is None:
        raise web.HTTPForbidden(reason="User does not belong to tenant")
    if require_role and user.role not in require_role:
        raise web.HTTPForbidden(reason="Insufficient tenant role")
    return user.tenant_id


async def current_tenant(
    request: web.Request, *, require_role: tuple[str, ...] | None = None
) -> UUID:
    user = await require_current_user(request)
    return resolve_tenant_id(user, require_role=require_role)


async def _get_or_create_service(
    request: web.Request,
    cache_key: str,
    builder: Callable[[web.Request], Awaitable[TService]],
) -> TService:
    service = request.get(cache_key)
    if service is None:
        service = await builder(request)
        request[cache_key] = service
    return service


async def get_webhook_service(request: web.Request) -> WebhookService:
    async def builder(_: web.Request) -> WebhookService:
        pool = await get_pool()
        return WebhookService(WebhookRepository(pool), WebhookEventRepository(pool))

    return await _get_or_create_service(request, _WEBHOOK_SERVICE_KEY, builder)


async def get_webhook_event_service(request: web.Request) -> WebhookEventService:
    async def builder(_: web.Request) -> WebhookEventService:
        pool = await get_pool()
        return WebhookEventService(WebhookRepository(pool), WebhookEventRepository(pool))

    return await _get_or_create_service(request, _EVENT_SERVICE_KEY, builder)


async def get_webhook_delivery_service(request: web.Request) -> WebhookDeliveryService:
    async def builder(_: web.Request) -> WebhookDeliveryService:
        pool = await get_pool()
        return WebhookDeliveryService(WebhookDeliveryRepository(pool))

    return await _get_or_create_service(request, _DELIVERY_SERVICE_KEY, builder)
