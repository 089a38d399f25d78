"""Webhook delivery endpoints (read only)."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import list_response, pagination_params, parse_uuid, query_model
from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.dto import DateWindow, DeliveryFilters
from webhook_service.services.dependencies import current_tenant, get_webhook_delivery_service

routes = web.RouteTableDef()


@routes.get("/webhook-deliveries")
async def list_deliveries(request: web.Request):
    tenant_id = await current_tenant(request)
    filters = query_model(request, DeliveryFilters)
    limit, offset = pagination_params(request)
    service = await get_webhook_delivery_service(request)
    items, total = await service.list_deliveries(tenant_id, filters, limit=limit, offset=offset)
    return list_response(items, total=total)


@routes.get("/webhook-deliveries/stats")
async def delivery_stats(request: web.Request):
    tenant_id = await current_tenant(request)
    window = query_model(request, DateWindow)
    service = await get_webhook_delivery_service(request)
    stats = await service.get_stats(tenant_id, window)
    return web.json_response(stats.to_wire())


@routes.get("/webhook-deliveries/{delivery_id}")
async def get_delivery(request: web.Request):
    tenant_id = await current_tenant(request)
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    service = await get_webhook_delivery_service(request)
    try:
        delivery = await service.get_delivery(tenant_id, delivery_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(delivery.to_wire())
