"""Webhook event endpoints."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import (
    list_response,
    pagination_params,
    parse_uuid,
    query_model,
    read_json,
    validate_model,
)
from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.dto import DateWindow, EventEmitDTO, EventFilters
from webhook_service.services.dependencies import (
    WRITE_ROLES,
    current_tenant,
    get_webhook_event_service,
)

routes = web.RouteTableDef()


@routes.get("/webhook-events")
async def list_events(request: web.Request):
    tenant_id = await current_tenant(request)
    filters = query_model(request, EventFilters)
    limit, offset = pagination_params(request)
    service = await get_webhook_event_service(request)
    items, total = await service.list_events(tenant_id, filters, limit=limit, offset=offset)
    return list_response(items, total=total)


@routes.post("/webhook-events")
async def emit_event(request: web.Request):
    tenant_id = await current_tenant(request, require_role=WRITE_ROLES)
    dto = validate_model(EventEmitDTO, await read_json(request))
    service = await get_webhook_event_service(request)
    events = await service.emit(tenant_id, event=dto.event, payload=dto.payload)
    return web.json_response([event.to_wire() for event in events], status=202)


# Registered before the {event_id} route so "stats" is not parsed as an id.
@routes.get("/webhook-events/stats")
async def event_stats(request: web.Request):
    tenant_id = await current_tenant(request)
    window = query_model(request, DateWindow)
    service = await get_webhook_event_service(request)
    stats = await service.get_stats(tenant_id, window)
    return web.json_response(stats.to_wire())


@routes.get("/webhook-events/{event_id}")
async def get_event(request: web.Request):
    tenant_id = await current_tenant(request)
    event_id = parse_uuid(request.match_info["event_id"], "event_id")
    service = await get_webhook_event_service(request)
    try:
        event = await service.get_event(tenant_id, event_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(event.to_wire())
