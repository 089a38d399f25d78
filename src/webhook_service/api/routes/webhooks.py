"""Webhook subscription endpoints."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import (
    list_response,
    pagination_params,
    parse_uuid,
    read_json,
    validate_model,
)
from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.dto import WebhookCreateDTO, WebhookUpdateDTO
from webhook_service.services.dependencies import (
    WRITE_ROLES,
    current_tenant,
    get_webhook_service,
)

routes = web.RouteTableDef()


@routes.get("/webhooks")
async def list_webhooks(request: web.Request):
    tenant_id = await current_tenant(request)
    service = await get_webhook_service(request)
    limit, offset = pagination_params(request)
    items, total = await service.list_webhooks(tenant_id, limit=limit, offset=offset)
    return list_response(items, total=total)


@routes.post("/webhooks")
async def create_webhook(request: web.Request):
    tenant_id = await current_tenant(request, require_role=WRITE_ROLES)
    dto = validate_model(WebhookCreateDTO, await read_json(request))
    service = await get_webhook_service(request)
    webhook = await service.create_webhook(tenant_id, dto)
    return web.json_response(webhook.to_wire(), status=201)


@routes.get("/webhooks/{webhook_id}")
async def get_webhook(request: web.Request):
    tenant_id = await current_tenant(request)
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    try:
        webhook = await service.get_webhook(tenant_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(webhook.to_wire())


@routes.patch("/webhooks/{webhook_id}")
async def update_webhook(request: web.Request):
    tenant_id = await current_tenant(request, require_role=WRITE_ROLES)
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    dto = validate_model(WebhookUpdateDTO, await read_json(request))
    service = await get_webhook_service(request)
    try:
        webhook = await service.update_webhook(tenant_id, webhook_id, dto)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(webhook.to_wire())


@routes.delete("/webhooks/{webhook_id}")
async def delete_webhook(request: web.Request):
    tenant_id = await current_tenant(request, require_role=WRITE_ROLES)
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    try:
        await service.delete_webhook(tenant_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.Response(status=204)


@routes.post("/webhooks/{webhook_id}/test")
async def test_webhook(request: web.Request):
    tenant_id = await current_tenant(request, require_role=WRITE_ROLES)
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    try:
        event, delivery = await service.send_test(tenant_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(
        {"event": event.to_wire(), "delivery": delivery.to_wire()}, status=202
    )
