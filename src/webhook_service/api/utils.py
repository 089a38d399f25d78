"""Helper utilities for API handlers."""
from __future__ import annotations

from typing import Any, Iterable, TypeVar
from uuid import UUID

from aiohttp import web
from pydantic import BaseModel, ValidationError

from webhook_service.domain.webhooks import WireModel

TModel = TypeVar("TModel", bound=BaseModel)

TOTAL_COUNT_HEADER = "X-Total-Count"


def parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except (ValueError, TypeError) as exc:
        raise web.HTTPBadRequest(text=f"Invalid {label}") from exc


def pagination_params(
    request: web.Request,
    *,
    default_limit: int = 50,
    max_limit: int = 100,
) -> tuple[int, int]:
    query = request.rel_url.query
    try:
        limit = int(query.get("limit", str(default_limit)))
        offset = int(query.get("offset", "0"))
    except ValueError as exc:
        raise web.HTTPBadRequest(text="limit and offset must be integers") from exc
    if limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)
    if offset < 0:
        offset = 0
    return limit, offset


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body or fail with 400."""
    try:
        data = await request.json()
    except Exception as exc:
        raise web.HTTPBadRequest(text="Invalid JSON payload") from exc
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="JSON body must be an object")
    return data


def validate_model(model: type[TModel], data: Any) -> TModel:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise web.HTTPBadRequest(
            text=exc.json(include_url=False), content_type="application/json"
        ) from exc


def query_model(request: web.Request, model: type[TModel]) -> TModel:
    return validate_model(model, dict(request.rel_url.query))


def list_response(items: Iterable[WireModel], *, total: int) -> web.Response:
    """JSON array body with the unpaginated total in ``X-Total-Count``."""
    return web.json_response(
        [item.to_wire() for item in items],
        headers={TOTAL_COUNT_HEADER: str(total)},
    )
