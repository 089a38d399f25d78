"""Dispatcher tests against a local receiver and the PostgreSQL repositories."""
from __future__ import annotations

import hmac
import json
import uuid
from hashlib import sha256

import pytest
from aiohttp import ClientSession, web

from tests.utils import fetch_delivery, fetch_event_status, make_due, make_headers, seed_delivery
from webhook_service.dispatcher import WebhookDispatcher, sign
from webhook_service.domain.enums import BackoffStrategy
from webhook_service.repositories import WebhookDeliveryRepository
from webhook_service.services.retry_policy import RetryPolicy


class Receiver:
    """Replays a scripted list of status codes and records every request."""

    def __init__(self, statuses: list[int], body: str | None = None):
        self.statuses = list(statuses)
        self.body = body
        self.requests: list = []

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.headers.copy(), await request.read()))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        text = self.body if self.body is not None else f"status {status}"
        return web.Response(status=status, text=text, headers={"X-Receiver": "yes"})


@pytest.fixture
def policy():
    return RetryPolicy(
        max_attempts=3,
        strategy=BackoffStrategy.EXPONENTIAL,
        base_delay_seconds=10,
        max_delay_seconds=60,
    )


@pytest.fixture
async def receiver_factory(aiohttp_server):
    async def factory(statuses: list[int], body: str | None = None):
        receiver = Receiver(statuses, body)
        app = web.Application()
        app.router.add_post("/hook", receiver.handle)
        server = await aiohttp_server(app)
        return receiver, str(server.make_url("/hook"))

    return factory


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session


@pytest.fixture
def make_dispatcher(db_pool, http_session, policy):
    def factory(**kwargs):
        return WebhookDispatcher(
            WebhookDeliveryRepository(db_pool), http_session, policy, timeout_s=2.0, **kwargs
        )

    return factory


@pytest.mark.asyncio
async def test_successful_delivery(db_pool, receiver_factory, make_dispatcher):
    receiver, url = await receiver_factory([200])
    webhook_id, event_id, delivery_id = await seed_delivery(db_pool, url=url, secret="topsecret")

    assert await make_dispatcher().dispatch_once() == 1

    headers, body = receiver.requests[0]
    assert headers["Content-Type"] == "application/json"
    assert headers["X-Webhook-Event"] == "invoice.created"
    assert headers["X-Webhook-Event-Id"] == str(event_id)
    assert headers["X-Webhook-Delivery-Id"] == str(delivery_id)
    expected = "sha256=" + hmac.new(b"topsecret", body, sha256).hexdigest()
    assert headers["X-Webhook-Signature"] == expected
    sent = json.loads(body)
    assert sent["id"] == str(event_id)
    assert sent["webhookId"] == str(webhook_id)
    assert sent["event"] == "invoice.created"
    assert sent["payload"] == {"invoice": {"id": 42}}

    stored = await fetch_delivery(db_pool, delivery_id)
    assert stored["status"] == "completed"
    assert stored["retry_count"] == 0
    assert stored["next_retry_at"] is None
    assert stored["locked_at"] is None
    response = json.loads(stored["response"])
    assert response["status"] == 200
    assert response["body"] == "status 200"
    assert response["headers"]["X-Receiver"] == "yes"
    assert await fetch_event_status(db_pool, event_id) == "completed"


@pytest.mark.asyncio
async def test_no_signature_without_secret(db_pool, receiver_factory, make_dispatcher):
    receiver, url = await receiver_factory([204])
    await seed_delivery(db_pool, url=url)

    await make_dispatcher().dispatch_once()
    assert "X-Webhook-Signature" not in receiver.requests[0][0]


@pytest.mark.asyncio
async def test_server_error_schedules_retry(db_pool, receiver_factory, make_dispatcher):
    _, url = await receiver_factory([503])
    _, event_id, delivery_id = await seed_delivery(db_pool, url=url)
    dispatcher = make_dispatcher()

    await dispatcher.dispatch_once()

    stored = await fetch_delivery(db_pool, delivery_id)
    assert stored["status"] == "pending"
    assert stored["retry_count"] == 1
    assert stored["next_retry_at"] is not None
    assert stored["error"] == "HTTP 503"
    assert json.loads(stored["response"])["status"] == 503
    # The event keeps processing while its delivery waits for a retry.
    assert await fetch_event_status(db_pool, event_id) == "processing"

    # Not due yet.
    assert await dispatcher.dispatch_once() == 0


@pytest.mark.asyncio
async def test_client_error_fails_immediately(db_pool, receiver_factory, make_dispatcher):
    _, url = await receiver_factory([400])
    _, event_id, delivery_id = await seed_delivery(db_pool, url=url)

    await make_dispatcher().dispatch_once()

    stored = await fetch_delivery(db_pool, delivery_id)
    assert stored["status"] == "failed"
    assert stored["retry_count"] == 1
    assert stored["next_retry_at"] is None
    assert await fetch_event_status(db_pool, event_id) == "failed"


@pytest.mark.asyncio
async def test_connection_error_is_retryable(db_pool, make_dispatcher, unused_tcp_port):
    _, _, delivery_id = await seed_delivery(db_pool, url=f"http://127.0.0.1:{unused_tcp_port}/hook")

    await make_dispatcher().dispatch_once()

    stored = await fetch_delivery(db_pool, delivery_id)
    assert stored["status"] == "pending"
    assert stored["retry_count"] == 1
    assert stored["response"] is None
    assert stored["error"]


@pytest.mark.asyncio
async def test_retry_count_grows_until_budget_is_exhausted(
    db_pool, receiver_factory, make_dispatcher, policy
):
    receiver, url = await receiver_factory([500])
    _, event_id, delivery_id = await seed_delivery(db_pool, url=url)
    dispatcher = make_dispatcher()

    counts = []
    statuses = []
    for _ in range(policy.max_attempts):
        assert await dispatcher.dispatch_once() == 1
        stored = await fetch_delivery(db_pool, delivery_id)
        counts.append(stored["retry_count"])
        statuses.append(stored["status"])
        await make_due(db_pool, delivery_id)

    assert counts == [1, 2, 3]
    assert statuses == ["pending", "pending", "failed"]
    assert len(receiver.requests) == 3
    stored = await fetch_delivery(db_pool, delivery_id)
    assert stored["next_retry_at"] is None
    assert await fetch_event_status(db_pool, event_id) == "failed"

    # Terminal deliveries are never claimed again.
    assert await dispatcher.dispatch_once() == 0


@pytest.mark.asyncio
async def test_retry_then_success_keeps_retry_count(db_pool, receiver_factory, make_dispatcher):
    _, url = await receiver_factory([502, 200])
    _, event_id, delivery_id = await seed_delivery(db_pool, url=url)
    dispatcher = make_dispatcher()

    await dispatcher.dispatch_once()
    await make_due(db_pool, delivery_id)
    await dispatcher.dispatch_once()

    stored = await fetch_delivery(db_pool, delivery_id)
    assert stored["status"] == "completed"
    assert stored["retry_count"] == 1
    assert stored["next_retry_at"] is None
    assert stored["error"] is None
    assert await fetch_event_status(db_pool, event_id) == "completed"


@pytest.mark.asyncio
async def test_response_body_is_truncated(db_pool, receiver_factory, make_dispatcher):
    _, url = await receiver_factory([200], body="x" * 100_000)
    _, _, delivery_id = await seed_delivery(db_pool, url=url)

    await make_dispatcher(body_limit=10).dispatch_once()

    stored = await fetch_delivery(db_pool, delivery_id)
    assert json.loads(stored["response"])["body"] == "x" * 10


@pytest.mark.asyncio
async def test_batch_size_limits_claims(db_pool, receiver_factory, make_dispatcher):
    receiver, url = await receiver_factory([200])
    for _ in range(3):
        await seed_delivery(db_pool, url=url)
    dispatcher = make_dispatcher(batch_size=2, max_concurrency=1)

    assert await dispatcher.dispatch_once() == 2
    assert await dispatcher.dispatch_once() == 1
    assert await dispatcher.dispatch_once() == 0
    assert len(receiver.requests) == 3


@pytest.mark.asyncio
async def test_inactive_webhook_is_not_delivered(db_pool, receiver_factory, make_dispatcher):
    receiver, url = await receiver_factory([200])
    webhook_id, _, delivery_id = await seed_delivery(db_pool, url=url)
    await db_pool.execute("UPDATE webhooks SET active = false WHERE id = $1", webhook_id)

    assert await make_dispatcher().dispatch_once() == 0
    assert receiver.requests == []
    assert (await fetch_delivery(db_pool, delivery_id))["status"] == "pending"


@pytest.mark.asyncio
async def test_test_event_reaches_inactive_webhook(
    service_client, db_pool, receiver_factory, make_dispatcher
):
    receiver, url = await receiver_factory([200])
    headers = make_headers(uuid.uuid4())
    resp = await service_client.post(
        "/webhooks",
        json={"name": "Off", "url": url, "events": ["invoice.created"], "active": False},
        headers=headers,
    )
    webhook_id = (await resp.json())["id"]
    resp = await service_client.post(
        f"/webhooks/{webhook_id}/test",
        headers=headers,
    )
    assert resp.status == 202

    assert await make_dispatcher().dispatch_once() == 1
    request_headers, body = receiver.requests[0]
    assert request_headers["X-Webhook-Event"] == "webhook.test"
    assert json.loads(body)["payload"]["webhookName"] == "Off"


@pytest.mark.asyncio
async def test_undecodable_response_body_is_replaced(
    db_pool, aiohttp_server, make_dispatcher
):
    async def handle(_: web.Request) -> web.Response:
        return web.Response(body=b"ok\xff\x00", content_type="text/plain", charset="utf-8")

    app = web.Application()
    app.router.add_post("/hook", handle)
    server = await aiohttp_server(app)
    _, _, delivery_id = await seed_delivery(db_pool, url=str(server.make_url("/hook")))

    await make_dispatcher().dispatch_once()

    stored = await fetch_delivery(db_pool, delivery_id)
    assert stored["status"] == "completed"
    assert json.loads(stored["response"])["body"] == "ok\ufffd\ufffd"


def test_sign():
    assert sign("k", b"{}") == "sha256=" + hmac.new(b"k", b"{}", sha256).hexdigest()
