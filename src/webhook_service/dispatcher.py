"""Background webhook dispatcher (claims due deliveries and POSTs them)."""
from __future__ import annotations

import asyncio
import hmac
import json
from datetime import datetime, timezone
from hashlib import sha256

import structlog
from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout, web

from webhook_service.db.pool import get_pool
from webhook_service.domain.webhooks import DispatchJob, WebhookResponse
from webhook_service.otel import get_tracer
from webhook_service.repositories.webhook_deliveries import WebhookDeliveryRepository
from webhook_service.services.retry_policy import AttemptResult, RetryPolicy, plan_outcome
from webhook_service.services.state_machine import validate_delivery_transition
from webhook_service.settings import settings

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

_WEBHOOK_SESSION_KEY = "webhook_http_session"
_WEBHOOK_TASK_KEY = "webhook_dispatcher_task"


def sign(secret: str, body_bytes: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body_bytes, sha256).hexdigest()
    return f"sha256={digest}"


def encode_body(job: DispatchJob) -> bytes:
    return json.dumps(job.request_body(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def build_headers(job: DispatchJob, body_bytes: bytes) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Event": job.event,
        "X-Webhook-Event-Id": str(job.delivery.event_id),
        "X-Webhook-Delivery-Id": str(job.delivery.id),
    }
    if job.secret:
        headers["X-Webhook-Signature"] = sign(job.secret, body_bytes)
    return headers


async def read_limited(resp: ClientResponse, limit: int) -> str:
    """Read at most *limit* bytes of the response body."""
    buf = bytearray()
    while len(buf) < limit:
        chunk = await resp.content.read(limit - len(buf))
        if not chunk:
            break
        buf.extend(chunk)
    try:
        text = buf.decode(resp.charset or "utf-8", errors="replace")
    except LookupError:
        text = buf.decode("utf-8", errors="replace")
    # jsonb rejects NUL characters.
    return text.replace("\x00", "\ufffd")


async def send(
    session: ClientSession,
    job: DispatchJob,
    *,
    timeout_s: float,
    body_limit: int,
) -> AttemptResult:
    """POST one delivery; transport failures become an ``AttemptResult`` error."""
    body_bytes = encode_body(job)
    try:
        async with session.post(
            job.url,
            data=body_bytes,
            headers=build_headers(job, body_bytes),
            timeout=ClientTimeout(total=timeout_s),
        ) as resp:
            text = await read_limited(resp, body_limit)
            return AttemptResult(
                response=WebhookResponse(
                    status=resp.status,
                    headers={k: v for k, v in resp.headers.items()},
                    body=text,
                )
            )
    except asyncio.TimeoutError:
        return AttemptResult(error=f"Timed out after {timeout_s}s")
    except ClientError as exc:
        return AttemptResult(error=f"{type(exc).__name__}: {exc}")


class WebhookDispatcher:
    """Runs the pending → processing → {completed | pending | failed} cycle."""

    def __init__(
        self,
        repository: WebhookDeliveryRepository,
        session: ClientSession,
        policy: RetryPolicy,
        *,
        batch_size: int = 100,
        max_concurrency: int = 10,
        timeout_s: float = 10.0,
        body_limit: int = 4096,
    ):
        self._repository = repository
        self._session = session
        self._policy = policy
        self._batch_size = batch_size
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._timeout_s = timeout_s
        self._body_limit = body_limit

    async def dispatch_once(self) -> int:
        """Claim one batch of due deliveries and attempt each. Returns batch size."""
        jobs = await self._repository.claim_due(limit=self._batch_size)
        if jobs:
            await asyncio.gather(*(self._guarded(job) for job in jobs))
        return len(jobs)

    async def _guarded(self, job: DispatchJob) -> None:
        async with self._semaphore:
            try:
                await self.process(job)
            except Exception:
                # The delivery stays processing and is reclaimed by the worker.
                logger.exception("webhook delivery processing failed", delivery_id=str(job.delivery.id))

    async def process(self, job: DispatchJob) -> None:
        delivery = job.delivery
        with tracer.start_as_current_span("webhook.deliver") as span:
            span.set_attribute("webhook.delivery_id", str(delivery.id))
            span.set_attribute("webhook.event", job.event)
            result = await send(
                self._session, job, timeout_s=self._timeout_s, body_limit=self._body_limit
            )
            plan = plan_outcome(delivery, result, self._policy, datetime.now(timezone.utc))
            validate_delivery_transition(delivery.status, plan.status)
            span.set_attribute("webhook.outcome", plan.status.value)

        updated = await self._repository.record_attempt(delivery, plan)
        if updated is None:
            logger.warning(
                "webhook delivery changed while in flight, outcome dropped",
                delivery_id=str(delivery.id),
            )
            return
        logger.info(
            "webhook delivery attempted",
            delivery_id=str(delivery.id),
            event_id=str(delivery.event_id),
            webhook_id=str(delivery.webhook_id),
            status=plan.status.value,
            retry_count=plan.retry_count,
            next_retry_at=plan.next_retry_at.isoformat() if plan.next_retry_at else None,
            response_status=result.response.status if result.response else None,
            error=plan.error,
        )

    async def run(self, idle_interval: float) -> None:
        logger.info("webhook dispatcher started", batch_size=self._batch_size)
        while True:
            try:
                claimed = await self.dispatch_once()
            except asyncio.CancelledError:
                logger.info("webhook dispatcher stopped")
                raise
            except Exception:
                logger.exception("webhook dispatcher sweep failed")
                claimed = 0
            if not claimed:
                await asyncio.sleep(idle_interval)


async def start_webhook_dispatcher(app: web.Application) -> None:
    session = ClientSession(timeout=ClientTimeout(total=settings.webhook_request_timeout_seconds))
    app[_WEBHOOK_SESSION_KEY] = session
    dispatcher = WebhookDispatcher(
        WebhookDeliveryRepository(await get_pool()),
        session,
        RetryPolicy.from_settings(settings),
        batch_size=settings.webhook_dispatch_batch_size,
        max_concurrency=settings.webhook_dispatch_max_concurrency,
        timeout_s=settings.webhook_request_timeout_seconds,
        body_limit=settings.webhook_response_body_limit,
    )
    app[_WEBHOOK_TASK_KEY] = asyncio.create_task(
        dispatcher.run(settings.webhook_dispatch_interval_seconds)
    )


async def stop_webhook_dispatcher(app: web.Application) -> None:
    task = app.get(_WEBHOOK_TASK_KEY)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    session = app.get(_WEBHOOK_SESSION_KEY)
    if session is not None:
        await session.close()
