"""Retry budget, backoff and outcome classification for delivery attempts."""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from webhook_service.domain.enums import BackoffStrategy, WebhookStatus
from webhook_service.domain.webhooks import WebhookDelivery, WebhookResponse
from webhook_service.settings import Settings

# Non-2xx statuses that are still worth retrying; any other 4xx is permanent.
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 3600.0
    jitter: float = 0.0
    rand: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must not be negative")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be within [0, 1]")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.webhook_max_attempts,
            strategy=BackoffStrategy(settings.webhook_backoff_strategy),
            base_delay_seconds=settings.webhook_backoff_base_seconds,
            max_delay_seconds=settings.webhook_backoff_max_seconds,
            jitter=settings.webhook_backoff_jitter,
        )

    def backoff_seconds(self, failures: int) -> float:
        """Delay before the next attempt after *failures* failed attempts (1-based)."""
        if self.strategy == BackoffStrategy.FIXED:
            delay = self.base_delay_seconds
        else:
            delay = self.base_delay_seconds * 2 ** max(failures - 1, 0)
        delay = min(delay, self.max_delay_seconds)
        if self.jitter:
            # Spread within [delay * (1 - jitter), delay]
            delay -= delay * self.jitter * self.rand()
        return delay

    def exhausted(self, failures: int) -> bool:
        return failures >= self.max_attempts


@dataclass(frozen=True)
class AttemptResult:
    """What happened when a delivery was sent."""

    response: WebhookResponse | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.response is not None and 200 <= self.response.status < 300

    @property
    def retryable(self) -> bool:
        if self.response is None:
            # transport error or timeout
            return True
        status = self.response.status
        return status >= 500 or status in RETRYABLE_STATUS_CODES


@dataclass(frozen=True)
class DeliveryPlan:
    """State to persist after an attempt."""

    status: WebhookStatus
    retry_count: int
    next_retry_at: datetime | None
    response: WebhookResponse | None
    error: str | None


def plan_outcome(
    delivery: WebhookDelivery,
    result: AttemptResult,
    policy: RetryPolicy,
    now: datetime,
) -> DeliveryPlan:
    """Decide the next state of a delivery from the result of one attempt.

    ``retry_count`` grows by exactly one per failed attempt and
    ``next_retry_at`` is only set when another attempt is scheduled.
    """
    if result.succeeded:
        return DeliveryPlan(
            status=WebhookStatus.COMPLETED,
            retry_count=delivery.retry_count,
            next_retry_at=None,
            response=result.response,
            error=None,
        )

    failures = delivery.retry_count + 1
    error = result.error
    if error is None and result.response is not None:
        error = f"HTTP {result.response.status}"

    if not result.retryable or policy.exhausted(failures):
        return DeliveryPlan(
            status=WebhookStatus.FAILED,
            retry_count=failures,
            next_retry_at=None,
            response=result.response,
            error=error,
        )

    return DeliveryPlan(
        status=WebhookStatus.PENDING,
        retry_count=failures,
        next_retry_at=now + timedelta(seconds=policy.backoff_seconds(failures)),
        response=result.response,
        error=error,
    )
