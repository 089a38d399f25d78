"""Domain enums."""
from __future__ import annotations

from enum import Enum


class WebhookStatus(str, Enum):
    """Lifecycle shared by webhook events and deliveries."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WebhookStatus.COMPLETED, WebhookStatus.FAILED)


class BackoffStrategy(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"
