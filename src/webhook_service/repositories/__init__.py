"""Repository package exports."""

from webhook_service.repositories.webhook_deliveries import WebhookDeliveryRepository
from webhook_service.repositories.webhook_events import WebhookEventRepository
from webhook_service.repositories.webhooks import WebhookRepository

__all__ = [
    "WebhookRepository",
    "WebhookEventRepository",
    "WebhookDeliveryRepository",
]
