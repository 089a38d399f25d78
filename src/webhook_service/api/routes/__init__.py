"""Route modules."""

from . import webhook_deliveries, webhook_events, webhooks

__all__ = ["webhooks", "webhook_events", "webhook_deliveries"]
