"""Webhook subscriptions, event fan-out and delivery with retries."""

__version__ = "0.1.0"
