"""Assemble stats payloads from grouped repository rows."""
from __future__ import annotations

from typing import Any, Iterable

from webhook_service.domain.enums import WebhookStatus
from webhook_service.domain.stats import (
    DayCount,
    EventIdCount,
    EventNameCount,
    StatusCount,
    WebhookCount,
    WebhookDeliveryStats,
    WebhookEventStats,
)

Rows = dict[str, list[dict[str, Any]]]


def _status_totals(rows: Iterable[dict[str, Any]]) -> dict[WebhookStatus, int]:
    totals = {status: 0 for status in WebhookStatus}
    for row in rows:
        totals[WebhookStatus(row["status"])] += int(row["count"])
    return totals


def _status_buckets(totals: dict[WebhookStatus, int]) -> list[StatusCount]:
    return [StatusCount(status=status.value, count=count) for status, count in totals.items()]


def build_event_stats(rows: Rows) -> WebhookEventStats:
    totals = _status_totals(rows.get("by_status", []))
    return WebhookEventStats(
        total_events=sum(totals.values()),
        total_pending=totals[WebhookStatus.PENDING],
        total_processing=totals[WebhookStatus.PROCESSING],
        total_completed=totals[WebhookStatus.COMPLETED],
        total_failed=totals[WebhookStatus.FAILED],
        total_events_by_webhook=[WebhookCount.model_validate(r) for r in rows.get("by_webhook", [])],
        total_events_by_event=[EventNameCount.model_validate(r) for r in rows.get("by_event", [])],
        total_events_by_status=_status_buckets(totals),
        total_events_by_day=[DayCount.model_validate(r) for r in rows.get("by_day", [])],
    )


def build_delivery_stats(rows: Rows) -> WebhookDeliveryStats:
    totals = _status_totals(rows.get("by_status", []))
    return WebhookDeliveryStats(
        total_deliveries=sum(totals.values()),
        total_pending=totals[WebhookStatus.PENDING],
        total_processing=totals[WebhookStatus.PROCESSING],
        total_completed=totals[WebhookStatus.COMPLETED],
        total_failed=totals[WebhookStatus.FAILED],
        total_deliveries_by_webhook=[
            WebhookCount.model_validate(r) for r in rows.get("by_webhook", [])
        ],
        total_deliveries_by_event=[EventIdCount.model_validate(r) for r in rows.get("by_event", [])],
        total_deliveries_by_status=_status_buckets(totals),
        total_deliveries_by_day=[DayCount.model_validate(r) for r in rows.get("by_day", [])],
    )
