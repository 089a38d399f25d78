from __future__ import annotations

import uuid

from webhook_service.services.stats import build_delivery_stats, build_event_stats


def test_event_stats_fill_missing_status_buckets():
    webhook_id = uuid.uuid4()
    stats = build_event_stats(
        {
            "by_status": [{"status": "completed", "count": 4}, {"status": "failed", "count": 1}],
            "by_webhook": [{"webhook_id": webhook_id, "webhook_name": "Billing", "count": 5}],
            "by_event": [{"event": "invoice.created", "count": 5}],
            "by_day": [{"day": "2026-01-02", "count": 5}],
        }
    )
    wire = stats.to_wire()

    assert wire["totalEvents"] == 5
    assert wire["totalPending"] == 0
    assert wire["totalProcessing"] == 0
    assert wire["totalCompleted"] == 4
    assert wire["totalFailed"] == 1
    assert wire["totalEventsByStatus"] == [
        {"status": "pending", "count": 0},
        {"status": "processing", "count": 0},
        {"status": "completed", "count": 4},
        {"status": "failed", "count": 1},
    ]
    assert wire["totalEventsByWebhook"] == [
        {"webhookId": str(webhook_id), "webhookName": "Billing", "count": 5}
    ]
    assert wire["totalEventsByEvent"] == [{"event": "invoice.created", "count": 5}]
    assert wire["totalEventsByDay"] == [{"day": "2026-01-02", "count": 5}]


def test_empty_delivery_stats():
    wire = build_delivery_stats({}).to_wire()
    assert wire["totalDeliveries"] == 0
    assert wire["totalDeliveriesByWebhook"] == []
    assert [b["count"] for b in wire["totalDeliveriesByStatus"]] == [0, 0, 0, 0]


def test_delivery_stats_group_by_event():
    event_id = uuid.uuid4()
    wire = build_delivery_stats(
        {
            "by_status": [{"status": "pending", "count": 2}],
            "by_event": [{"event_id": event_id, "event_name": "client.updated", "count": 2}],
        }
    ).to_wire()
    assert wire["totalDeliveries"] == 2
    assert wire["totalPending"] == 2
    assert wire["totalDeliveriesByEvent"] == [
        {"eventId": str(event_id), "eventName": "client.updated", "count": 2}
    ]
