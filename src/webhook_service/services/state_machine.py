"""Status transition validators for webhook events and deliveries."""
from __future__ import annotations

from webhook_service.core.exceptions import InvalidStatusTransitionError
from webhook_service.domain.enums import WebhookStatus

# pending -> processing -> {completed | pending (retry) | failed}
WEBHOOK_TRANSITIONS: dict[WebhookStatus, set[WebhookStatus]] = {
    WebhookStatus.PENDING: {WebhookStatus.PROCESSING},
    WebhookStatus.PROCESSING: {
        WebhookStatus.COMPLETED,
        WebhookStatus.PENDING,
        WebhookStatus.FAILED,
    },
    WebhookStatus.COMPLETED: set(),
    WebhookStatus.FAILED: set(),
}


def _validate_transition(entity: str, current: WebhookStatus, new: WebhookStatus) -> None:
    if new not in WEBHOOK_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransitionError(
            f"Invalid {entity} status transition: {current.value} → {new.value}"
        )


def validate_delivery_transition(current: WebhookStatus, new: WebhookStatus) -> None:
    _validate_transition("delivery", current, new)


def validate_event_transition(current: WebhookStatus, new: WebhookStatus) -> None:
    # An event waiting for a retry of its delivery stays in processing.
    if current == new == WebhookStatus.PROCESSING:
        return
    _validate_transition("event", current, new)


def event_status_for(delivery_status: WebhookStatus) -> WebhookStatus:
    """Event status mirroring the outcome of its delivery."""
    if delivery_status == WebhookStatus.PENDING:
        return WebhookStatus.PROCESSING
    return delivery_status
