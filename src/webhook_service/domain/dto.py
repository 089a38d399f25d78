"""Pydantic DTOs for request bodies and list filters."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from webhook_service.domain.enums import WebhookStatus


NON_NULLABLE_UPDATE_FIELDS = frozenset({"name", "url", "events", "active"})


def normalize_event_names(values: list[str]) -> list[str]:
    """Strip, drop empties and dedupe while keeping order."""
    cleaned = [value.strip() for value in values if value and value.strip()]
    return list(dict.fromkeys(cleaned))


class WebhookCreateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    url: str = Field(pattern=r"^https?://")
    events: list[str] = Field(min_length=1)
    secret: str | None = None
    active: bool = True

    @field_validator("events")
    @classmethod
    def _normalize_events(cls, value: list[str]) -> list[str]:
        events = normalize_event_names(value)
        if not events:
            raise ValueError("events must contain at least one non-empty name")
        return events


class WebhookUpdateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    url: str | None = Field(default=None, pattern=r"^https?://")
    events: list[str] | None = None
    secret: str | None = None
    active: bool | None = None

    @model_validator(mode="after")
    def _no_null_required_fields(self) -> "WebhookUpdateDTO":
        # Only the secret can be cleared; the other columns are NOT NULL.
        cleared = sorted(
            name
            for name in self.model_fields_set & NON_NULLABLE_UPDATE_FIELDS
            if getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self

    @field_validator("events")
    @classmethod
    def _normalize_events(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        events = normalize_event_names(value)
        if not events:
            raise ValueError("events must contain at least one non-empty name")
        return events


class EventEmitDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("event")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("event must not be blank")
        return value


class _QueryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class DateWindow(_QueryModel):
    """``from``/``to`` bounds on ``createdAt`` (inclusive)."""

    date_from: datetime | None = Field(default=None, alias="from")
    date_to: datetime | None = Field(default=None, alias="to")

    @field_validator("date_from", "date_to")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _ordered(self) -> "DateWindow":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("'from' must not be later than 'to'")
        return self


class EventFilters(DateWindow):
    webhook_id: UUID | None = None
    event: str | None = None
    status: WebhookStatus | None = None


class DeliveryFilters(DateWindow):
    webhook_id: UUID | None = None
    event_id: UUID | None = None
    status: WebhookStatus | None = None
