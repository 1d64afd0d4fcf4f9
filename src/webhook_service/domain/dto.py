"""Pydantic DTOs for the admin API and service layer."""
from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from webhook_service.domain.webhooks import CamelModel, EventFilter

MIN_RETRIES, MAX_RETRIES = 1, 10
MIN_RETRY_DELAY_SECONDS, MAX_RETRY_DELAY_SECONDS = 1, 3600


def validate_destination_url(value: str) -> str:
    value = value.strip()
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValueError("url must be an absolute http(s) URL")
    if any(ch.isspace() for ch in value):
        raise ValueError("url must not contain whitespace")
    return value


def normalize_filter(value: EventFilter | None) -> EventFilter:
    """Strip blanks and duplicates from each allow-list, keeping order."""
    if value is None:
        return EventFilter()
    cleaned: dict[str, list[str] | None] = {}
    for name in ("event_types", "event_categories", "owner_ids"):
        items = getattr(value, name)
        if items is not None:
            items = list(dict.fromkeys(i.strip() for i in items if i and i.strip()))
        cleaned[name] = items
    return EventFilter(**cleaned)


class _DTO(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class SubscriptionCreateDTO(_DTO):
    url: str
    event_filter: EventFilter = Field(default_factory=EventFilter)
    max_retries: int = Field(default=5, ge=MIN_RETRIES, le=MAX_RETRIES)
    retry_delay_seconds: int = Field(
        default=60, ge=MIN_RETRY_DELAY_SECONDS, le=MAX_RETRY_DELAY_SECONDS
    )
    is_active: bool = True
    test_payload: bool = False

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return validate_destination_url(value)

    @field_validator("event_filter", mode="before")
    @classmethod
    def _default_filter(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("event_filter")
    @classmethod
    def _clean_filter(cls, value: EventFilter) -> EventFilter:
        return normalize_filter(value)


class SubscriptionUpdateDTO(_DTO):
    url: str | None = None
    event_filter: EventFilter | None = None
    max_retries: int | None = Field(default=None, ge=MIN_RETRIES, le=MAX_RETRIES)
    retry_delay_seconds: int | None = Field(
        default=None, ge=MIN_RETRY_DELAY_SECONDS, le=MAX_RETRY_DELAY_SECONDS
    )
    is_active: bool | None = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str | None) -> str | None:
        return None if value is None else validate_destination_url(value)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller.

        ``eventFilter: null`` resets the filter to match everything; other
        explicit nulls are ignored.
        """
        result: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name == "event_filter":
                result[name] = normalize_filter(value)
            elif value is not None:
                result[name] = value
        return result
