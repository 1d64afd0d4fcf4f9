"""Webhook domain primitives."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from webhook_service.domain.enums import AttemptResult, DeliveryStatus


class CamelModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class EventFilter(CamelModel):
    """Allow-lists narrowing which events a subscription receives.

    ``None`` means "match all" for that attribute. An empty list is a set
    allow-list and therefore matches nothing.
    """

    event_types: list[str] | None = None
    event_categories: list[str] | None = None
    owner_ids: list[str] | None = Field(default=None, alias="userIds")


class PlatformEvent(CamelModel):
    event_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    event_category: str = Field(min_length=1)
    owner_id: str | None = Field(default=None, alias="userId")
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None


class WebhookSubscription(CamelModel):
    id: UUID
    url: str
    # never serialized; read only when signing
    secret: str = Field(exclude=True, repr=False)
    event_filter: EventFilter = Field(default_factory=EventFilter)
    max_retries: int
    retry_delay_seconds: int
    is_active: bool = True
    created_at: datetime
    updated_at: datetime | None = None
    deactivated_at: datetime | None = None


class WebhookDelivery(CamelModel):
    id: UUID
    subscription_id: UUID
    event_id: str
    event_type: str
    event_category: str | None = None
    status: DeliveryStatus
    payload: dict[str, Any]
    response: dict[str, Any] | None = None
    attempt_number: int = 0
    next_retry_at: datetime | None = None
    last_error: str | None = None
    max_retries: int
    retry_delay_seconds: int
    created_at: datetime
    updated_at: datetime | None = None
    delivered_at: datetime | None = None
    dead_lettered_at: datetime | None = None
    is_archived: bool = False
    version: int = 0
    claimed_until: datetime | None = None


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one HTTP delivery attempt."""

    result: AttemptResult
    status_code: int | None = None
    response: dict[str, Any] | None = None
    error: str | None = None
    elapsed_ms: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.result is AttemptResult.SUCCESS


@dataclass(frozen=True)
class DeliveryTransition:
    """Column values written by one state-machine step."""

    status: DeliveryStatus
    attempt_number: int
    next_retry_at: datetime | None = None
    last_error: str | None = None
    response: dict[str, Any] | None = None
    delivered_at: datetime | None = None
    dead_lettered_at: datetime | None = None
