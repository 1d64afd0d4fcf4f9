"""Webhook repositories (subscriptions + deliveries outbox)."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID, uuid4

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import InvalidStatusTransitionError, NotFoundError
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.webhooks import (
    DeliveryTransition,
    EventFilter,
    PlatformEvent,
    WebhookDelivery,
    WebhookSubscription,
)
from webhook_service.repositories.base import BaseRepository

_SUBSCRIPTION_UPDATABLE = ("url", "event_filter", "max_retries", "retry_delay_seconds", "is_active")


class WebhookSubscriptionRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record) -> WebhookSubscription:
        payload = cls._decode_json(dict(record), "event_filter")
        return WebhookSubscription.model_validate(payload)

    async def create(
        self,
        *,
        url: str,
        event_filter: EventFilter,
        secret: str,
        max_retries: int,
        retry_delay_seconds: int,
        is_active: bool,
        now: datetime,
    ) -> WebhookSubscription:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_subscriptions (
                id, url, event_filter, secret, max_retries, retry_delay_seconds,
                is_active, created_at, deactivated_at
            )
            VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7, $8, CASE WHEN $7 THEN NULL ELSE $8 END)
            RETURNING *
            """,
            uuid4(),
            url,
            json.dumps(event_filter.model_dump(exclude_none=True)),
            secret,
            max_retries,
            retry_delay_seconds,
            is_active,
            now,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, subscription_id: UUID) -> WebhookSubscription:
        record = await self._fetchrow(
            "SELECT * FROM webhook_subscriptions WHERE id = $1", subscription_id
        )
        if record is None:
            raise NotFoundError(f"Webhook subscription {subscription_id} not found")
        return self._to_model(record)

    async def list_paginated(
        self, *, limit: int = 20, offset: int = 0, is_active: bool | None = None
    ) -> Tuple[List[WebhookSubscription], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_subscriptions
            WHERE ($1::boolean IS NULL OR is_active = $1)
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            is_active,
            limit,
            offset,
        )
        items: List[WebhookSubscription] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.pop("total_count", None)
            if total_value is not None:
                total = int(total_value)
            items.append(self._to_model(rec_dict))
        if total is None:
            total = int(
                await self._fetchval(
                    "SELECT COUNT(*) FROM webhook_subscriptions WHERE ($1::boolean IS NULL OR is_active = $1)",
                    is_active,
                )
                or 0
            )
        return items, total

    async def list_active(self) -> List[WebhookSubscription]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_subscriptions
            WHERE is_active = true
            ORDER BY created_at ASC
            """
        )
        return [self._to_model(r) for r in records]

    async def update(
        self, subscription_id: UUID, changes: dict[str, Any], *, now: datetime
    ) -> WebhookSubscription:
        assignments: list[str] = []
        values: list[Any] = [subscription_id, now]
        for name in _SUBSCRIPTION_UPDATABLE:
            if name not in changes:
                continue
            value = changes[name]
            values.append(value)
            idx = len(values)
            if name == "event_filter":
                values[-1] = json.dumps(value.model_dump(exclude_none=True))
                assignments.append(f"event_filter = ${idx}::jsonb")
            elif name == "is_active":
                assignments.append(f"is_active = ${idx}")
                assignments.append(
                    f"deactivated_at = CASE WHEN ${idx} THEN NULL "
                    f"ELSE COALESCE(deactivated_at, $2) END"
                )
            else:
                assignments.append(f"{name} = ${idx}")
        assignments.append("updated_at = $2")
        record = await self._fetchrow(
            f"""
            UPDATE webhook_subscriptions
            SET {", ".join(assignments)}
            WHERE id = $1
            RETURNING *
            """,
            *values,
        )
        if record is None:
            raise NotFoundError(f"Webhook subscription {subscription_id} not found")
        return self._to_model(record)

    async def deactivate(self, subscription_id: UUID, *, now: datetime) -> WebhookSubscription:
        record = await self._fetchrow(
            """
            UPDATE webhook_subscriptions
            SET is_active = false,
                deactivated_at = COALESCE(deactivated_at, $2),
                updated_at = $2
            WHERE id = $1
            RETURNING *
            """,
            subscription_id,
            now,
        )
        if record is None:
            raise NotFoundError(f"Webhook subscription {subscription_id} not found")
        return self._to_model(record)


class WebhookDeliveryRepository(BaseRepository):
    """Delivery rows double as the durable retry schedule.

    Every write bumps ``version``; transitions are compare-and-swap on it.
    ``claimed_until`` is a lease held while an attempt is in flight.
    """

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record | dict[str, Any]) -> WebhookDelivery:
        payload = cls._decode_json(dict(record), "payload", "response")
        return WebhookDelivery.model_validate(payload)

    async def create(
        self,
        *,
        subscription: WebhookSubscription,
        event: PlatformEvent,
        now: datetime,
    ) -> WebhookDelivery | None:
        """Insert the PENDING row for (subscription, event).

        Returns ``None`` when the row already exists (duplicate emission).
        """
        record = await self._fetchrow(
            """
            INSERT INTO webhook_deliveries (
                id, subscription_id, event_id, event_type, event_category,
                status, payload, attempt_number, next_retry_at,
                max_retries, retry_delay_seconds, created_at
            )
            VALUES ($1, $2, $3, $4, $5, 'PENDING', $6::jsonb, 0, $7, $8, $9, $7)
            ON CONFLICT (subscription_id, event_id) DO NOTHING
            RETURNING *
            """,
            uuid4(),
            subscription.id,
            event.event_id,
            event.event_type,
            event.event_category,
            json.dumps(event.to_json()),
            now,
            subscription.max_retries,
            subscription.retry_delay_seconds,
        )
        return self._to_model(record) if record is not None else None

    async def get(self, delivery_id: UUID) -> WebhookDelivery:
        record = await self._fetchrow("SELECT * FROM webhook_deliveries WHERE id = $1", delivery_id)
        if record is None:
            raise NotFoundError(f"Webhook delivery {delivery_id} not found")
        return self._to_model(record)

    async def claim(
        self,
        delivery_id: UUID,
        *,
        attempt_number: int,
        now: datetime,
        lease_until: datetime,
    ) -> WebhookDelivery | None:
        """Take the lease for one specific attempt; ``None`` if not claimable."""
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET claimed_until = $4,
                version = version + 1
            WHERE id = $1
              AND status = 'PENDING'
              AND attempt_number = $2
              AND next_retry_at <= $3
              AND (claimed_until IS NULL OR claimed_until < $3)
            RETURNING *
            """,
            delivery_id,
            attempt_number,
            now,
            lease_until,
        )
        return self._to_model(record) if record is not None else None

    async def claim_due(
        self, *, limit: int, now: datetime, lease_until: datetime
    ) -> List[WebhookDelivery]:
        """Atomically lease due deliveries for processing.

        ``FOR UPDATE SKIP LOCKED`` keeps concurrent sweepers from picking the
        same rows; an expired lease makes a row claimable again.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                records = await conn.fetch(
                    """
                    WITH cte AS (
                        SELECT id
                        FROM webhook_deliveries
                        WHERE status = 'PENDING'
                          AND next_retry_at <= $2
                          AND (claimed_until IS NULL OR claimed_until < $2)
                        ORDER BY next_retry_at ASC, created_at ASC
                        FOR UPDATE SKIP LOCKED
                        LIMIT $1
                    )
                    UPDATE webhook_deliveries d
                    SET claimed_until = $3,
                        version = d.version + 1
                    FROM cte
                    WHERE d.id = cte.id
                    RETURNING d.*
                    """,
                    limit,
                    now,
                    lease_until,
                )
        return [self._to_model(r) for r in records]

    async def apply_transition(
        self,
        delivery_id: UUID,
        *,
        expected_version: int,
        transition: DeliveryTransition,
        now: datetime,
    ) -> WebhookDelivery | None:
        """Write *transition* if the row is still at *expected_version*.

        ``None`` means another worker already moved the delivery on.
        """
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = $3,
                attempt_number = $4,
                next_retry_at = $5,
                last_error = $6,
                response = COALESCE($7::jsonb, response),
                delivered_at = COALESCE(delivered_at, $8),
                dead_lettered_at = COALESCE($9, dead_lettered_at),
                claimed_until = NULL,
                updated_at = $10,
                version = version + 1
            WHERE id = $1
              AND version = $2
              AND status = 'PENDING'
            RETURNING *
            """,
            delivery_id,
            expected_version,
            transition.status.value,
            transition.attempt_number,
            transition.next_retry_at,
            transition.last_error,
            json.dumps(transition.response) if transition.response is not None else None,
            transition.delivered_at,
            transition.dead_lettered_at,
            now,
        )
        return self._to_model(record) if record is not None else None

    async def reset_dead_lettered(self, delivery_id: UUID, *, now: datetime) -> WebhookDelivery:
        """Move a DEAD_LETTERED delivery back to PENDING with a fresh budget."""
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = 'PENDING',
                attempt_number = 0,
                next_retry_at = $2,
                last_error = NULL,
                claimed_until = NULL,
                is_archived = false,
                updated_at = $2,
                version = version + 1
            WHERE id = $1
              AND status = 'DEAD_LETTERED'
            RETURNING *
            """,
            delivery_id,
            now,
        )
        if record is not None:
            return self._to_model(record)
        current = await self.get(delivery_id)
        raise InvalidStatusTransitionError(
            f"Delivery {delivery_id} is not in DEAD_LETTERED state (status={current.status.value})"
        )

    async def list_dead_lettered(
        self, *, limit: int = 20, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE status = $1 AND is_archived = false
            ORDER BY created_at DESC, id DESC
            LIMIT $2 OFFSET $3
            """,
            DeliveryStatus.DEAD_LETTERED.value,
            limit,
            offset,
        )
        items: List[WebhookDelivery] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.pop("total_count", None)
            if total_value is not None:
                total = int(total_value)
            items.append(self._to_model(rec_dict))
        if total is None:
            total = int(
                await self._fetchval(
                    "SELECT COUNT(*) FROM webhook_deliveries WHERE status = $1 AND is_archived = false",
                    DeliveryStatus.DEAD_LETTERED.value,
                )
                or 0
            )
        return items, total

    async def list_recent_for_subscription(
        self, subscription_id: UUID, *, limit: int = 10
    ) -> List[WebhookDelivery]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_deliveries
            WHERE subscription_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2
            """,
            subscription_id,
            limit,
        )
        return [self._to_model(r) for r in records]

    async def count_by_status(self, subscription_id: UUID) -> dict[DeliveryStatus, int]:
        records = await self._fetch(
            """
            SELECT status, COUNT(*) AS total
            FROM webhook_deliveries
            WHERE subscription_id = $1
            GROUP BY status
            """,
            subscription_id,
        )
        counts = {status: 0 for status in DeliveryStatus}
        for rec in records:
            counts[DeliveryStatus(rec["status"])] = int(rec["total"])
        return counts

    async def archive_older_than(self, created_before: datetime) -> int:
        """Flag deliveries created before *created_before* as archived. Returns count."""
        result = await self._execute(
            """
            UPDATE webhook_deliveries
            SET is_archived = true,
                version = version + 1
            WHERE is_archived = false
              AND created_at < $1
              AND status <> 'PENDING'
            """,
            created_before,
        )
        return self._affected(result)
