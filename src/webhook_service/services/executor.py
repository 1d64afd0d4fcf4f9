"""Delivery executor: one signed HTTP POST per call, classified."""
from __future__ import annotations

import asyncio
import json
import time

from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout
from opentelemetry.trace import SpanKind

from webhook_service import signing
from webhook_service.core.exceptions import TransientDeliveryError
from webhook_service.domain.enums import AttemptResult
from webhook_service.domain.webhooks import AttemptOutcome, WebhookDelivery, WebhookSubscription
from webhook_service.otel import (
    DELIVERY_SPAN_NAME,
    delivery_span_attributes,
    get_tracer,
    record_attempt_outcome,
)
from webhook_service.services.state_machine import truncate

tracer = get_tracer()

DELIVERY_ID_HEADER = "X-Webhook-DeliveryId"
EVENT_HEADER = "X-Webhook-Event"
USER_AGENT = "webhook-service/1.0"


def build_request_body(
    event_bytes: bytes, *, delivery_id: str, attempt_number: int, signature: str
) -> bytes:
    """``{event, deliveryId, attemptNumber, signature}`` with *event_bytes* embedded verbatim."""
    tail = json.dumps(
        {"deliveryId": delivery_id, "attemptNumber": attempt_number, "signature": signature},
        separators=(",", ":"),
    )
    return b'{"event":' + event_bytes + b"," + tail[1:].encode("utf-8")


class DeliveryExecutor:
    """Sends exactly one attempt for a delivery.

    Any 2xx is SUCCESS. Every other status, timeouts and connection errors
    are FAILURE; 4xx and 5xx are treated alike.
    """

    def __init__(
        self,
        session: ClientSession,
        *,
        timeout_seconds: float = 30.0,
        error_max_length: int = 500,
        response_excerpt_length: int = 1000,
    ):
        self._session = session
        self._timeout = ClientTimeout(total=timeout_seconds)
        self._error_max_length = error_max_length
        self._excerpt_length = response_excerpt_length

    async def attempt(
        self, delivery: WebhookDelivery, subscription: WebhookSubscription
    ) -> AttemptOutcome:
        attempt_number = delivery.attempt_number + 1
        event_bytes, signature = signing.sign_event(delivery.payload, subscription.secret)
        body = build_request_body(
            event_bytes,
            delivery_id=str(delivery.id),
            attempt_number=attempt_number,
            signature=signature,
        )
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            signing.SIGNATURE_HEADER: signature,
            DELIVERY_ID_HEADER: str(delivery.id),
            EVENT_HEADER: delivery.event_type,
        }

        with tracer.start_as_current_span(
            DELIVERY_SPAN_NAME,
            kind=SpanKind.CLIENT,
            attributes=delivery_span_attributes(delivery, subscription, attempt_number),
        ) as span:
            started = time.monotonic()
            try:
                response = await self._post(subscription.url, body, headers)
            except TransientDeliveryError as exc:
                outcome = AttemptOutcome(
                    result=AttemptResult.FAILURE,
                    status_code=exc.status_code,
                    response=exc.response,
                    error=truncate(str(exc), self._error_max_length),
                    elapsed_ms=self._elapsed_ms(started),
                )
            except asyncio.TimeoutError:
                outcome = AttemptOutcome(
                    result=AttemptResult.FAILURE,
                    error=f"TIMEOUT: no response within {self._timeout.total}s",
                    elapsed_ms=self._elapsed_ms(started),
                )
            except (ClientError, OSError, ValueError) as exc:
                outcome = AttemptOutcome(
                    result=AttemptResult.FAILURE,
                    error=truncate(f"{type(exc).__name__}: {exc}", self._error_max_length),
                    elapsed_ms=self._elapsed_ms(started),
                )
            else:
                outcome = AttemptOutcome(
                    result=AttemptResult.SUCCESS,
                    status_code=response["status"],
                    response=response,
                    elapsed_ms=response["elapsedMs"],
                )
            record_attempt_outcome(span, outcome)

        return outcome

    async def _post(self, url: str, body: bytes, headers: dict[str, str]) -> dict:
        started = time.monotonic()
        async with self._session.post(
            url, data=body, headers=headers, timeout=self._timeout, allow_redirects=False
        ) as resp:
            text = await self._read_excerpt(resp)
            snapshot = {
                "status": resp.status,
                "statusText": resp.reason,
                "body": text[: self._excerpt_length],
                "elapsedMs": self._elapsed_ms(started),
            }
            if 200 <= resp.status < 300:
                return snapshot
            message = f"HTTP {resp.status}"
            if text:
                message = f"{message}: {text[:200]}"
            raise TransientDeliveryError(message, status_code=resp.status, response=snapshot)

    async def _read_excerpt(self, resp: ClientResponse) -> str:
        """Decode at most a bounded prefix of the body; the rest is never read."""
        limit = self._excerpt_length * 4
        chunks: list[bytes] = []
        size = 0
        while size < limit:
            chunk = await resp.content.read(limit - size)
            if not chunk:
                break
            chunks.append(chunk)
            size += len(chunk)
        return b"".join(chunks).decode("utf-8", errors="replace")

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
