from __future__ import annotations

import structlog

from service_common.logging_config import (
    REDACTED,
    configure_logging,
    redact_sensitive_processor,
    replace_newlines_processor,
)
from service_common.middleware.trace import get_safe_headers
from webhook_service.services.ingress import EventIngress
from webhook_service.services.retry import RetryController
from webhook_service.services.scheduler import DeliveryScheduler
from webhook_service.services.webhooks import WebhookService

from tests.utils import add_subscription, make_event


def test_redaction_masks_sensitive_keys():
    event_dict = {
        "event": "x",
        "secret": "abc",
        "Signature": "deadbeef",
        "subscription_id": "s-1",
        "headers": {"Authorization": "Bearer t", "Accept": "*/*"},
    }

    result = redact_sensitive_processor(None, "info", event_dict)

    assert result["secret"] == REDACTED
    assert result["Signature"] == REDACTED
    assert result["subscription_id"] == "s-1"
    assert result["headers"] == {"Authorization": REDACTED, "Accept": "*/*"}


def test_newlines_are_flattened():
    result = replace_newlines_processor(None, "info", {"event": "a\nb", "items": ["c\td"]})
    assert result == {"event": "a\\nb", "items": ["c\\td"]}


def test_signature_header_is_not_logged_by_middleware():
    headers = {"X-Webhook-Signature": "abc", "Content-Type": "application/json"}
    assert get_safe_headers(headers) == {"Content-Type": "application/json"}


def test_rendered_output_is_redacted(capsys):
    configure_logging("INFO")
    structlog.get_logger("tests.redaction").info("subscription created", secret="hunter2")

    out = capsys.readouterr().out
    assert "subscription created" in out
    assert "hunter2" not in out
    assert REDACTED in out


async def test_delivery_logs_never_contain_secret(capsys, repositories, executor, receiver, clock):
    configure_logging("DEBUG")
    receiver.statuses = [500]
    subscription = await add_subscription(
        repositories.subscriptions, url=receiver.url, secret="top-secret-value", now=clock()
    )
    delivery = await repositories.deliveries.create(
        subscription=subscription, event=make_event(), now=clock()
    )
    controller = RetryController(
        repositories.deliveries, repositories.subscriptions, executor, clock=clock
    )

    await controller.run_attempt(delivery.id, 0)
    clock.advance(2)
    await controller.run_attempt(delivery.id, 1)

    out = capsys.readouterr().out
    assert "webhook attempt failed, retry scheduled" in out
    assert "webhook delivered" in out
    assert f"delivery_id='{delivery.id}'" in out
    assert "top-secret-value" not in out
    configure_logging("INFO")


async def test_subscription_url_path_is_not_logged(capsys, repositories, clock):
    configure_logging("INFO")
    scheduler = DeliveryScheduler(repositories.deliveries, clock=clock)
    ingress = EventIngress(repositories.subscriptions, scheduler, clock=clock)
    service = WebhookService(
        repositories.subscriptions, repositories.deliveries, ingress, clock=clock
    )

    await service.create_subscription(
        {"url": "https://hooks.example.com/services/T000/B000/XXXXtoken?key=abc"}
    )

    out = capsys.readouterr().out
    assert "webhook subscription created" in out
    assert "url_host='hooks.example.com'" in out
    assert "XXXXtoken" not in out
    assert "key=abc" not in out
