"""OpenTelemetry tracing for webhook deliveries.

Export is enabled only when ``otel_exporter_endpoint`` is set; without it the
API falls back to no-op tracers and the delivery spans cost nothing.

Every delivery attempt is a CLIENT span named ``webhook.deliver``. Span
attributes identify the delivery, the subscription and the destination host.
The destination path and query are left out since hook URLs often embed
tokens; the signing secret and signature never reach a span.
"""
from __future__ import annotations

from typing import Any, Dict
from urllib.parse import urlsplit

import structlog
from aiohttp import web

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, Sampler, TraceIdRatioBased
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aiohttp_server import AioHttpServerInstrumentor

from webhook_service import __version__
from webhook_service.domain.webhooks import AttemptOutcome, WebhookDelivery, WebhookSubscription
from webhook_service.settings import Settings, settings

logger = structlog.get_logger(__name__)

DELIVERY_TRACER_NAME = "webhook_service.delivery"
DELIVERY_SPAN_NAME = "webhook.deliver"
SERVICE_NAMESPACE = "webhooks"

_provider: TracerProvider | None = None


def build_resource(config: Settings = settings) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: config.app_name,
            SERVICE_VERSION: __version__,
            "service.namespace": SERVICE_NAMESPACE,
            "deployment.environment": config.env,
        }
    )


def build_sampler(config: Settings = settings) -> Sampler:
    """Ratio sampling for root spans; child spans follow their parent."""
    return ParentBased(root=TraceIdRatioBased(config.otel_sample_ratio))


def setup_otel(app: web.Application) -> None:
    """Initialise OpenTelemetry tracing if ``otel_exporter_endpoint`` is configured."""
    global _provider

    endpoint = settings.otel_exporter_endpoint
    if not endpoint:
        logger.info("otel_exporter_endpoint not set, delivery tracing disabled")
        return

    _provider = TracerProvider(resource=build_resource(), sampler=build_sampler())
    exporter = OTLPSpanExporter(endpoint=f"{str(endpoint).rstrip('/')}/v1/traces")
    _provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(_provider)

    AioHttpServerInstrumentor().instrument(server=app)

    logger.info(
        "delivery tracing enabled",
        endpoint=str(endpoint),
        service=settings.app_name,
        environment=settings.env,
        sample_ratio=settings.otel_sample_ratio,
    )


async def shutdown_otel(_app: web.Application) -> None:
    """Flush pending delivery spans on application shutdown."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        logger.info("OpenTelemetry tracer provider shut down")
        _provider = None


def get_tracer(name: str = DELIVERY_TRACER_NAME) -> trace.Tracer:
    """Return a tracer; a no-op one while tracing is disabled."""
    return trace.get_tracer(name, __version__)


def delivery_span_attributes(
    delivery: WebhookDelivery, subscription: WebhookSubscription, attempt_number: int
) -> Dict[str, Any]:
    destination = urlsplit(subscription.url)
    attributes: Dict[str, Any] = {
        "webhook.delivery_id": str(delivery.id),
        "webhook.subscription_id": str(subscription.id),
        "webhook.event_id": delivery.event_id,
        "webhook.event_type": delivery.event_type,
        "webhook.attempt_number": attempt_number,
        "webhook.max_retries": subscription.max_retries,
        "http.request.method": "POST",
        "url.scheme": destination.scheme,
    }
    if destination.hostname:
        attributes["server.address"] = destination.hostname
    if destination.port:
        attributes["server.port"] = destination.port
    return attributes


def record_attempt_outcome(span: trace.Span, outcome: AttemptOutcome) -> None:
    span.set_attribute("webhook.result", outcome.result.value)
    if outcome.status_code is not None:
        span.set_attribute("http.response.status_code", outcome.status_code)
    if outcome.elapsed_ms is not None:
        span.set_attribute("webhook.elapsed_ms", outcome.elapsed_ms)
    if not outcome.succeeded:
        span.set_status(trace.Status(trace.StatusCode.ERROR, outcome.error or "delivery failed"))
