"""Service layer exports."""
from webhook_service.services.dead_letters import DeadLetterService
from webhook_service.services.executor import DeliveryExecutor
from webhook_service.services.ingress import EventIngress
from webhook_service.services.retry import RetryController
from webhook_service.services.scheduler import DeliveryScheduler
from webhook_service.services.webhooks import WebhookService

__all__ = [
    "DeadLetterService",
    "DeliveryExecutor",
    "DeliveryScheduler",
    "EventIngress",
    "RetryController",
    "WebhookService",
]
