"""Common exceptions for domain and repository layers."""
from __future__ import annotations


class WebhookServiceError(Exception):
    """Base error for service layer."""


class RepositoryError(WebhookServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing."""


class SubscriptionValidationError(WebhookServiceError):
    """Raised when a subscription configuration is malformed."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidStatusTransitionError(WebhookServiceError):
    """Raised when a delivery attempts an unsupported status change."""


class TransientDeliveryError(WebhookServiceError):
    """A single delivery attempt failed (non-2xx, timeout, network error).

    Never escapes the delivery engine; converted into a failed attempt outcome.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response
