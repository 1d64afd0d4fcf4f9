"""Domain enums."""
from __future__ import annotations

from enum import Enum


class DeliveryStatus(str, Enum):
    """Webhook delivery lifecycle states.

    ``FAILED`` is kept for storage compatibility and reporting; the retry
    controller never writes it.
    """

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    DEAD_LETTERED = "DEAD_LETTERED"


class AttemptResult(str, Enum):
    """Classification of a single HTTP delivery attempt."""

    SUCCESS = "success"
    FAILURE = "failure"
