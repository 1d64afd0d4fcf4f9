"""Logging configuration for structured TSKV (Tab-Separated Key-Value) logging."""
from __future__ import annotations

import logging
import sys

import structlog

REDACTED = "***"

# Keys whose values must never reach a log sink (HMAC keys, signatures, auth).
SENSITIVE_KEYS = frozenset(
    {
        "secret",
        "webhook_secret",
        "signature",
        "authorization",
        "password",
        "token",
    }
)


def _sanitize_string(value: str) -> str:
    """Escape control characters so the log entry stays on a single line."""
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def _is_sensitive(key: object) -> bool:
    return isinstance(key, str) and key.lower() in SENSITIVE_KEYS


def redact_sensitive_processor(logger, method_name, event_dict):
    """Mask values of sensitive keys, including one level of nested dicts."""
    for key, value in list(event_dict.items()):
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if _is_sensitive(k) else v for k, v in value.items()
            }
    return event_dict


def replace_newlines_processor(logger, method_name, event_dict):
    """
    Replace newlines in string values with \\n.

    Runs after format_exc_info so formatted tracebacks are flattened too.
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _sanitize_string(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = [
                _sanitize_string(item) if isinstance(item, str) else item
                for item in value
            ]
        elif isinstance(value, dict):
            event_dict[key] = {
                k: _sanitize_string(v) if isinstance(v, str) else v
                for k, v in value.items()
            }
    return event_dict


class SingleLineFormatter(logging.Formatter):
    """Formatter that ensures output is always on a single line."""

    def format(self, record):
        message = super().format(record)
        return message.replace("\n", "\\n").replace("\r", "\\r")


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure structlog for TSKV output suitable for Grafana/Loki/Alloy.

    Output looks like::

        timestamp=2024-01-01T12:00:00Z level=info logger=webhook_service.services.retry
        event='webhook attempt failed' delivery_id=... attempt_number=2
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SingleLineFormatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)
    root_logger.propagate = False

    # aiohttp access/client loggers flow through the root handler
    for name in ("aiohttp.access", "aiohttp.client"):
        aiohttp_logger = logging.getLogger(name)
        aiohttp_logger.setLevel(level)
        aiohttp_logger.propagate = True
        aiohttp_logger.handlers = []

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_sensitive_processor,
            # must run after format_exc_info and before the renderer
            replace_newlines_processor,
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "level", "logger", "event", "message"],
                drop_missing=True,
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
