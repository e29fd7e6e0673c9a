"""Structured logging configuration for the Metal Device Operator."""

import json
import logging
import os
import sys
from typing import Any

from .utils.context import get_context_dict
from .utils.errors import sanitize_dict, sanitize_error_message

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "kubernetes.client.rest")


class JsonFormatter(logging.Formatter):
    """Render plain log records as one JSON object per line.

    Records that already carry a JSON document (from log_resource_event) pass
    through untouched.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if message.startswith("{"):
            return message
        data = get_context_dict({
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_error_message(message),
        })
        if record.exc_info:
            data["exception"] = sanitize_error_message(self.formatException(record.exc_info))
        return json.dumps(data, default=str)


def setup_structured_logging() -> None:
    """Configure structured JSON logging.

    The operator's level comes from LOG_LEVEL (default INFO); HTTP client
    libraries are held at WARNING.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        handlers=[handler],
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """Log a structured resource event as a single JSON line."""
    log_data = get_context_dict({
        "controller": controller,
        "resource": resource_kind,
        "name": resource_name,
        "namespace": namespace,
        "uid": uid,
        "event": event,
        "reason": reason,
        "message": message,
    })
    log_data.update(sanitize_secrets(kwargs))
    logger.log(level, json.dumps(log_data, default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    """Redact credential and user-data fields from extra log fields."""
    return sanitize_dict(log_data, sensitive_keys={"credentials"})
