"""JSON log records for resource lifecycle events."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

from .utils.context import get_context_dict

# Dropped from records regardless of which handler attached them
SECRET_FIELDS = frozenset({"value", "secret_string", "secretString", "secret_key", "session_token", "password"})
REDACTED = "***REDACTED***"


def setup_structured_logging() -> None:
    """Send one JSON document per line to stdout at LOG_LEVEL (default INFO)."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


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
    """Emit a record describing what happened to one custom resource.

    Extra keyword fields and the current correlation id are merged in; any
    field named in SECRET_FIELDS is replaced by a marker.
    """
    record = get_context_dict(kwargs)
    record.update(
        controller=controller,
        resource=resource_kind,
        name=resource_name,
        namespace=namespace,
        uid=uid,
        event=event,
        reason=reason,
        message=message,
    )
    logger.log(level, json.dumps(sanitize_secrets(record), default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    return {key: REDACTED if key in SECRET_FIELDS else value for key, value in log_data.items()}
