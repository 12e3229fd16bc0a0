"""Error taxonomy and sanitization utilities."""

from __future__ import annotations

import re
from typing import Any

from ..constants import REASON_CONTROLLER_ERROR, REASON_PROVIDER_ERROR


class OperatorError(Exception):
    """Base class for all errors raised by the operator."""

    permanent = False


class ProviderError(OperatorError):
    """A backend rejected or failed an operation."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class NotFoundError(ProviderError):
    """The backend object is already absent."""


class ControllerError(OperatorError):
    """A local logic or precondition failure."""


class SpecError(ControllerError):
    """The declared resource cannot be acted upon until it is changed."""

    permanent = True


class PatternError(ControllerError):
    """A random value pattern is invalid."""

    permanent = True


class RotationExpressionError(ControllerError):
    """A rotation time expression cannot be parsed."""

    permanent = True


class ConfigError(ControllerError):
    """A provider configuration is malformed."""


class TargetNotReadyError(ControllerError):
    """The secret an access grant points at is not created yet."""


class DeadlineExceededError(ControllerError):
    """The reconciliation ran out of time before finishing."""


class ProviderNotRegisteredError(ControllerError):
    """No provider is registered under the requested name."""


def classify_error(error: Exception) -> str:
    """Map an exception to the condition reason surfaced to declarers."""
    if isinstance(error, ProviderError):
        return REASON_PROVIDER_ERROR
    return REASON_CONTROLLER_ERROR


def is_permanent(error: Exception) -> bool:
    """Whether retrying without a spec change cannot succeed."""
    return bool(getattr(error, "permanent", False))


REDACTED = "[REDACTED]"

# Keys whose values never reach logs, events or status messages
SENSITIVE_FIELDS = frozenset({
    "access_key_id",
    "secret_access_key",
    "session_token",
    "password",
    "secretstring",
    "credentials",
    "token",
})

_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"access[_\s]?key[_\s]?id[:\s]+[A-Z0-9]{16,20}", re.IGNORECASE), REDACTED),
    (re.compile(r"secret[_\s]?access[_\s]?key[:\s]+[A-Za-z0-9/+=]{40}", re.IGNORECASE), REDACTED),
    (re.compile(r"session[_\s]?token[:\s]+[A-Za-z0-9/+=]+", re.IGNORECASE), REDACTED),
    (re.compile(r"secret[_\s]?string[:\s]+\S+", re.IGNORECASE), REDACTED),
] + [
    (re.compile(rf"({field})[=:\s]+[^\s,;)]+", re.IGNORECASE), rf"\1: {REDACTED}")
    for field in sorted(SENSITIVE_FIELDS)
]


def sanitize_error_message(message: str) -> str:
    """Redact credentials and secret values embedded in a message."""
    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


def sanitize_exception(error: Exception) -> str:
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Copy ``data`` with sensitive values redacted, recursing into nested dicts.

    A key is sensitive when its lowercased form contains any entry of
    SENSITIVE_FIELDS or ``sensitive_keys``. Other string values are passed
    through sanitize_error_message.
    """
    markers = SENSITIVE_FIELDS | set(sensitive_keys or ())

    def clean(key: str, value: Any) -> Any:
        if any(marker in key.lower() for marker in markers):
            return REDACTED
        if isinstance(value, dict):
            return sanitize_dict(value, sensitive_keys)
        if isinstance(value, str):
            return sanitize_error_message(value)
        return value

    return {key: clean(key, value) for key, value in data.items()}
