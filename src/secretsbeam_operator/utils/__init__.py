"""Utility functions for the Secretsbeam Operator."""

from .conditions import (
    copy_conditions,
    find_condition,
    remove_condition,
    set_available_condition,
    set_creation_failed_condition,
    set_ready_condition,
    set_unavailable_condition,
    update_condition,
)
from .context import (
    check_deadline,
    get_context_dict,
    get_correlation_id,
    set_correlation_id,
    with_correlation_id,
    with_deadline,
)
from .errors import (
    ConfigError,
    ControllerError,
    NotFoundError,
    ProviderError,
    classify_error,
    sanitize_exception,
)
from .events import emit_event
from .rate_limit import TokenBucket, backend_bucket, rate_limit_k8s, retry_delay
from .secrets import get_secret_value

__all__ = [
    "copy_conditions",
    "find_condition",
    "remove_condition",
    "set_available_condition",
    "set_creation_failed_condition",
    "set_ready_condition",
    "set_unavailable_condition",
    "update_condition",
    "check_deadline",
    "get_context_dict",
    "get_correlation_id",
    "set_correlation_id",
    "with_correlation_id",
    "with_deadline",
    "ConfigError",
    "ControllerError",
    "NotFoundError",
    "ProviderError",
    "classify_error",
    "sanitize_exception",
    "emit_event",
    "TokenBucket",
    "backend_bucket",
    "rate_limit_k8s",
    "retry_delay",
    "get_secret_value",
]
