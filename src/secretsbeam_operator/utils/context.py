"""Per-reconciliation context: correlation IDs and deadlines.

Both values live in contextvars so that every log record and backend call
made while a handler runs can see them without threading them through
arguments.
"""

from __future__ import annotations

import contextvars
import os
import time
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Iterator

from .errors import DeadlineExceededError

RECONCILE_TIMEOUT_SECONDS = float(os.getenv("RECONCILE_TIMEOUT_SECONDS", "120"))

correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("correlation_id", default=None)

# Monotonic timestamp after which backend calls must not start
deadline: contextvars.ContextVar[float | None] = contextvars.ContextVar("deadline", default=None)


@contextmanager
def _scoped(var: contextvars.ContextVar[Any], value: Any) -> Iterator[Any]:
    token = var.set(value)
    try:
        yield value
    finally:
        var.reset(token)


def set_correlation_id(corr_id: str) -> None:
    correlation_id.set(corr_id)


def get_correlation_id() -> str | None:
    return correlation_id.get()


def with_correlation_id(corr_id: str) -> AbstractContextManager[str]:
    """Tag everything logged inside the block with ``corr_id``."""
    return _scoped(correlation_id, corr_id)


def with_deadline(seconds: float | None = None) -> AbstractContextManager[float]:
    """Give the block a time budget, RECONCILE_TIMEOUT_SECONDS by default.

    Yields the monotonic deadline.
    """
    budget = RECONCILE_TIMEOUT_SECONDS if seconds is None else seconds
    return _scoped(deadline, time.monotonic() + budget)


def remaining_time() -> float | None:
    """Seconds left before the current deadline, or None without one."""
    expires_at = deadline.get()
    return None if expires_at is None else expires_at - time.monotonic()


def check_deadline(operation: str = "") -> None:
    """Refuse to start ``operation`` once the deadline has passed.

    Raises:
        DeadlineExceededError: If no time is left
    """
    remaining = remaining_time()
    if remaining is None or remaining > 0:
        return
    suffix = f" before {operation}" if operation else ""
    raise DeadlineExceededError(f"reconciliation deadline exceeded{suffix}")


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Context fields for a log record, merged with ``additional``."""
    ctx: dict[str, Any] = {}
    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id
    ctx.update(additional or {})
    return ctx
