"""Shared plumbing for the CRD handlers: finalizers, metrics and failure reporting."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, NoReturn, TypeVar

import kopf

from .. import metrics
from ..constants import FINALIZER, SECRET_RETRY_BASE_DELAY
from ..logging import log_resource_event
from ..utils.conditions import (
    copy_conditions,
    set_creation_failed_condition,
    set_unavailable_condition,
)
from ..utils.context import with_correlation_id, with_deadline
from ..utils.errors import OperatorError, classify_error, is_permanent, sanitize_exception
from ..utils.events import emit_reconcile_failed, emit_reconcile_started
from ..utils.rate_limit import retry_delay

_T = TypeVar("_T")

CONTROLLER_NAME = "secretsbeam-operator"


def _unwrap(error: Exception) -> Exception:
    """Return the backend error behind a kopf retry signal."""
    if isinstance(error, (kopf.TemporaryError, kopf.PermanentError)) and error.__cause__ is not None:
        return error.__cause__  # type: ignore[return-value]
    return error


class BaseHandler:
    """Common behaviour of the ExternalSecret, ExternalSecretAccess and Provider handlers.

    Subclasses set ``retry_base_delay`` to pick their backoff curve.
    """

    retry_base_delay = SECRET_RETRY_BASE_DELAY

    def __init__(self, kind: str):
        self.kind = kind
        self.logger = logging.getLogger(__name__)

    def log(
        self,
        meta: dict[str, Any],
        message: str,
        *,
        event: str = "info",
        reason: str = "Info",
        level: int = logging.INFO,
        error: Exception | None = None,
        **fields: Any,
    ) -> None:
        """Write one structured record about this resource.

        An ``error`` is logged in sanitized form together with its type name.
        """
        if error is not None:
            fields["error"] = sanitize_exception(error)
            fields["error_type"] = type(error).__name__
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=meta.get("name", "unknown"),
            namespace=meta.get("namespace", "default"),
            uid=meta.get("uid", "unknown"),
            event=event,
            reason=reason,
            message=message,
            level=level,
            **fields,
        )

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        finalizers = meta.get("finalizers") or []
        if FINALIZER not in finalizers:
            patch.metadata["finalizers"] = [*finalizers, FINALIZER]

    def remove_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Release the resource for deletion, leaving foreign finalizers alone."""
        finalizers = meta.get("finalizers") or []
        if FINALIZER in finalizers:
            remaining = [f for f in finalizers if f != FINALIZER]
            patch.metadata["finalizers"] = remaining or None

    def reconcile_with_metrics(
        self,
        meta: dict[str, Any],
        reconcile_fn: Callable[[], _T],
    ) -> _T:
        """Run one reconciliation pass under a fresh correlation id and deadline.

        Counts started/success/error outcomes, observes the duration and, on
        failure, logs and emits a sanitized ReconcileFailed event before
        re-raising.
        """
        emit_reconcile_started(meta)
        metrics.reconcile_total.labels(kind=self.kind, result="started").inc()

        started = time.monotonic()
        try:
            with with_correlation_id(str(uuid.uuid4())), with_deadline():
                result = reconcile_fn()
        except Exception as e:
            cause = _unwrap(e)
            metrics.error_total.labels(kind=self.kind, error_type=type(cause).__name__).inc()
            metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
            self.log(meta, "Reconciliation failed", level=logging.ERROR, error=cause,
                     event="error", reason="ReconciliationFailed")
            emit_reconcile_failed(meta, f"Reconciliation failed: {sanitize_exception(cause)}")
            raise
        finally:
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(time.monotonic() - started)

        metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
        return result

    def retry_signal(self, error: Exception, retry: int) -> kopf.TemporaryError | kopf.PermanentError:
        """Translate an error into the kopf signal that schedules (or stops) retries."""
        message = sanitize_exception(error)
        if is_permanent(error):
            return kopf.PermanentError(message)
        return kopf.TemporaryError(message, delay=retry_delay(retry, self.retry_base_delay))

    def fail(
        self,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        error: Exception,
        retry: int = 0,
        creating: bool = False,
    ) -> NoReturn:
        """Record a failed pass in status and raise the matching kopf signal.

        Args:
            meta: Kubernetes resource metadata
            status: Current resource status
            patch: Kopf patch object
            error: What went wrong
            retry: Number of previous failed attempts
            creating: Whether the failure happened while creating
        """
        message = sanitize_exception(error)
        generation = meta.get("generation", 0)

        conditions = copy_conditions(status)
        if "conditions" in patch.status:
            conditions = [dict(cond) for cond in patch.status["conditions"]]
        conditions = set_unavailable_condition(conditions, classify_error(error), message, generation)
        if creating:
            conditions = set_creation_failed_condition(conditions, message, generation)
        patch.status["conditions"] = conditions

        if not isinstance(error, OperatorError):
            self.log(meta, f"Unexpected error type {type(error).__name__}", level=logging.WARNING,
                     event="warning", reason="UnexpectedError")

        raise self.retry_signal(error, retry) from error
