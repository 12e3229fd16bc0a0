"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_ACCESS_GRANTED,
    EVENT_REASON_ACCESS_REVOKED,
    EVENT_REASON_ACCESS_UPDATED,
    EVENT_REASON_PROVIDER_REGISTERED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_SECRET_CREATED,
    EVENT_REASON_SECRET_DELETED,
    EVENT_REASON_SECRET_ROTATED,
    EVENT_REASON_SECRET_UPDATED,
)


def emit_event(
    meta: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        meta: Resource metadata
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        meta,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(meta: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(meta, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(meta: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(meta, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_secret_created(meta: dict[str, Any], secret_name: str) -> None:
    emit_event(meta, EVENT_REASON_SECRET_CREATED, f"Secret {secret_name} created")


def emit_secret_updated(meta: dict[str, Any], secret_name: str) -> None:
    emit_event(meta, EVENT_REASON_SECRET_UPDATED, f"Secret {secret_name} updated")


def emit_secret_rotated(meta: dict[str, Any], secret_name: str) -> None:
    emit_event(meta, EVENT_REASON_SECRET_ROTATED, f"Secret {secret_name} rotated")


def emit_secret_deleted(meta: dict[str, Any], secret_name: str) -> None:
    emit_event(meta, EVENT_REASON_SECRET_DELETED, f"Secret {secret_name} deleted")


def emit_access_granted(meta: dict[str, Any], secret_name: str) -> None:
    emit_event(meta, EVENT_REASON_ACCESS_GRANTED, f"Access to secret {secret_name} granted")


def emit_access_updated(meta: dict[str, Any], secret_name: str) -> None:
    emit_event(meta, EVENT_REASON_ACCESS_UPDATED, f"Access to secret {secret_name} updated")


def emit_access_revoked(meta: dict[str, Any]) -> None:
    emit_event(meta, EVENT_REASON_ACCESS_REVOKED, "Access revoked")


def emit_provider_registered(meta: dict[str, Any], provider_type: str) -> None:
    emit_event(meta, EVENT_REASON_PROVIDER_REGISTERED, f"Provider of type {provider_type} registered")
