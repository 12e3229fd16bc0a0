"""Handler for ExternalSecret CRD."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Callable

import kopf

from .. import metrics
from ..builders.secret import create_secret_from_resource, create_secret_reference
from ..constants import (
    API_GROUP_VERSION,
    COND_AVAILABLE,
    EXTERNAL_PLACEHOLDER,
    KIND_SECRET,
    REASON_CREATED,
    REASON_UPDATED,
    SECRET_RETRY_BASE_DELAY,
)
from ..models import RandomSpec, Secret
from ..rotation import generate, next_rotation
from ..services.base import SecretProvider
from ..services.registry import ProviderRegistry
from ..tracing import trace_span
from ..utils.conditions import copy_conditions, find_condition, set_available_condition
from ..utils.events import (
    emit_secret_created,
    emit_secret_deleted,
    emit_secret_rotated,
    emit_secret_updated,
)
from .base import BaseHandler

DRIFT_CHECK_INTERVAL_SECONDS = int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "300"))

# Status fields describing the value source, cleared when not applicable
_SOURCE_FIELDS = ("isExternal", "isRandom", "nextRotateDate", "randomRe", "randomSize")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp from status; naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _source_fields(**values: Any) -> dict[str, Any]:
    fields: dict[str, Any] = {field: None for field in _SOURCE_FIELDS}
    fields["isExternal"] = False
    fields["isRandom"] = False
    fields.update(values)
    return fields


def _backend_op(operation: str, fn: Callable[..., Any], *args: Any) -> Any:
    try:
        result = fn(*args)
    except Exception:
        metrics.backend_operations_total.labels(operation=operation, result="error").inc()
        raise
    metrics.backend_operations_total.labels(operation=operation, result="success").inc()
    return result


def _written_at(provider: SecretProvider, secret: Secret) -> str:
    """Backend timestamp of the write just made, local now when the backend reports none."""
    changed = parse_timestamp(_backend_op("get_last_changed_date", provider.get_last_changed_date, secret))
    return (changed or _now()).isoformat()


class SecretHandler(BaseHandler):
    """Handler for ExternalSecret resources."""

    retry_base_delay = SECRET_RETRY_BASE_DELAY

    def __init__(self):
        super().__init__(KIND_SECRET)

    def reconcile(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        registry: ProviderRegistry,
        retry: int = 0,
    ) -> bool:
        """Reconcile ExternalSecret resource.

        Returns:
            Whether the backend value was written during this pass
        """
        name = meta.get("name", "unknown")
        created = bool(status.get("created"))

        with trace_span("reconcile_external_secret", kind=KIND_SECRET, attributes={"secret.name": name}):
            try:
                secret = create_secret_from_resource(spec, meta, status)
                provider = registry.get(secret.spec.provider)
                if not created:
                    return self._create(provider, secret, meta, status, patch)
                return self._update(provider, secret, meta, status, patch)
            except Exception as e:
                self.fail(meta, status, patch, e, retry, creating=not created)

    def _initial_value(self, secret: Secret, now: datetime) -> tuple[str, dict[str, Any]]:
        """Pick the value to store on create and the matching status fields."""
        if secret.spec.external:
            return EXTERNAL_PLACEHOLDER, _source_fields(isExternal=True)
        if secret.spec.random is not None:
            return self._generate(secret.spec.random, now)
        return secret.spec.secret_string or "", _source_fields()

    def _generate(self, random_spec: RandomSpec, now: datetime) -> tuple[str, dict[str, Any]]:
        # Parse the rotation first so a bad expression fails before any write
        next_rotate = next_rotation(random_spec.rotate, now) if random_spec.rotate else None
        value = generate(random_spec.regex, random_spec.size)
        return value, _source_fields(
            isRandom=True,
            randomRe=random_spec.regex,
            randomSize=random_spec.size,
            nextRotateDate=next_rotate.isoformat() if next_rotate else None,
        )

    def _create(
        self,
        provider: SecretProvider,
        secret: Secret,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> bool:
        value, fields = self._initial_value(secret, _now())

        try:
            _backend_op("create_secret", provider.create_secret, secret, value)
        finally:
            if secret.backend_ids:
                patch.status["provider"] = dict(secret.backend_ids)

        generation = meta.get("generation", 0)
        conditions = set_available_condition(copy_conditions(status), REASON_CREATED, generation)
        patch.status.update({
            **fields,
            "created": True,
            "name": secret.spec.name,
            "version": "1",
            "lastUpdateDate": _written_at(provider, secret),
            "deletionDate": None,
            "provider": dict(secret.backend_ids),
            "conditions": conditions,
            "observedGeneration": generation,
        })

        emit_secret_created(meta, secret.spec.name)
        self.log(meta, f"Secret {secret.spec.name} created", event="create", reason="SecretCreated")
        return True

    def _plan_random(
        self,
        random_spec: RandomSpec,
        status: dict[str, Any],
        now: datetime,
    ) -> tuple[str | None, dict[str, Any], bool]:
        """Decide whether a generated value must be (re)generated.

        Returns:
            (new value or None, status fields, whether this is a scheduled rotation)
        """
        try:
            previous_size = int(status.get("randomSize") or 0)
        except (TypeError, ValueError):
            previous_size = 0
        pattern_changed = (
            not status.get("isRandom")
            or status.get("randomRe") != random_spec.regex
            or previous_size != random_spec.size
        )
        if pattern_changed:
            value, fields = self._generate(random_spec, now)
            return value, fields, False

        fields = _source_fields(
            isRandom=True,
            randomRe=random_spec.regex,
            randomSize=random_spec.size,
            nextRotateDate=status.get("nextRotateDate"),
        )

        if not random_spec.rotate:
            fields["nextRotateDate"] = None
            return None, fields, False

        next_rotate = parse_timestamp(status.get("nextRotateDate"))
        if next_rotate is None:
            fields["nextRotateDate"] = next_rotation(random_spec.rotate, now).isoformat()
            return None, fields, False

        if next_rotate > now:
            return None, fields, False

        value, fields = self._generate(random_spec, now)
        return value, fields, True

    def _literal_needs_write(
        self,
        provider: SecretProvider,
        secret: Secret,
        meta: dict[str, Any],
        status: dict[str, Any],
    ) -> bool:
        if meta.get("generation") != status.get("observedGeneration"):
            return True

        last_update = parse_timestamp(status.get("lastUpdateDate"))
        last_changed = _backend_op("get_last_changed_date", provider.get_last_changed_date, secret)
        if last_changed is None or last_update is None:
            return False
        if last_changed.tzinfo is None:
            last_changed = last_changed.replace(tzinfo=timezone.utc)
        if last_changed > last_update:
            metrics.drift_detected_total.labels(kind=self.kind, provider=secret.spec.provider).inc()
            return True
        return False

    def _update(
        self,
        provider: SecretProvider,
        secret: Secret,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> bool:
        now = _now()
        value: str | None = None
        rotated = False

        if secret.spec.external:
            fields = _source_fields(isExternal=True)
        elif secret.spec.random is not None:
            value, fields, rotated = self._plan_random(secret.spec.random, status, now)
        else:
            fields = _source_fields()
            if self._literal_needs_write(provider, secret, meta, status):
                value = secret.spec.secret_string or ""

        generation = meta.get("generation", 0)
        status_update: dict[str, Any] = {
            **fields,
            "name": secret.spec.name,
            "observedGeneration": generation,
        }

        if value is not None:
            try:
                _backend_op("update_secret", provider.update_secret, secret, value)
            finally:
                patch.status["provider"] = dict(secret.backend_ids)

            try:
                version = int(status.get("version") or 1)
            except (TypeError, ValueError):
                version = 1
            status_update.update({
                "version": str(version + 1),
                "lastUpdateDate": _written_at(provider, secret),
                "provider": dict(secret.backend_ids),
            })
            reason = REASON_UPDATED
        else:
            existing = find_condition(copy_conditions(status), COND_AVAILABLE)
            reason = existing.get("reason", REASON_CREATED) if existing else REASON_CREATED

        status_update["conditions"] = set_available_condition(copy_conditions(status), reason, generation)
        patch.status.update(status_update)

        if value is None:
            return False

        if rotated:
            metrics.secret_rotations_total.labels(provider=secret.spec.provider).inc()
            emit_secret_rotated(meta, secret.spec.name)
            self.log(meta, f"Secret {secret.spec.name} rotated", event="rotate", reason="SecretRotated")
        else:
            emit_secret_updated(meta, secret.spec.name)
            self.log(meta, f"Secret {secret.spec.name} updated", event="update", reason="SecretUpdated")
        return True

    def delete(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        registry: ProviderRegistry,
        retry: int = 0,
    ) -> None:
        """Handle ExternalSecret resource deletion."""
        if not status.get("created"):
            self.log(meta, "Secret was never created, nothing to delete", event="deletion", reason="Deletion")
            self.remove_finalizer(meta, patch)
            return

        with trace_span("delete_external_secret", kind=KIND_SECRET, attributes={"secret.name": meta.get("name")}):
            try:
                secret = create_secret_reference(spec, meta, status)
                provider = registry.get(secret.spec.provider)
                deletion_date = _backend_op("delete_secret", provider.delete_secret, secret)
            except Exception as e:
                self.fail(meta, status, patch, e, retry)

        patch.status.update({
            "deletionDate": deletion_date.isoformat() if deletion_date else None,
        })
        emit_secret_deleted(meta, secret.spec.name)
        self.log(meta, f"Secret {secret.spec.name} deleted", event="deletion", reason="SecretDeleted")
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = SecretHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_SECRET)
@kopf.on.update(API_GROUP_VERSION, KIND_SECRET)
@kopf.on.resume(API_GROUP_VERSION, KIND_SECRET)
def handle_external_secret(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ExternalSecret resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(
        meta, lambda: _handler.reconcile(spec, meta, status, patch, memo.registry, retry)
    )


@kopf.timer(API_GROUP_VERSION, KIND_SECRET, interval=DRIFT_CHECK_INTERVAL_SECONDS)
def check_external_secret(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """Periodic rotation and drift check."""
    if meta.get("deletionTimestamp"):
        return
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(
        meta, lambda: _handler.reconcile(spec, meta, status, patch, memo.registry, kwargs.get("retry", 0))
    )


@kopf.on.delete(API_GROUP_VERSION, KIND_SECRET)
def handle_external_secret_delete(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ExternalSecret resource deletion."""
    _handler.reconcile_with_metrics(
        meta, lambda: _handler.delete(spec, meta, status, patch, memo.registry, retry)
    )
