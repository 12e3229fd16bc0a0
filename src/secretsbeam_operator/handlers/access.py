"""Handler for ExternalSecretAccess CRD."""

from __future__ import annotations

import os
from typing import Any

import kopf

from .. import metrics
from ..builders.access import create_access_from_resource, subjects_to_status
from ..builders.secret import create_secret_reference
from ..constants import (
    ACCESS_RETRY_BASE_DELAY,
    API_GROUP_VERSION,
    COND_AVAILABLE,
    KIND_SECRET_ACCESS,
    REASON_CREATED,
    REASON_UPDATED,
)
from ..models import Secret, SecretAccess
from ..services.base import SecretProvider
from ..services.registry import ProviderRegistry
from ..tracing import trace_span
from ..utils.conditions import copy_conditions, find_condition, set_available_condition
from ..utils.errors import ControllerError
from ..utils.events import emit_access_granted, emit_access_revoked, emit_access_updated
from .base import BaseHandler
from .shared import get_k8s_client, get_target_secret

DRIFT_CHECK_INTERVAL_SECONDS = int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "300"))


class AccessHandler(BaseHandler):
    """Handler for ExternalSecretAccess resources."""

    retry_base_delay = ACCESS_RETRY_BASE_DELAY

    def __init__(self):
        super().__init__(KIND_SECRET_ACCESS)

    def reconcile(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        registry: ProviderRegistry,
        retry: int = 0,
        api: Any = None,
    ) -> bool:
        """Reconcile ExternalSecretAccess resource.

        Args:
            spec: Resource spec
            meta: Resource metadata
            status: Observed status
            patch: Kopf patch object
            registry: Provider registry
            retry: Number of previous failed attempts
            api: CustomObjectsApi used to read the target secret

        Returns:
            Whether the grant was created or changed during this pass
        """
        name = meta.get("name", "unknown")
        created = bool(status.get("created"))

        with trace_span("reconcile_external_secret_access", kind=KIND_SECRET_ACCESS, attributes={"access.name": name}):
            try:
                access = create_access_from_resource(spec, meta, status)
                target = get_target_secret(api or get_k8s_client(), access.namespace, access.secret_name)
                secret = create_secret_reference(
                    target.get("spec") or {},
                    target.get("metadata") or {},
                    target.get("status") or {},
                )
                provider = registry.get(secret.spec.provider)

                if not created:
                    self._create(provider, secret, access, meta, status, patch)
                    return True
                if self._needs_update(secret, access, meta, status):
                    self._update(provider, secret, access, meta, status, patch)
                    return True
                self._mark_available(meta, status, patch)
                return False
            except Exception as e:
                self.fail(meta, status, patch, e, retry, creating=not created)

    def _needs_update(
        self,
        secret: Secret,
        access: SecretAccess,
        meta: dict[str, Any],
        status: dict[str, Any],
    ) -> bool:
        if meta.get("generation") != status.get("observedGeneration"):
            return True
        return secret.backend_ids.get("SecretArn") != access.backend_ids.get("SecretArn")

    def _record_progress(self, provider_name: str, access: SecretAccess, patch: kopf.Patch) -> None:
        patch.status["providerType"] = provider_name
        if access.backend_ids:
            patch.status["provider"] = dict(access.backend_ids)

    def _applied_status(
        self,
        reason: str,
        provider_name: str,
        access: SecretAccess,
        meta: dict[str, Any],
        status: dict[str, Any],
    ) -> dict[str, Any]:
        generation = meta.get("generation", 0)
        return {
            "created": True,
            "subjects": subjects_to_status(access.subjects),
            "providerType": provider_name,
            "provider": dict(access.backend_ids),
            "serviceAccountAnnotation": access.backend_ids.get("ServiceAccountAnnotation"),
            "conditions": set_available_condition(copy_conditions(status), reason, generation),
            "observedGeneration": generation,
        }

    def _create(
        self,
        provider: SecretProvider,
        secret: Secret,
        access: SecretAccess,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        try:
            provider.create_access(secret, access)
        except Exception:
            metrics.backend_operations_total.labels(operation="create_access", result="error").inc()
            raise
        finally:
            self._record_progress(secret.spec.provider, access, patch)
        metrics.backend_operations_total.labels(operation="create_access", result="success").inc()

        patch.status.update(self._applied_status(REASON_CREATED, secret.spec.provider, access, meta, status))
        emit_access_granted(meta, access.secret_name)
        self.log(
            meta,
            f"Access to secret {access.secret_name} granted",
            event="create",
            reason="AccessGranted",
            subjects=len(access.subjects),
        )

    def _update(
        self,
        provider: SecretProvider,
        secret: Secret,
        access: SecretAccess,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        try:
            provider.update_access(secret, access)
        except Exception:
            metrics.backend_operations_total.labels(operation="update_access", result="error").inc()
            raise
        finally:
            self._record_progress(secret.spec.provider, access, patch)
        metrics.backend_operations_total.labels(operation="update_access", result="success").inc()

        patch.status.update(self._applied_status(REASON_UPDATED, secret.spec.provider, access, meta, status))
        emit_access_updated(meta, access.secret_name)
        self.log(meta, f"Access to secret {access.secret_name} updated", event="update", reason="AccessUpdated")

    def _mark_available(self, meta: dict[str, Any], status: dict[str, Any], patch: kopf.Patch) -> None:
        conditions = copy_conditions(status)
        existing = find_condition(conditions, COND_AVAILABLE)
        reason = existing.get("reason", REASON_CREATED) if existing else REASON_CREATED
        patch.status.update({
            "conditions": set_available_condition(conditions, reason, meta.get("generation", 0)),
        })

    def delete(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        registry: ProviderRegistry,
        retry: int = 0,
    ) -> None:
        """Revoke the grant using only what status recorded."""
        backend_ids = dict(status.get("provider") or {})
        if not backend_ids:
            self.log(meta, "Access was never granted, nothing to revoke", event="deletion", reason="Deletion")
            self.remove_finalizer(meta, patch)
            return

        access = SecretAccess(
            namespace=meta.get("namespace", "default"),
            name=meta.get("name", ""),
            backend_ids=backend_ids,
        )

        with trace_span("delete_external_secret_access", kind=KIND_SECRET_ACCESS, attributes={"access.name": access.name}):
            try:
                provider_name = status.get("providerType")
                if not provider_name:
                    raise ControllerError("status.providerType is missing, cannot revoke access")
                provider = registry.get(provider_name)
                provider.delete_access(access)
                metrics.backend_operations_total.labels(operation="delete_access", result="success").inc()
            except Exception as e:
                metrics.backend_operations_total.labels(operation="delete_access", result="error").inc()
                self.fail(meta, status, patch, e, retry)

        emit_access_revoked(meta)
        self.log(meta, "Access revoked", event="deletion", reason="AccessRevoked")
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = AccessHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_SECRET_ACCESS)
@kopf.on.update(API_GROUP_VERSION, KIND_SECRET_ACCESS)
@kopf.on.resume(API_GROUP_VERSION, KIND_SECRET_ACCESS)
def handle_external_secret_access(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ExternalSecretAccess resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(
        meta, lambda: _handler.reconcile(spec, meta, status, patch, memo.registry, retry)
    )


@kopf.timer(API_GROUP_VERSION, KIND_SECRET_ACCESS, interval=DRIFT_CHECK_INTERVAL_SECONDS)
def check_external_secret_access(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """Periodic check that follows target secret replacement."""
    if meta.get("deletionTimestamp"):
        return
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(
        meta, lambda: _handler.reconcile(spec, meta, status, patch, memo.registry, kwargs.get("retry", 0))
    )


@kopf.on.delete(API_GROUP_VERSION, KIND_SECRET_ACCESS)
def handle_external_secret_access_delete(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    retry: int = 0,
    **kwargs: Any,
) -> None:
    """Handle ExternalSecretAccess resource deletion."""
    _handler.reconcile_with_metrics(
        meta, lambda: _handler.delete(spec, meta, status, patch, memo.registry, retry)
    )
