"""Handler for ExternalSecretProvider CRD."""

from __future__ import annotations

from typing import Any

import kopf

from .. import metrics
from ..builders.provider import create_provider_from_spec
from ..constants import API_GROUP_VERSION, KIND_SECRET_PROVIDER
from ..services.registry import ProviderRegistry
from ..tracing import trace_span
from ..utils.conditions import copy_conditions, set_ready_condition
from ..utils.errors import ConfigError, sanitize_exception
from ..utils.events import emit_provider_registered
from .base import BaseHandler


class ProviderHandler(BaseHandler):
    """Keeps the registry in step with declared providers.

    Providers declared after startup are registered here, so secrets that
    reference them do not wait for a restart.
    """

    def __init__(self):
        super().__init__(KIND_SECRET_PROVIDER)

    def reconcile(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        registry: ProviderRegistry,
        core_api: Any = None,
    ) -> None:
        """Build the provider and (re)register it under the resource name."""
        name = meta.get("name", "unknown")
        provider_type = spec.get("provider", "unknown")
        generation = meta.get("generation", 0)

        with trace_span("reconcile_provider", kind=KIND_SECRET_PROVIDER, attributes={"provider.name": name}):
            try:
                provider = create_provider_from_spec(spec, meta, core_api)
            except ConfigError as e:
                message = sanitize_exception(e)
                metrics.provider_registrations_total.labels(provider_type=provider_type, result="error").inc()
                registry.unregister(name)
                patch.status.update({
                    "registered": False,
                    "providerType": provider_type,
                    "conditions": set_ready_condition(copy_conditions(status), False, message, generation),
                    "observedGeneration": generation,
                })
                raise kopf.PermanentError(f"Invalid provider configuration: {message}") from e

            registry.register(name, provider)
            metrics.provider_registrations_total.labels(provider_type=provider_type, result="success").inc()

            patch.status.update({
                "registered": True,
                "providerType": provider_type,
                "conditions": set_ready_condition(
                    copy_conditions(status), True, f"Provider {name} is registered", generation
                ),
                "observedGeneration": generation,
            })
            emit_provider_registered(meta, provider_type)
            self.log(meta, f"Provider {name} registered", event="register", reason="ProviderRegistered")

    def delete(
        self,
        meta: dict[str, Any],
        patch: kopf.Patch,
        registry: ProviderRegistry,
    ) -> None:
        """Handle ExternalSecretProvider resource deletion."""
        registry.unregister(meta.get("name", "unknown"))
        self.log(meta, "Provider unregistered", event="deletion", reason="Deletion")
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = ProviderHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_SECRET_PROVIDER)
@kopf.on.update(API_GROUP_VERSION, KIND_SECRET_PROVIDER)
@kopf.on.resume(API_GROUP_VERSION, KIND_SECRET_PROVIDER)
def handle_provider(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """Handle ExternalSecretProvider resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(spec, meta, status, patch, memo.registry))


@kopf.on.delete(API_GROUP_VERSION, KIND_SECRET_PROVIDER)
def handle_provider_delete(
    meta: dict[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """Handle ExternalSecretProvider resource deletion."""
    _handler.delete(meta, patch, memo.registry)
