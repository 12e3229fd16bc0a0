"""Process-wide registry of configured secret providers."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from kubernetes import client, config

from .. import metrics
from ..constants import API_GROUP, API_VERSION, PLURAL_SECRET_PROVIDERS
from ..utils.errors import ConfigError, ProviderNotRegisteredError, sanitize_exception
from ..utils.rate_limit import rate_limit_k8s
from .base import SecretProvider

logger = logging.getLogger(__name__)

ProviderLoader = Callable[[], list[dict[str, Any]]]
ProviderBuilder = Callable[[dict[str, Any], dict[str, Any]], SecretProvider]


def list_declared_providers() -> list[dict[str, Any]]:
    """List every ExternalSecretProvider object in the cluster."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    api = client.CustomObjectsApi()

    start_time = time.time()
    try:
        response = rate_limit_k8s(api.list_cluster_custom_object)(
            group=API_GROUP,
            version=API_VERSION,
            plural=PLURAL_SECRET_PROVIDERS,
        )
        metrics.api_call_total.labels(api_type="k8s", operation="list_providers", result="success").inc()
        return list(response.get("items", []))
    except client.exceptions.ApiException:
        metrics.api_call_total.labels(api_type="k8s", operation="list_providers", result="error").inc()
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type="k8s", operation="list_providers").observe(duration)


def _default_builder(spec: dict[str, Any], meta: dict[str, Any]) -> SecretProvider:
    from ..builders.provider import create_provider_from_spec

    return create_provider_from_spec(spec, meta)


class ProviderRegistry:
    """Thread-safe name -> provider map with a lazy cold-start load.

    The first ``get`` on an empty registry lists all declared providers once.
    Concurrent callers wait for that pass instead of repeating it.
    """

    def __init__(
        self,
        loader: ProviderLoader | None = None,
        builder: ProviderBuilder | None = None,
    ) -> None:
        self._providers: dict[str, SecretProvider] = {}
        self._lock = threading.Lock()
        self._init_lock = threading.Lock()
        self.initialized = False
        self._loader = loader or list_declared_providers
        self._builder = builder or _default_builder

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._providers)

    def register(self, name: str, provider: SecretProvider) -> None:
        """Register a provider, replacing any previous one with that name."""
        with self._lock:
            self._providers[name] = provider
            metrics.registered_providers.set(len(self._providers))
        logger.info(f"Registered provider {name}")

    def unregister(self, name: str) -> None:
        with self._lock:
            removed = self._providers.pop(name, None)
            metrics.registered_providers.set(len(self._providers))
        if removed is not None:
            logger.info(f"Unregistered provider {name}")

    def get(self, name: str) -> SecretProvider:
        """Look up a provider by name.

        Raises:
            ProviderNotRegisteredError: If no provider has that name
        """
        with self._lock:
            provider = self._providers.get(name)
            empty = not self._providers

        if provider is None and empty:
            self.initialize_all()
            with self._lock:
                provider = self._providers.get(name)

        if provider is None:
            raise ProviderNotRegisteredError(f"provider {name} is not registered")
        return provider

    def initialize_all(self) -> int:
        """Build and register every declared provider, at most once.

        Entries with a malformed configuration are logged and skipped.

        Returns:
            Number of providers registered by this pass
        """
        with self._init_lock:
            if self.initialized:
                return 0

            registered = 0
            for obj in self._loader():
                meta = obj.get("metadata", {})
                spec = obj.get("spec", {})
                name = meta.get("name", "")
                provider_type = spec.get("provider", "unknown")
                try:
                    provider = self._builder(spec, meta)
                except ConfigError as e:
                    metrics.provider_registrations_total.labels(provider_type=provider_type, result="error").inc()
                    logger.warning(f"Skipping provider {name}: {sanitize_exception(e)}")
                    continue
                self.register(name, provider)
                metrics.provider_registrations_total.labels(provider_type=provider_type, result="success").inc()
                registered += 1

            self.initialized = True
            logger.info(f"Initialized {registered} providers")
            return registered
