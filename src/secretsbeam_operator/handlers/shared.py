"""Shared utilities for handlers."""

from __future__ import annotations

import time
from typing import Any

from kubernetes import client

from .. import metrics
from ..constants import API_GROUP, API_VERSION, PLURAL_SECRETS
from ..utils.errors import TargetNotReadyError
from ..utils.rate_limit import rate_limit_k8s


def get_k8s_client() -> client.CustomObjectsApi:
    """Get Kubernetes CustomObjectsApi client."""
    from kubernetes import config

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()

    return client.CustomObjectsApi()


def get_target_secret(api: Any, namespace: str, name: str) -> dict[str, Any]:
    """Fetch the ExternalSecret an access grant points at.

    Args:
        api: Kubernetes CustomObjectsApi instance
        namespace: Namespace of the grant (and of its target)
        name: Name of the ExternalSecret

    Returns:
        The ExternalSecret object

    Raises:
        TargetNotReadyError: If the secret is missing or not created yet
    """
    start_time = time.time()
    try:
        obj = rate_limit_k8s(api.get_namespaced_custom_object)(
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=PLURAL_SECRETS,
            name=name,
        )
        metrics.api_call_total.labels(api_type="k8s", operation="get_secret", result="success").inc()
    except client.exceptions.ApiException as e:
        metrics.api_call_total.labels(api_type="k8s", operation="get_secret", result="error").inc()
        if e.status == 404:
            raise TargetNotReadyError(f"ExternalSecret {name} not found in namespace {namespace}") from e
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type="k8s", operation="get_secret").observe(duration)

    status = obj.get("status") or {}
    if not status.get("created"):
        raise TargetNotReadyError(f"ExternalSecret {name} is not created yet")
    return obj
