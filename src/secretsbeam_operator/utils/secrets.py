"""Utilities for reading Kubernetes secrets."""

from __future__ import annotations

import base64

from kubernetes import client

from .errors import ConfigError


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
    optional: bool = False,
) -> str | None:
    """Get a value from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key in the secret
        optional: Return None instead of raising when the key is absent

    Returns:
        Secret value

    Raises:
        ConfigError: If secret or key not found
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ConfigError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise

    data = secret.data or {}
    if key not in data:
        if optional:
            return None
        raise ConfigError(f"Key '{key}' not found in secret '{secret_name}'")

    value = data[key]
    # Handle both string and bytes (different versions of kubernetes client)
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return base64.b64decode(value).decode("utf-8")
