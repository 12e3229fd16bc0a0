"""Builder for secret provider instances."""

from __future__ import annotations

from typing import Any

from kubernetes import client, config

from ..constants import PROVIDER_AWS
from ..services.aws.client import AWSProvider
from ..services.base import SecretProvider
from ..utils.errors import ConfigError
from ..utils.secrets import get_secret_value

PROVIDER_TYPES: dict[str, type] = {
    PROVIDER_AWS: AWSProvider,
}


def _core_api() -> client.CoreV1Api:
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    return client.CoreV1Api()


def resolve_provider_config(
    provider_config: dict[str, Any],
    namespace: str,
    core_api: client.CoreV1Api | None = None,
) -> dict[str, str]:
    """Flatten the declared config and inline credentials from a Secret.

    Args:
        provider_config: ``spec.config`` of an ExternalSecretProvider
        namespace: Namespace holding the credentials Secret
        core_api: CoreV1Api instance, created on demand when needed

    Raises:
        ConfigError: If the credentials Secret or its keys are missing
    """
    resolved = {str(k): str(v) for k, v in provider_config.items() if v is not None}
    credentials_secret = resolved.pop("credentialsSecretName", None)
    if not credentials_secret:
        return resolved

    api = core_api or _core_api()
    resolved["accessKeyId"] = get_secret_value(api, namespace, credentials_secret, "access-key-id") or ""
    resolved["secretAccessKey"] = get_secret_value(api, namespace, credentials_secret, "secret-access-key") or ""
    session_token = get_secret_value(api, namespace, credentials_secret, "session-token", optional=True)
    if session_token:
        resolved["sessionToken"] = session_token
    return resolved


def create_provider_from_spec(
    spec: dict[str, Any],
    meta: dict[str, Any],
    core_api: client.CoreV1Api | None = None,
) -> SecretProvider:
    """Create and initialize a provider from an ExternalSecretProvider spec.

    Args:
        spec: ExternalSecretProvider CRD spec
        meta: Resource metadata
        core_api: Optional CoreV1Api used to read credentials

    Returns:
        Initialized provider instance

    Raises:
        ConfigError: If the type is unsupported or the configuration is invalid
    """
    provider_type = spec.get("provider")
    if not provider_type:
        raise ConfigError("provider type is required")

    provider_cls = PROVIDER_TYPES.get(provider_type)
    if provider_cls is None:
        raise ConfigError(f"Unsupported provider type: {provider_type}")

    provider_config = resolve_provider_config(
        spec.get("config") or {},
        meta.get("namespace", "default"),
        core_api,
    )

    provider = provider_cls()
    provider.init(provider_config)
    return provider
