"""Builder for ExternalSecret models."""

from __future__ import annotations

from typing import Any

from ..constants import MAX_RECOVERY_WINDOW_DAYS, MIN_RECOVERY_WINDOW_DAYS
from ..models import RandomSpec, Secret, SecretSpec
from ..utils.errors import SpecError


def create_secret_spec_from_spec(spec: dict[str, Any], meta: dict[str, Any]) -> SecretSpec:
    """Create a SecretSpec from CRD spec.

    Args:
        spec: ExternalSecret CRD spec
        meta: Resource metadata

    Returns:
        Validated secret specification

    Raises:
        SpecError: If the provider is missing or not exactly one value source is set
    """
    provider = spec.get("provider")
    if not provider:
        raise SpecError("provider is required")

    secret_string = spec.get("secretString")
    external = bool(spec.get("external", False))

    random_spec = None
    random_cfg = spec.get("random")
    if random_cfg is not None:
        regex = random_cfg.get("regex")
        if not regex:
            raise SpecError("random.regex is required")
        try:
            size = int(random_cfg.get("size", 0))
        except (TypeError, ValueError) as e:
            raise SpecError(f"random.size must be an integer: {e}") from e
        random_spec = RandomSpec(size=size, regex=regex, rotate=random_cfg.get("rotate") or None)

    sources = [secret_string is not None, external, random_spec is not None]
    if sum(sources) != 1:
        raise SpecError("exactly one of secretString, external or random must be set")

    try:
        recovery_window = int(spec.get("recoveryWindow", 0) or 0)
    except (TypeError, ValueError) as e:
        raise SpecError(f"recoveryWindow must be an integer: {e}") from e
    if recovery_window and not MIN_RECOVERY_WINDOW_DAYS <= recovery_window <= MAX_RECOVERY_WINDOW_DAYS:
        raise SpecError(
            f"recoveryWindow must be 0 or between {MIN_RECOVERY_WINDOW_DAYS} and {MAX_RECOVERY_WINDOW_DAYS} days"
        )

    return SecretSpec(
        name=spec.get("externalName") or meta.get("name", ""),
        provider=provider,
        secret_string=secret_string,
        external=external,
        random=random_spec,
        overwrite=bool(spec.get("overwrite", False)),
        recovery_window=recovery_window,
        provider_spec={str(k): str(v) for k, v in (spec.get("providerSpec") or {}).items()},
    )


def create_secret_from_resource(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
) -> Secret:
    """Combine declared spec and observed backend identifiers."""
    return Secret(
        namespace=meta.get("namespace", "default"),
        name=meta.get("name", ""),
        spec=create_secret_spec_from_spec(spec, meta),
        backend_ids=dict(status.get("provider") or {}),
    )


def create_secret_reference(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
) -> Secret:
    """Build just enough of a Secret to delete it or grant access to it.

    Only the backend name, provider key and recovery window are read; the
    value source is not validated. A recovery window the backend would
    reject is clamped into range so deletion can still finish.

    Raises:
        SpecError: If no provider is declared
    """
    provider = spec.get("provider")
    if not provider:
        raise SpecError("provider is required")
    try:
        recovery_window = max(int(spec.get("recoveryWindow", 0) or 0), 0)
    except (TypeError, ValueError):
        recovery_window = 0
    if recovery_window:
        recovery_window = min(max(recovery_window, MIN_RECOVERY_WINDOW_DAYS), MAX_RECOVERY_WINDOW_DAYS)

    return Secret(
        namespace=meta.get("namespace", "default"),
        name=meta.get("name", ""),
        spec=SecretSpec(
            name=status.get("name") or spec.get("externalName") or meta.get("name", ""),
            provider=provider,
            recovery_window=recovery_window,
        ),
        backend_ids=dict(status.get("provider") or {}),
    )
