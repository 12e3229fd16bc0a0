"""Status condition helpers shared by the ExternalSecret, ExternalSecretAccess and Provider handlers.

Conditions are kept as plain dicts in the shape Kubernetes expects, so the
lists can be written straight into ``patch.status["conditions"]``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import (
    COND_AVAILABLE,
    COND_CREATION_FAILED,
    COND_READY,
    COND_UNAVAILABLE,
    REASON_CREATION_FAILED,
)

Condition = dict[str, Any]

# Cleared whenever a reconciliation succeeds
_FAILURE_TYPES = (COND_UNAVAILABLE, COND_CREATION_FAILED)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def copy_conditions(status: dict[str, Any]) -> list[Condition]:
    """Return a mutable copy of the conditions stored in a status."""
    return [dict(cond) for cond in status.get("conditions") or []]


def find_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    """Return the condition of the given type, if present."""
    return next((cond for cond in conditions if cond.get("type") == condition_type), None)


def remove_condition(conditions: list[Condition], condition_type: str) -> list[Condition]:
    """Drop every condition of the given type."""
    return [cond for cond in conditions if cond.get("type") != condition_type]


def update_condition(
    conditions: list[Condition],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[Condition]:
    """Upsert a condition in place.

    lastTransitionTime only moves when the status value flips; reason and
    message are always replaced.

    Args:
        conditions: Conditions to modify
        condition_type: Condition type, e.g. "Available"
        status: "True", "False" or "Unknown"
        reason: CamelCase machine-readable reason
        message: Human-readable message
        observed_generation: metadata.generation the condition describes

    Returns:
        The same list, for chaining
    """
    previous = find_condition(conditions, condition_type)

    condition: Condition = {"type": condition_type, "status": status, "reason": reason, "message": message}
    if previous is not None and previous.get("status") == status and previous.get("lastTransitionTime"):
        condition["lastTransitionTime"] = previous["lastTransitionTime"]
    else:
        condition["lastTransitionTime"] = _timestamp()
    if observed_generation is not None:
        condition["observedGeneration"] = observed_generation

    if previous is None:
        conditions.append(condition)
    else:
        conditions[conditions.index(previous)] = condition
    return conditions


def set_available_condition(
    conditions: list[Condition],
    reason: str,
    observed_generation: int | None = None,
) -> list[Condition]:
    """Mark the resource Available ("Created" or "Updated") and clear failure conditions."""
    remaining = [cond for cond in conditions if cond.get("type") not in _FAILURE_TYPES]
    return update_condition(remaining, COND_AVAILABLE, "True", reason, reason, observed_generation)


def set_unavailable_condition(
    conditions: list[Condition],
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[Condition]:
    return update_condition(conditions, COND_UNAVAILABLE, "False", reason, message, observed_generation)


def set_creation_failed_condition(
    conditions: list[Condition],
    message: str,
    observed_generation: int | None = None,
) -> list[Condition]:
    return update_condition(
        conditions, COND_CREATION_FAILED, "True", REASON_CREATION_FAILED, message, observed_generation
    )


def set_ready_condition(
    conditions: list[Condition],
    status: bool,
    message: str,
    observed_generation: int | None = None,
) -> list[Condition]:
    """Set the Provider Ready condition; reason is "Ready" or "NotReady"."""
    value, reason = ("True", "Ready") if status else ("False", "NotReady")
    return update_condition(conditions, COND_READY, value, reason, message, observed_generation)
