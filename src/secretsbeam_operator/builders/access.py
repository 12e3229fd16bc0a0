"""Builder for ExternalSecretAccess models."""

from __future__ import annotations

from typing import Any

from ..models import AccessSubject, ExternalIdentityRef, SecretAccess, ServiceAccountRef
from ..utils.errors import SpecError


def parse_subject(raw: dict[str, Any]) -> AccessSubject:
    """Parse one declared subject.

    Raises:
        SpecError: If the subject is not exactly one supported variant
    """
    service_account = raw.get("serviceAccount")
    provider = raw.get("provider")
    if bool(service_account) == bool(provider):
        raise SpecError("each subject must set exactly one of serviceAccount or provider")

    if service_account:
        namespace = service_account.get("namespace")
        name = service_account.get("name")
        if not namespace or not name:
            raise SpecError("serviceAccount subjects require namespace and name")
        return ServiceAccountRef(namespace=namespace, name=name)

    identifier = provider.get("identifier")
    if not identifier:
        raise SpecError("provider subjects require an identifier")
    subject = ExternalIdentityRef(identifier=identifier)
    if not subject.account_id:
        raise SpecError(f"cannot extract an account id from identifier {identifier}")
    return subject


def parse_subjects(raw_subjects: list[dict[str, Any]] | None) -> list[AccessSubject]:
    """Parse declared subjects into an ordered, duplicate-free list."""
    subjects: list[AccessSubject] = []
    for raw in raw_subjects or []:
        subject = parse_subject(raw)
        if subject not in subjects:
            subjects.append(subject)
    return subjects


def subjects_to_status(subjects: list[AccessSubject]) -> list[dict[str, Any]]:
    """Render subjects back into their declared form."""
    return [subject.to_dict() for subject in subjects]


def create_access_from_resource(
    spec: dict[str, Any] | None,
    meta: dict[str, Any],
    status: dict[str, Any],
    require_subjects: bool = True,
) -> SecretAccess:
    """Combine declared spec and observed backend identifiers.

    Args:
        spec: ExternalSecretAccess CRD spec (may be empty during deletion)
        meta: Resource metadata
        status: Observed status
        require_subjects: Reject an empty subject list

    Raises:
        SpecError: If the spec is invalid
    """
    spec = spec or {}
    subjects = parse_subjects(spec.get("subjects"))
    if require_subjects:
        if not spec.get("secretName"):
            raise SpecError("secretName is required")
        if not subjects:
            raise SpecError("at least one subject is required")

    return SecretAccess(
        namespace=meta.get("namespace", "default"),
        name=meta.get("name", ""),
        secret_name=spec.get("secretName", ""),
        subjects=subjects,
        backend_ids=dict(status.get("provider") or {}),
    )
