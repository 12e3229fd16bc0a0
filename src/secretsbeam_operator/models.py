"""Typed views of the declared resources the reconcilers act on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass
class RandomSpec:
    """Generated value: ``size`` repetitions of ``regex``, optionally rotated."""

    size: int
    regex: str
    rotate: str | None = None


@dataclass
class SecretSpec:
    """Desired state of an ExternalSecret."""

    name: str
    provider: str
    secret_string: str | None = None
    external: bool = False
    random: RandomSpec | None = None
    overwrite: bool = False
    recovery_window: int = 0
    provider_spec: dict[str, str] = field(default_factory=dict)

    @property
    def value_source(self) -> str:
        if self.external:
            return "external"
        if self.random is not None:
            return "random"
        return "literal"


@dataclass
class Secret:
    """An ExternalSecret as seen by a provider.

    ``backend_ids`` is the ``status.provider`` map; providers record their
    handles into it.
    """

    namespace: str
    name: str
    spec: SecretSpec
    backend_ids: dict[str, str] = field(default_factory=dict)

    @property
    def owner(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ServiceAccountRef:
    """In-cluster identity."""

    namespace: str
    name: str

    @property
    def subject_claim(self) -> str:
        return f"system:serviceaccount:{self.namespace}:{self.name}"

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {"serviceAccount": {"namespace": self.namespace, "name": self.name}}


@dataclass(frozen=True)
class ExternalIdentityRef:
    """Foreign-account identity, e.g. ``arn:aws:iam::111122223333:user/alice``."""

    identifier: str

    @property
    def account_id(self) -> str:
        parts = self.identifier.split(":")
        if len(parts) < 6 or not parts[4]:
            return ""
        return parts[4]

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {"provider": {"identifier": self.identifier}}


AccessSubject = Union[ServiceAccountRef, ExternalIdentityRef]


@dataclass
class SecretAccess:
    """An ExternalSecretAccess as seen by a provider.

    ``backend_ids`` is the ``status.provider`` map; it must hold everything
    needed to revoke the grant.
    """

    namespace: str
    name: str
    secret_name: str = ""
    subjects: list[AccessSubject] = field(default_factory=list)
    backend_ids: dict[str, str] = field(default_factory=dict)
