"""IAM policy documents granting read access to a Secrets Manager secret."""

from __future__ import annotations

import re
from typing import Any

from ...models import AccessSubject, ExternalIdentityRef, ServiceAccountRef
from ...utils.errors import ConfigError, SpecError

POLICY_VERSION = "2012-10-17"

READ_SECRET_ACTIONS = ["secretsmanager:GetSecretValue"]

# Secrets Manager appends "-" and six random characters to every secret ARN
_ARN_SUFFIX_LENGTH = 6
_ARN_SUFFIX = re.compile(rf"-[A-Za-z0-9]{{{_ARN_SUFFIX_LENGTH}}}$")


def oidc_issuer_from_provider_arn(oidc_provider_arn: str) -> str:
    """``arn:aws:iam::1:oidc-provider/oidc.eks.../id/X`` -> ``oidc.eks.../id/X``.

    Raises:
        ConfigError: If the ARN has no issuer part
    """
    parts = oidc_provider_arn.split("/")
    if len(parts) < 2 or not oidc_provider_arn.startswith("arn:") or not all(parts[1:]):
        raise ConfigError(f"invalid OIDC provider ARN {oidc_provider_arn!r}")
    return "/".join(parts[1:])


def account_id_from_arn(arn: str) -> str:
    """Return the account field of an ARN, or an empty string."""
    parts = arn.split(":")
    return parts[4] if len(parts) > 5 else ""


def secret_resource_pattern(secret_arn: str) -> str:
    """Match exactly one secret, tolerating its random ARN suffix.

    Only the known six-character suffix becomes single-character wildcards;
    ARNs without that suffix are returned unchanged.
    """
    if _ARN_SUFFIX.search(secret_arn):
        return secret_arn[:-_ARN_SUFFIX_LENGTH] + "?" * _ARN_SUFFIX_LENGTH
    return secret_arn


def build_read_policy(secret_arn: str) -> dict[str, Any]:
    """Permission document allowing read of a single secret."""
    if not secret_arn:
        raise SpecError("target secret has no recorded ARN")
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Action": list(READ_SECRET_ACTIONS),
                "Resource": secret_resource_pattern(secret_arn),
            }
        ],
    }


def build_trust_policy(subjects: list[AccessSubject], oidc_provider_arn: str | None) -> dict[str, Any]:
    """Trust document admitting every declared subject.

    Service accounts share one web-identity statement. Foreign identities
    get one statement per account, restricted to the declared ARNs.

    Raises:
        ConfigError: If service accounts are requested without an OIDC provider
        SpecError: If there are no subjects or an identifier has no account id
    """
    if not subjects:
        raise SpecError("at least one subject is required")

    claims: list[str] = []
    accounts: dict[str, list[str]] = {}
    for subject in subjects:
        if isinstance(subject, ServiceAccountRef):
            if subject.subject_claim not in claims:
                claims.append(subject.subject_claim)
        elif isinstance(subject, ExternalIdentityRef):
            account_id = subject.account_id
            if not account_id:
                raise SpecError(f"cannot extract an account id from identifier {subject.identifier}")
            identifiers = accounts.setdefault(account_id, [])
            if subject.identifier not in identifiers:
                identifiers.append(subject.identifier)

    statements: list[dict[str, Any]] = []
    if claims:
        if not oidc_provider_arn:
            raise ConfigError("oidcProviderArn must be configured to grant access to service accounts")
        issuer = oidc_issuer_from_provider_arn(oidc_provider_arn)
        statements.append(
            {
                "Effect": "Allow",
                "Principal": {"Federated": oidc_provider_arn},
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Condition": {"StringEquals": {f"{issuer}:sub": claims}},
            }
        )

    for account_id, identifiers in accounts.items():
        statements.append(
            {
                "Effect": "Allow",
                "Principal": {"AWS": f"arn:aws:iam::{account_id}:root"},
                "Action": "sts:AssumeRole",
                "Condition": {"ArnEquals": {"aws:PrincipalArn": identifiers}},
            }
        )

    return {"Version": POLICY_VERSION, "Statement": statements}
