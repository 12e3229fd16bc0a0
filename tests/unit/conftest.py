"""Shared fixtures: in-memory Secrets Manager and IAM backends."""

from __future__ import annotations

import itertools
import json
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from secretsbeam_operator.services.aws.client import AWSProvider
from secretsbeam_operator.utils.rate_limit import TokenBucket

ACCOUNT_ID = "123456789012"
OIDC_PROVIDER_ARN = f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/oidc.eks.eu-west-1.amazonaws.com/id/ABC123"


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} raised by fake"}}, operation)


class FakeSecretsManager:
    """Enough of the Secrets Manager API for the provider."""

    def __init__(self) -> None:
        self.secrets: dict[str, dict[str, Any]] = {}
        self._suffixes = itertools.count()
        self.calls: list[str] = []

    def _find(self, secret_id: str, operation: str) -> dict[str, Any]:
        for secret in self.secrets.values():
            if secret_id in (secret["Name"], secret["ARN"]):
                return secret
        raise client_error("ResourceNotFoundException", operation)

    def create_secret(self, Name: str, SecretString: str, Tags: list[dict[str, str]] | None = None, **kwargs: Any) -> dict[str, Any]:
        self.calls.append("create_secret")
        if Name in self.secrets:
            raise client_error("ResourceExistsException", "CreateSecret")
        suffix = f"{next(self._suffixes):06d}"[-6:].replace("0", "a")
        arn = f"arn:aws:secretsmanager:eu-west-1:{ACCOUNT_ID}:secret:{Name}-{suffix}"
        self.secrets[Name] = {
            "Name": Name,
            "ARN": arn,
            "SecretString": SecretString,
            "Tags": list(Tags or []),
            "LastChangedDate": datetime.now(timezone.utc),
            "DeletedDate": None,
            "KmsKeyId": kwargs.get("KmsKeyId"),
        }
        return {"ARN": arn, "Name": Name, "VersionId": "v1"}

    def describe_secret(self, SecretId: str) -> dict[str, Any]:
        self.calls.append("describe_secret")
        secret = self._find(SecretId, "DescribeSecret")
        return {key: value for key, value in secret.items() if key != "SecretString" and value is not None}

    def put_secret_value(self, SecretId: str, SecretString: str) -> dict[str, Any]:
        self.calls.append("put_secret_value")
        secret = self._find(SecretId, "PutSecretValue")
        secret["SecretString"] = SecretString
        secret["LastChangedDate"] = datetime.now(timezone.utc)
        return {"ARN": secret["ARN"], "VersionId": "v-put"}

    def update_secret(self, SecretId: str, SecretString: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append("update_secret")
        secret = self._find(SecretId, "UpdateSecret")
        secret["SecretString"] = SecretString
        secret["LastChangedDate"] = datetime.now(timezone.utc)
        return {"ARN": secret["ARN"], "Name": secret["Name"], "VersionId": "v-update"}

    def restore_secret(self, SecretId: str) -> dict[str, Any]:
        self.calls.append("restore_secret")
        secret = self._find(SecretId, "RestoreSecret")
        secret["DeletedDate"] = None
        return {"ARN": secret["ARN"]}

    def tag_resource(self, SecretId: str, Tags: list[dict[str, str]]) -> None:
        self.calls.append("tag_resource")
        secret = self._find(SecretId, "TagResource")
        existing = {tag["Key"]: tag for tag in secret["Tags"]}
        existing.update({tag["Key"]: tag for tag in Tags})
        secret["Tags"] = list(existing.values())

    def delete_secret(self, SecretId: str, RecoveryWindowInDays: int | None = None, ForceDeleteWithoutRecovery: bool = False) -> dict[str, Any]:
        self.calls.append("delete_secret")
        secret = self._find(SecretId, "DeleteSecret")
        if ForceDeleteWithoutRecovery:
            del self.secrets[secret["Name"]]
            return {"ARN": secret["ARN"], "DeletionDate": datetime.now(timezone.utc)}
        if secret["DeletedDate"] is not None:
            raise client_error("InvalidRequestException", "DeleteSecret")
        secret["DeletedDate"] = datetime.now(timezone.utc) + timedelta(days=RecoveryWindowInDays or 30)
        return {"ARN": secret["ARN"], "DeletionDate": secret["DeletedDate"]}


class FakeIAM:
    """Enough of the IAM API for the provider, with the five-version cap."""

    MAX_VERSIONS = 5

    def __init__(self) -> None:
        self.policies: dict[str, dict[str, Any]] = {}
        self.roles: dict[str, dict[str, Any]] = {}
        self.attachments: set[tuple[str, str]] = set()
        self._clock = itertools.count()
        self.calls: list[str] = []
        self.fail_next: dict[str, str] = {}

    def _maybe_fail(self, operation: str) -> None:
        code = self.fail_next.pop(operation, None)
        if code:
            raise client_error(code, operation)

    def _policy(self, arn: str, operation: str) -> dict[str, Any]:
        policy = self.policies.get(arn)
        if policy is None:
            raise client_error("NoSuchEntity", operation)
        return policy

    def _version(self, document: str, default: bool) -> dict[str, Any]:
        tick = next(self._clock)
        return {
            "Document": json.loads(document),
            "IsDefaultVersion": default,
            "CreateDate": datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=tick),
        }

    def create_policy(self, PolicyName: str, PolicyDocument: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append("create_policy")
        self._maybe_fail("create_policy")
        arn = f"arn:aws:iam::{ACCOUNT_ID}:policy/{PolicyName}"
        if arn in self.policies:
            raise client_error("EntityAlreadyExists", "CreatePolicy")
        version = self._version(PolicyDocument, default=True)
        version["VersionId"] = "v1"
        self.policies[arn] = {"versions": [version], "next": 2}
        return {"Policy": {"Arn": arn, "PolicyName": PolicyName, "DefaultVersionId": "v1"}}

    def create_policy_version(self, PolicyArn: str, PolicyDocument: str, SetAsDefault: bool = False) -> dict[str, Any]:
        self.calls.append("create_policy_version")
        policy = self._policy(PolicyArn, "CreatePolicyVersion")
        if len(policy["versions"]) >= self.MAX_VERSIONS:
            raise client_error("LimitExceeded", "CreatePolicyVersion")
        version = self._version(PolicyDocument, default=SetAsDefault)
        version["VersionId"] = f"v{policy['next']}"
        policy["next"] += 1
        if SetAsDefault:
            for existing in policy["versions"]:
                existing["IsDefaultVersion"] = False
        policy["versions"].append(version)
        return {"PolicyVersion": {"VersionId": version["VersionId"]}}

    def list_policy_versions(self, PolicyArn: str) -> dict[str, Any]:
        self.calls.append("list_policy_versions")
        policy = self._policy(PolicyArn, "ListPolicyVersions")
        return {
            "Versions": [
                {key: v[key] for key in ("VersionId", "IsDefaultVersion", "CreateDate")}
                for v in policy["versions"]
            ]
        }

    def delete_policy_version(self, PolicyArn: str, VersionId: str) -> None:
        self.calls.append("delete_policy_version")
        policy = self._policy(PolicyArn, "DeletePolicyVersion")
        for version in policy["versions"]:
            if version["VersionId"] == VersionId:
                if version["IsDefaultVersion"]:
                    raise client_error("DeleteConflict", "DeletePolicyVersion")
                policy["versions"].remove(version)
                return
        raise client_error("NoSuchEntity", "DeletePolicyVersion")

    def delete_policy(self, PolicyArn: str) -> None:
        self.calls.append("delete_policy")
        policy = self._policy(PolicyArn, "DeletePolicy")
        if len(policy["versions"]) > 1:
            raise client_error("DeleteConflict", "DeletePolicy")
        if any(arn == PolicyArn for _, arn in self.attachments):
            raise client_error("DeleteConflict", "DeletePolicy")
        del self.policies[PolicyArn]

    def non_default_versions(self, arn: str) -> list[dict[str, Any]]:
        return [v for v in self.policies[arn]["versions"] if not v["IsDefaultVersion"]]

    def default_document(self, arn: str) -> dict[str, Any]:
        return next(v["Document"] for v in self.policies[arn]["versions"] if v["IsDefaultVersion"])

    def create_role(self, RoleName: str, AssumeRolePolicyDocument: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append("create_role")
        self._maybe_fail("create_role")
        if RoleName in self.roles:
            raise client_error("EntityAlreadyExists", "CreateRole")
        role = {
            "RoleName": RoleName,
            "Arn": f"arn:aws:iam::{ACCOUNT_ID}:role/{RoleName}",
            "AssumeRolePolicyDocument": json.loads(AssumeRolePolicyDocument),
        }
        self.roles[RoleName] = role
        return {"Role": dict(role)}

    def get_role(self, RoleName: str) -> dict[str, Any]:
        self.calls.append("get_role")
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", "GetRole")
        return {"Role": dict(self.roles[RoleName])}

    def update_assume_role_policy(self, RoleName: str, PolicyDocument: str) -> None:
        self.calls.append("update_assume_role_policy")
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", "UpdateAssumeRolePolicy")
        self.roles[RoleName]["AssumeRolePolicyDocument"] = json.loads(PolicyDocument)

    def attach_role_policy(self, RoleName: str, PolicyArn: str) -> None:
        self.calls.append("attach_role_policy")
        self._maybe_fail("attach_role_policy")
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", "AttachRolePolicy")
        self._policy(PolicyArn, "AttachRolePolicy")
        self.attachments.add((RoleName, PolicyArn))

    def detach_role_policy(self, RoleName: str, PolicyArn: str) -> None:
        self.calls.append("detach_role_policy")
        if (RoleName, PolicyArn) not in self.attachments:
            raise client_error("NoSuchEntity", "DetachRolePolicy")
        self.attachments.discard((RoleName, PolicyArn))

    def delete_role(self, RoleName: str) -> None:
        self.calls.append("delete_role")
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", "DeleteRole")
        if any(role == RoleName for role, _ in self.attachments):
            raise client_error("DeleteConflict", "DeleteRole")
        del self.roles[RoleName]


@pytest.fixture
def secretsmanager() -> FakeSecretsManager:
    return FakeSecretsManager()


@pytest.fixture
def iam() -> FakeIAM:
    return FakeIAM()


@pytest.fixture
def aws_provider(secretsmanager: FakeSecretsManager, iam: FakeIAM) -> AWSProvider:
    """AWSProvider wired to the in-memory backends."""
    provider = AWSProvider(bucket=TokenBucket(rate=1000.0, capacity=1000))
    provider.init({"oidcProviderArn": OIDC_PROVIDER_ARN, "region": "eu-west-1"})
    provider.secrets_client = secretsmanager
    provider.iam_client = iam
    return provider


@pytest.fixture(autouse=True)
def no_k8s_events():
    """Handlers emit events through kopf; keep them off the network."""
    with patch("secretsbeam_operator.utils.events.kopf.event") as mock_event:
        yield mock_event
