"""AWS Secrets Manager and IAM provider implementation."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from datetime import datetime
from typing import Any, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ... import metrics
from ...constants import PROVIDER_AWS, TAG_MANAGED_BY, TAG_OWNER
from ...models import Secret, SecretAccess
from ...utils.context import check_deadline
from ...utils.errors import ConfigError, ControllerError, NotFoundError, ProviderError
from ...utils.rate_limit import TokenBucket, backend_bucket
from .policies import (
    account_id_from_arn,
    build_read_policy,
    build_trust_policy,
    oidc_issuer_from_provider_arn,
)

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"ResourceNotFoundException", "NoSuchEntity", "NoSuchEntityException"}

# Non-default versions left behind by a routine update
UPDATE_RETAINED_VERSIONS = 1

MAX_ROLE_NAME_LENGTH = 64

_CONNECT_TIMEOUT = float(os.getenv("AWS_CONNECT_TIMEOUT_SECONDS", "5"))
_READ_TIMEOUT = float(os.getenv("AWS_READ_TIMEOUT_SECONDS", "30"))


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class AWSProvider:
    """Secrets Manager for values, IAM roles and managed policies for access."""

    provider_type = PROVIDER_AWS

    def __init__(self, bucket: TokenBucket | None = None) -> None:
        self.bucket = bucket or backend_bucket
        self.region: str | None = None
        self.oidc_provider_arn: str | None = None
        self.role_name_prefix = "secretsbeam"
        self.secrets_client: Any = None
        self.iam_client: Any = None

    def init(self, config: dict[str, str]) -> None:
        """Configure clients from an ExternalSecretProvider config map.

        Recognised keys: oidcProviderArn, region, endpointUrl, iamEndpointUrl,
        roleNamePrefix, accessKeyId, secretAccessKey, sessionToken.
        Without explicit keys the default boto3 credential chain is used.

        Raises:
            ConfigError: If the configuration is malformed
        """
        oidc_provider_arn = config.get("oidcProviderArn") or None
        if oidc_provider_arn:
            # Validates the ARN shape once, at registration time
            oidc_issuer_from_provider_arn(oidc_provider_arn)

        access_key = config.get("accessKeyId")
        secret_key = config.get("secretAccessKey")
        if bool(access_key) != bool(secret_key):
            raise ConfigError("accessKeyId and secretAccessKey must be set together")

        self.oidc_provider_arn = oidc_provider_arn
        self.region = config.get("region") or None
        self.role_name_prefix = config.get("roleNamePrefix") or "secretsbeam"

        client_config = Config(
            connect_timeout=_CONNECT_TIMEOUT,
            read_timeout=_READ_TIMEOUT,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        credentials = {
            "aws_access_key_id": access_key or None,
            "aws_secret_access_key": secret_key or None,
            "aws_session_token": config.get("sessionToken") or None,
        }

        try:
            self.secrets_client = boto3.client(
                "secretsmanager",
                region_name=self.region,
                endpoint_url=config.get("endpointUrl") or None,
                config=client_config,
                **credentials,
            )
            self.iam_client = boto3.client(
                "iam",
                region_name=self.region,
                endpoint_url=config.get("iamEndpointUrl") or None,
                config=client_config,
                **credentials,
            )
        except BotoCoreError as e:
            raise ConfigError(f"unable to configure AWS clients: {e}") from e

    def _call(self, api_type: str, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        """Run one backend call under the deadline and the shared rate limit."""
        check_deadline(operation)
        self.bucket.acquire()

        start_time = time.time()
        try:
            result = fn(**kwargs)
            metrics.api_call_total.labels(api_type=api_type, operation=operation, result="success").inc()
            return result
        except ClientError as e:
            code = _error_code(e)
            if code in NOT_FOUND_CODES:
                metrics.api_call_total.labels(api_type=api_type, operation=operation, result="not_found").inc()
                raise NotFoundError(f"{operation}: {e}", code=code) from e
            metrics.api_call_total.labels(api_type=api_type, operation=operation, result="error").inc()
            raise ProviderError(f"{operation}: {e}", code=code) from e
        except BotoCoreError as e:
            metrics.api_call_total.labels(api_type=api_type, operation=operation, result="error").inc()
            raise ProviderError(f"{operation}: {e}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type=api_type, operation=operation).observe(duration)

    def _ignore_not_found(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return self._call("iam", operation, fn, **kwargs)
        except NotFoundError:
            logger.info(f"{operation}: target already absent, ignoring")
            return None

    # Secrets

    def _owner_tags(self, owner: str) -> list[dict[str, str]]:
        return [
            {"Key": TAG_OWNER, "Value": owner},
            {"Key": TAG_MANAGED_BY, "Value": "secretsbeam-operator"},
        ]

    def create_secret(self, secret: Secret, value: str) -> None:
        """Create a secret, adopting a same-named one when allowed."""
        params: dict[str, Any] = {
            "Name": secret.spec.name,
            "SecretString": value,
            "Tags": self._owner_tags(secret.owner),
        }
        kms_key = secret.spec.provider_spec.get("KmsKeyArn")
        if kms_key:
            params["KmsKeyId"] = kms_key
        description = secret.spec.provider_spec.get("Description")
        if description:
            params["Description"] = description

        try:
            response = self._call("secretsmanager", "create_secret", self.secrets_client.create_secret, **params)
            logger.info(f"Created secret {secret.spec.name}")
        except ProviderError as e:
            if e.code != "ResourceExistsException":
                raise
            response = self._adopt_existing_secret(secret, value)

        secret.backend_ids["SecretArn"] = response["ARN"]
        if response.get("VersionId"):
            secret.backend_ids["VersionId"] = response["VersionId"]
        if kms_key:
            secret.backend_ids["KmsKeyArn"] = kms_key

    def _adopt_existing_secret(self, secret: Secret, value: str) -> dict[str, Any]:
        """Take over a secret that already exists under the declared name.

        Secrets tagged with this resource as owner are left over from an
        earlier attempt and are always adopted; others only with overwrite.
        """
        described = self._call(
            "secretsmanager", "describe_secret", self.secrets_client.describe_secret, SecretId=secret.spec.name
        )
        tags = {tag["Key"]: tag["Value"] for tag in described.get("Tags", [])}
        owned = tags.get(TAG_OWNER) == secret.owner
        if not owned and not secret.spec.overwrite:
            raise ProviderError(
                f"secret {secret.spec.name} already exists and is not owned by {secret.owner}; "
                "set overwrite to adopt it",
                code="ResourceExistsException",
            )

        arn = described["ARN"]
        if described.get("DeletedDate"):
            self._call("secretsmanager", "restore_secret", self.secrets_client.restore_secret, SecretId=arn)
            logger.info(f"Restored secret {secret.spec.name} scheduled for deletion")

        # The content of an external secret belongs to whoever manages it
        response: dict[str, Any] = {}
        if not secret.spec.external:
            response = self._call(
                "secretsmanager",
                "put_secret_value",
                self.secrets_client.put_secret_value,
                SecretId=arn,
                SecretString=value,
            )
        if not owned:
            self._call(
                "secretsmanager",
                "tag_resource",
                self.secrets_client.tag_resource,
                SecretId=arn,
                Tags=self._owner_tags(secret.owner),
            )
        logger.info(f"Adopted existing secret {secret.spec.name}")
        return {"ARN": arn, "VersionId": response.get("VersionId")}

    def update_secret(self, secret: Secret, value: str) -> None:
        params: dict[str, Any] = {
            "SecretId": secret.backend_ids.get("SecretArn") or secret.spec.name,
            "SecretString": value,
        }
        kms_key = secret.spec.provider_spec.get("KmsKeyArn")
        if kms_key:
            params["KmsKeyId"] = kms_key

        response = self._call("secretsmanager", "update_secret", self.secrets_client.update_secret, **params)
        secret.backend_ids["SecretArn"] = response["ARN"]
        if response.get("VersionId"):
            secret.backend_ids["VersionId"] = response["VersionId"]
        if kms_key:
            secret.backend_ids["KmsKeyArn"] = kms_key
        logger.info(f"Updated secret {secret.spec.name}")

    def delete_secret(self, secret: Secret) -> datetime | None:
        """Delete a secret, immediately or after its recovery window.

        Returns:
            The purge date when a recovery window applies
        """
        secret_id = secret.backend_ids.get("SecretArn") or secret.spec.name
        params: dict[str, Any] = {"SecretId": secret_id}
        if secret.spec.recovery_window > 0:
            params["RecoveryWindowInDays"] = secret.spec.recovery_window
        else:
            params["ForceDeleteWithoutRecovery"] = True

        try:
            response = self._call("secretsmanager", "delete_secret", self.secrets_client.delete_secret, **params)
        except NotFoundError:
            logger.info(f"Secret {secret.spec.name} already deleted")
            return None
        except ProviderError as e:
            if e.code != "InvalidRequestException":
                raise
            # Raised when the secret is already scheduled for deletion
            described = self._call(
                "secretsmanager", "describe_secret", self.secrets_client.describe_secret, SecretId=secret_id
            )
            if not described.get("DeletedDate"):
                raise
            return described["DeletedDate"]

        logger.info(f"Deleted secret {secret.spec.name}")
        if secret.spec.recovery_window > 0:
            return response.get("DeletionDate")
        return None

    def get_last_changed_date(self, secret: Secret) -> datetime | None:
        described = self._call(
            "secretsmanager",
            "describe_secret",
            self.secrets_client.describe_secret,
            SecretId=secret.backend_ids.get("SecretArn") or secret.spec.name,
        )
        return described.get("LastChangedDate")

    # Access

    def role_name(self, access: SecretAccess) -> str:
        """Deterministic name shared by the grant's role and policy."""
        name = f"{self.role_name_prefix}-{access.namespace}-{access.name}"
        if len(name) <= MAX_ROLE_NAME_LENGTH:
            return name
        digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
        return f"{name[:MAX_ROLE_NAME_LENGTH - 9]}-{digest}"

    def _secret_arn(self, secret: Secret) -> str:
        secret_arn = secret.backend_ids.get("SecretArn")
        if not secret_arn:
            raise ControllerError(f"secret {secret.owner} has no recorded ARN")
        return secret_arn

    def create_access(self, secret: Secret, access: SecretAccess) -> None:
        """Provision policy and role, resuming from recorded handles.

        Each handle is written to ``access.backend_ids`` as soon as it exists.
        """
        ids = access.backend_ids
        secret_arn = self._secret_arn(secret)
        read_policy = build_read_policy(secret_arn)
        trust_policy = build_trust_policy(access.subjects, self.oidc_provider_arn)
        name = self.role_name(access)

        if not ids.get("PolicyArn"):
            ids["PolicyArn"] = self._create_policy(name, read_policy, secret_arn, access)
        else:
            # Left over from an earlier attempt; the target may have changed since
            self.publish_policy_version(ids["PolicyArn"], read_policy)
        ids["SecretArn"] = secret_arn

        if not ids.get("RoleName"):
            role = self._create_role(name, trust_policy, access)
            ids["RoleName"] = role["RoleName"]
            ids["RoleArn"] = role["Arn"]
            ids["ServiceAccountAnnotation"] = f"eks.amazonaws.com/role-arn={role['Arn']}"
        else:
            self._replace_trust_policy(ids["RoleName"], trust_policy)

        self._call(
            "iam",
            "attach_role_policy",
            self.iam_client.attach_role_policy,
            RoleName=ids["RoleName"],
            PolicyArn=ids["PolicyArn"],
        )
        logger.info(f"Attached policy {ids['PolicyArn']} to role {ids['RoleName']}")

    def _create_policy(
        self,
        name: str,
        document: dict[str, Any],
        secret_arn: str,
        access: SecretAccess,
    ) -> str:
        try:
            response = self._call(
                "iam",
                "create_policy",
                self.iam_client.create_policy,
                PolicyName=name,
                PolicyDocument=json.dumps(document),
                Description=f"Read access to {secret_arn} for {access.namespace}/{access.name}",
                Tags=self._owner_tags(f"{access.namespace}/{access.name}"),
            )
        except ProviderError as e:
            if e.code != "EntityAlreadyExists":
                raise
            account_id = account_id_from_arn(secret_arn)
            if not account_id:
                raise
            partition = secret_arn.split(":")[1]
            policy_arn = f"arn:{partition}:iam::{account_id}:policy/{name}"
            logger.info(f"Policy {name} already exists, publishing current document to {policy_arn}")
            self.publish_policy_version(policy_arn, document)
            return policy_arn

        policy_arn = response["Policy"]["Arn"]
        logger.info(f"Created policy {policy_arn}")
        return policy_arn

    def _create_role(self, name: str, trust_policy: dict[str, Any], access: SecretAccess) -> dict[str, Any]:
        try:
            response = self._call(
                "iam",
                "create_role",
                self.iam_client.create_role,
                RoleName=name,
                AssumeRolePolicyDocument=json.dumps(trust_policy),
                Description=f"Secret access grant {access.namespace}/{access.name}",
                Tags=self._owner_tags(f"{access.namespace}/{access.name}"),
            )
        except ProviderError as e:
            if e.code != "EntityAlreadyExists":
                raise
            logger.info(f"Role {name} already exists, replacing its trust policy")
            response = self._call("iam", "get_role", self.iam_client.get_role, RoleName=name)
            self._replace_trust_policy(name, trust_policy)
            return response["Role"]

        logger.info(f"Created role {response['Role']['Arn']}")
        return response["Role"]

    def _replace_trust_policy(self, role_name: str, trust_policy: dict[str, Any]) -> None:
        self._call(
            "iam",
            "update_assume_role_policy",
            self.iam_client.update_assume_role_policy,
            RoleName=role_name,
            PolicyDocument=json.dumps(trust_policy),
        )

    def update_access(self, secret: Secret, access: SecretAccess) -> None:
        ids = access.backend_ids
        policy_arn = ids.get("PolicyArn")
        role_name = ids.get("RoleName")
        if not policy_arn or not role_name:
            raise ControllerError("access grant has no recorded policy or role")

        secret_arn = self._secret_arn(secret)
        read_policy = build_read_policy(secret_arn)
        trust_policy = build_trust_policy(access.subjects, self.oidc_provider_arn)

        self.publish_policy_version(policy_arn, read_policy)
        ids["SecretArn"] = secret_arn

        self._replace_trust_policy(role_name, trust_policy)
        self._call(
            "iam",
            "attach_role_policy",
            self.iam_client.attach_role_policy,
            RoleName=role_name,
            PolicyArn=policy_arn,
        )
        logger.info(f"Updated policy {policy_arn} and trust policy of role {role_name}")

    def delete_access(self, access: SecretAccess) -> None:
        """Detach, prune, delete policy, delete role; absent objects are skipped."""
        ids = access.backend_ids
        policy_arn = ids.get("PolicyArn")
        role_name = ids.get("RoleName")

        if policy_arn and role_name:
            self._ignore_not_found(
                "detach_role_policy",
                self.iam_client.detach_role_policy,
                RoleName=role_name,
                PolicyArn=policy_arn,
            )
        if policy_arn:
            try:
                self.prune_policy_versions(policy_arn, keep=0)
            except NotFoundError:
                logger.info(f"Policy {policy_arn} already absent")
            self._ignore_not_found("delete_policy", self.iam_client.delete_policy, PolicyArn=policy_arn)
        if role_name:
            self._ignore_not_found("delete_role", self.iam_client.delete_role, RoleName=role_name)
        logger.info(f"Revoked access {access.namespace}/{access.name}")

    # Policy versions

    def publish_policy_version(self, policy_arn: str, document: dict[str, Any]) -> None:
        """Make ``document`` the default version, keeping version pressure bounded."""
        self.prune_policy_versions(policy_arn, keep=UPDATE_RETAINED_VERSIONS)
        self._call(
            "iam",
            "create_policy_version",
            self.iam_client.create_policy_version,
            PolicyArn=policy_arn,
            PolicyDocument=json.dumps(document),
            SetAsDefault=True,
        )
        self.prune_policy_versions(policy_arn, keep=UPDATE_RETAINED_VERSIONS)

    def prune_policy_versions(self, policy_arn: str, keep: int) -> int:
        """Delete the oldest non-default versions until at most ``keep`` remain.

        Versions are re-listed on every call since other writers may have
        changed them. The default version is never deleted.

        Returns:
            Number of versions deleted
        """
        response = self._call(
            "iam", "list_policy_versions", self.iam_client.list_policy_versions, PolicyArn=policy_arn
        )
        candidates = sorted(
            (v for v in response.get("Versions", []) if not v.get("IsDefaultVersion")),
            key=lambda v: v["CreateDate"],
        )

        deleted = 0
        for version in candidates[: max(len(candidates) - keep, 0)]:
            try:
                self._call(
                    "iam",
                    "delete_policy_version",
                    self.iam_client.delete_policy_version,
                    PolicyArn=policy_arn,
                    VersionId=version["VersionId"],
                )
            except NotFoundError:
                continue
            deleted += 1

        if deleted:
            metrics.policy_versions_pruned_total.labels(provider=self.provider_type).inc(deleted)
            logger.info(f"Deleted {deleted} old versions of policy {policy_arn}")
        return deleted
