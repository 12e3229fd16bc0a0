"""Tests for the secret and access builders."""

from __future__ import annotations

import pytest

from secretsbeam_operator.builders.access import create_access_from_resource, parse_subject, parse_subjects
from secretsbeam_operator.builders.secret import (
    create_secret_from_resource,
    create_secret_reference,
    create_secret_spec_from_spec,
)
from secretsbeam_operator.models import ExternalIdentityRef, ServiceAccountRef
from secretsbeam_operator.utils.errors import SpecError

META = {"name": "db-password", "namespace": "team-a"}


class TestSecretSpec:
    """Test cases for create_secret_spec_from_spec."""

    def test_literal(self):
        spec = create_secret_spec_from_spec({"provider": "aws-main", "secretString": "s3cr3t"}, META)

        assert spec.name == "db-password"
        assert spec.value_source == "literal"
        assert spec.recovery_window == 0

    def test_external_name_overrides_resource_name(self):
        spec = create_secret_spec_from_spec(
            {"provider": "aws-main", "external": True, "externalName": "prod/db"}, META
        )

        assert spec.name == "prod/db"
        assert spec.value_source == "external"

    def test_random(self):
        spec = create_secret_spec_from_spec(
            {"provider": "aws-main", "random": {"size": "16", "regex": "[a-z]", "rotate": "30d"}}, META
        )

        assert spec.value_source == "random"
        assert spec.random.size == 16
        assert spec.random.rotate == "30d"

    def test_empty_secret_string_is_a_source(self):
        spec = create_secret_spec_from_spec({"provider": "aws-main", "secretString": ""}, META)

        assert spec.value_source == "literal"

    def test_provider_spec_is_stringified(self):
        spec = create_secret_spec_from_spec(
            {"provider": "aws-main", "secretString": "x", "providerSpec": {"kmsKeyId": "alias/app", "n": 1}}, META
        )

        assert spec.provider_spec == {"kmsKeyId": "alias/app", "n": "1"}

    @pytest.mark.parametrize(
        "raw",
        [
            {"secretString": "x"},
            {"provider": "aws-main"},
            {"provider": "aws-main", "secretString": "x", "external": True},
            {"provider": "aws-main", "random": {"size": 4}},
            {"provider": "aws-main", "random": {"size": "many", "regex": "[a-z]"}},
            {"provider": "aws-main", "secretString": "x", "recoveryWindow": -1},
            {"provider": "aws-main", "secretString": "x", "recoveryWindow": 3},
            {"provider": "aws-main", "secretString": "x", "recoveryWindow": 31},
            {"provider": "aws-main", "secretString": "x", "recoveryWindow": "a week"},
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(SpecError):
            create_secret_spec_from_spec(raw, META)

    def test_backend_ids_come_from_status(self):
        secret = create_secret_from_resource(
            {"provider": "aws-main", "secretString": "x"}, META, {"provider": {"SecretArn": "arn:x"}}
        )

        assert secret.backend_ids == {"SecretArn": "arn:x"}
        assert secret.owner == "team-a/db-password"


class TestSecretReference:
    """Test cases for create_secret_reference."""

    def test_ignores_invalid_value_source(self):
        secret = create_secret_reference(
            {"provider": "aws-main", "secretString": "x", "external": True, "recoveryWindow": 7}, META, {}
        )

        assert secret.spec.provider == "aws-main"
        assert secret.spec.recovery_window == 7

    @pytest.mark.parametrize("window, expected", [(0, 0), (-2, 0), (3, 7), (12, 12), (90, 30), ("soon", 0)])
    def test_recovery_window_clamped_for_deletion(self, window, expected):
        secret = create_secret_reference({"provider": "aws-main", "recoveryWindow": window}, META, {})

        assert secret.spec.recovery_window == expected

    def test_prefers_recorded_name(self):
        secret = create_secret_reference(
            {"provider": "aws-main", "externalName": "renamed"}, META, {"name": "original"}
        )

        assert secret.spec.name == "original"

    def test_requires_provider(self):
        with pytest.raises(SpecError):
            create_secret_reference({}, META, {})


class TestAccessBuilder:
    """Test cases for the access builder."""

    def test_parse_service_account(self):
        subject = parse_subject({"serviceAccount": {"namespace": "team-a", "name": "api"}})

        assert subject == ServiceAccountRef("team-a", "api")
        assert subject.subject_claim == "system:serviceaccount:team-a:api"

    def test_parse_external_identity(self):
        subject = parse_subject({"provider": {"identifier": "arn:aws:iam::111111111111:user/alice"}})

        assert isinstance(subject, ExternalIdentityRef)
        assert subject.account_id == "111111111111"

    @pytest.mark.parametrize(
        "raw",
        [
            {},
            {"serviceAccount": {"namespace": "team-a"}},
            {"provider": {"identifier": "alice"}},
            {"serviceAccount": {"namespace": "a", "name": "b"}, "provider": {"identifier": "arn:aws:iam::1:user/x"}},
        ],
    )
    def test_invalid_subject(self, raw):
        with pytest.raises(SpecError):
            parse_subject(raw)

    def test_duplicates_collapsed_in_order(self):
        subjects = parse_subjects([
            {"serviceAccount": {"namespace": "team-a", "name": "api"}},
            {"serviceAccount": {"namespace": "team-a", "name": "worker"}},
            {"serviceAccount": {"namespace": "team-a", "name": "api"}},
        ])

        assert [s.name for s in subjects] == ["api", "worker"]

    def test_deletion_tolerates_empty_spec(self):
        access = create_access_from_resource(None, META, {"provider": {"RoleName": "r"}}, require_subjects=False)

        assert access.subjects == []
        assert access.backend_ids == {"RoleName": "r"}

    def test_requires_secret_name(self):
        with pytest.raises(SpecError):
            create_access_from_resource(
                {"subjects": [{"serviceAccount": {"namespace": "a", "name": "b"}}]}, META, {}
            )
