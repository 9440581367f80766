"""Unit tests for BackupPolicy and RecoveryRequest spec validation."""

import pytest
from marshmallow import ValidationError

from stasher.resources.backup_policy import BackupPolicy
from stasher.resources.recovery_request import RecoveryRequest
from stasher.types.models import BackupPolicySpec, RecoveryRequestSpec
from stasher.types.schemas import BackupPolicySpecSchema, RecoveryRequestSpecSchema
from stasher.utils.errors import InvalidResourceError


class TestBackupPolicySpecSchema:
    def test_valid_spec_loads_models(self, policy_body):
        spec = BackupPolicySpecSchema().load(policy_body["spec"])
        assert isinstance(spec, BackupPolicySpec)
        assert spec.selector.match_labels == {"app": "db"}
        assert spec.file_groups[0].path == "/source/data"
        assert spec.file_groups[0].retention_policy.keep_last == 5
        assert spec.backend.local.path == "/repo"
        assert spec.backend.local.volume_source == {"emptyDir": {}}
        assert spec.backend.configured_kinds() == ["local"]
        assert spec.volume_mounts[0].mount_path == "/source/data"

    def test_empty_selector_is_rejected(self, policy_body):
        policy_body["spec"]["selector"] = {}
        with pytest.raises(ValidationError) as exc:
            BackupPolicySpecSchema().load(policy_body["spec"])
        assert "selector" in exc.value.messages

    def test_unknown_operator_is_rejected(self, policy_body):
        policy_body["spec"]["selector"] = {
            "matchExpressions": [{"key": "app", "operator": "Like", "values": ["db"]}]
        }
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_exists_operator_without_values(self, policy_body):
        policy_body["spec"]["selector"] = {
            "matchExpressions": [{"key": "app", "operator": "Exists"}]
        }
        spec = BackupPolicySpecSchema().load(policy_body["spec"])
        assert spec.selector.match_expressions[0].operator == "Exists"

    def test_in_operator_needs_values(self, policy_body):
        policy_body["spec"]["selector"] = {
            "matchExpressions": [{"key": "app", "operator": "In", "values": []}]
        }
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_file_groups_required(self, policy_body):
        policy_body["spec"]["fileGroups"] = []
        with pytest.raises(ValidationError) as exc:
            BackupPolicySpecSchema().load(policy_body["spec"])
        assert "fileGroups" in exc.value.messages

    def test_relative_file_group_path(self, policy_body):
        policy_body["spec"]["fileGroups"] = [{"path": "data"}]
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_two_backends_are_rejected(self, policy_body):
        policy_body["spec"]["backend"]["s3"] = {"bucket": "b", "endpoint": "s3.amazonaws.com"}
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_no_backend_is_rejected(self, policy_body):
        policy_body["spec"]["backend"] = {"storageSecretName": "s"}
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_remote_backend(self, policy_body):
        policy_body["spec"]["backend"] = {
            "storageSecretName": "s",
            "gcs": {"bucket": "backups", "prefix": "db"},
        }
        spec = BackupPolicySpecSchema().load(policy_body["spec"])
        assert spec.backend.local is None
        assert spec.backend.gcs.bucket == "backups"
        assert spec.backend.configured_kinds() == ["gcs"]

    def test_storage_secret_required(self, policy_body):
        del policy_body["spec"]["backend"]["storageSecretName"]
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_local_volume_source_needs_one_source(self, policy_body):
        policy_body["spec"]["backend"]["local"]["volumeSource"] = {
            "emptyDir": {},
            "hostPath": {"path": "/x"},
        }
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_local_volume_source_must_be_known(self, policy_body):
        policy_body["spec"]["backend"]["local"]["volumeSource"] = {"madeUp": {}}
        with pytest.raises(ValidationError) as exc:
            BackupPolicySpecSchema().load(policy_body["spec"])
        assert "madeUp" in str(exc.value)

    def test_blank_schedule(self, policy_body):
        policy_body["spec"]["schedule"] = "  "
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])

    def test_bad_quantity(self, policy_body):
        policy_body["spec"]["resources"] = {"limits": {"memory": "lots"}}
        with pytest.raises(ValidationError):
            BackupPolicySpecSchema().load(policy_body["spec"])


class TestRecoveryRequestSpecSchema:
    def test_valid_spec(self, request_body):
        spec = RecoveryRequestSpecSchema().load(request_body["spec"])
        assert isinstance(spec, RecoveryRequestSpec)
        assert spec.policy == "p1"
        assert spec.node_name == "node-1"
        assert spec.workload is None
        assert spec.volumes[0]["name"] == "data"

    def test_workload_reference(self, request_body):
        request_body["spec"]["workload"] = {"kind": "StatefulSet", "name": "db"}
        spec = RecoveryRequestSpecSchema().load(request_body["spec"])
        assert spec.workload.kind == "StatefulSet"
        assert spec.workload.name == "db"

    def test_policy_required(self, request_body):
        request_body["spec"]["policy"] = ""
        with pytest.raises(ValidationError):
            RecoveryRequestSpecSchema().load(request_body["spec"])

    def test_volumes_required(self, request_body):
        request_body["spec"]["volumes"] = []
        with pytest.raises(ValidationError):
            RecoveryRequestSpecSchema().load(request_body["spec"])

    def test_volume_needs_name(self, request_body):
        request_body["spec"]["volumes"] = [{"emptyDir": {}}]
        with pytest.raises(ValidationError):
            RecoveryRequestSpecSchema().load(request_body["spec"])

    def test_volume_source_must_be_known(self, request_body):
        request_body["spec"]["volumes"] = [{"name": "data", "hostPathh": {"path": "/x"}}]
        with pytest.raises(ValidationError) as exc:
            RecoveryRequestSpecSchema().load(request_body["spec"])
        assert "hostPathh" in str(exc.value)


class TestCustomResourceValidate:
    def test_invalid_resource_error(self, request_body):
        request_body["spec"]["volumes"] = []
        request = RecoveryRequest(request_body)
        with pytest.raises(InvalidResourceError) as exc:
            request.validate()
        assert exc.value.kind == "RecoveryRequest"
        assert exc.value.key == "default/r1"
        assert "volumes" in str(exc.value)

    def test_validate_caches_model(self, policy_body):
        policy = BackupPolicy(policy_body)
        assert policy.validate() is policy.spec_model

    def test_last_applied_round_trip(self, policy_body):
        policy_body["metadata"]["annotations"] = {
            BackupPolicy.TAG_ANNOTATION: "canary",
            "unrelated": "x",
        }
        policy = BackupPolicy(policy_body)
        recorded = BackupPolicy.from_last_applied(policy.last_applied())
        assert recorded.name == "p1"
        assert recorded.namespace == "default"
        assert recorded.image_tag == "canary"
        assert "unrelated" not in recorded.annotations
        assert recorded.spec_equal(policy)

    def test_from_last_applied_empty(self):
        assert BackupPolicy.from_last_applied(None) is None
        assert BackupPolicy.from_last_applied("") is None
