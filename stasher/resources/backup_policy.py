from typing import Any, Dict, Optional

from stasher.resources.custom import CustomResource
from stasher.types.models import BackupPolicySpec
from stasher.types.schemas import BackupPolicySpecSchema
from stasher.utils.helpers import canonicalize_dict, decode_json
from stasher.utils.selectors import selector_matches


class BackupPolicy(CustomResource[BackupPolicySpec]):
    """BackupPolicy custom resource."""

    KIND = "BackupPolicy"
    PLURAL_NAME = "backuppolicies"
    INVALID_REASON = "InvalidBackupPolicy"
    spec_schema = BackupPolicySpecSchema

    #: Annotation overriding the sidecar image tag for one policy
    TAG_ANNOTATION = "stasher.io/tag"
    #: Annotation on mutated workloads recording the policy they were built from
    LAST_APPLIED_ANNOTATION = "stasher.io/last-applied-configuration"

    @property
    def image_tag(self) -> Optional[str]:
        return self.annotations.get(self.TAG_ANNOTATION)

    @property
    def has_local_backend(self) -> bool:
        return (self.spec.get("backend") or {}).get("local") is not None

    def matches(self, labels: Optional[Dict[str, str]]) -> bool:
        """Whether the policy selects a pod template carrying `labels`."""
        return selector_matches(self.spec_model.selector, labels)

    def last_applied(self) -> str:
        """Serialized form written to the last-applied annotation."""
        return canonicalize_dict(
            {
                "apiVersion": self.api_version(),
                "kind": self.KIND,
                "metadata": {
                    "name": self.name,
                    "namespace": self.namespace,
                    "annotations": {
                        k: v
                        for k, v in self.annotations.items()
                        if k == self.TAG_ANNOTATION
                    },
                },
                "spec": self.spec,
            }
        )

    @classmethod
    def from_last_applied(cls, text: Optional[str]) -> Optional["BackupPolicy"]:
        """Rebuild the policy recorded on a workload, None when absent."""
        data: Any = decode_json(text)
        if not isinstance(data, dict):
            return None
        return cls(data)
