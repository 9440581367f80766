from .backup_policy import (
    LabelSelectorRequirementSchema,
    LabelSelectorSchema,
    RetentionPolicySchema,
    FileGroupSchema,
    LocalBackendSchema,
    RemoteBackendSchema,
    BackendSchema,
    VolumeMountSchema,
    BackupPolicySpecSchema,
)
from .recovery_request import WorkloadReferenceSchema, RecoveryRequestSpecSchema

__all__ = [
    "LabelSelectorRequirementSchema",
    "LabelSelectorSchema",
    "RetentionPolicySchema",
    "FileGroupSchema",
    "LocalBackendSchema",
    "RemoteBackendSchema",
    "BackendSchema",
    "VolumeMountSchema",
    "BackupPolicySpecSchema",
    "WorkloadReferenceSchema",
    "RecoveryRequestSpecSchema",
]
