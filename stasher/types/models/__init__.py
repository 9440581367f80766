from .backup_policy import (
    LabelSelectorRequirement,
    LabelSelector,
    RetentionPolicy,
    FileGroup,
    LocalBackend,
    RemoteBackend,
    Backend,
    VolumeMount,
    BackupPolicySpec,
)
from .recovery_request import WorkloadReference, RecoveryRequestSpec

__all__ = [
    "LabelSelectorRequirement",
    "LabelSelector",
    "RetentionPolicy",
    "FileGroup",
    "LocalBackend",
    "RemoteBackend",
    "Backend",
    "VolumeMount",
    "BackupPolicySpec",
    "WorkloadReference",
    "RecoveryRequestSpec",
]
