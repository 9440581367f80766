from typing import Optional, Dict, List, Any
from stasher.types.base import BaseModel


class LabelSelectorRequirement(BaseModel):
    key: str
    operator: str
    values: Optional[List[str]]


class LabelSelector(BaseModel):
    match_labels: Optional[Dict[str, str]]
    match_expressions: Optional[List[LabelSelectorRequirement]]


class RetentionPolicy(BaseModel):
    keep_last: Optional[int]
    keep_hourly: Optional[int]
    keep_daily: Optional[int]
    keep_weekly: Optional[int]
    keep_monthly: Optional[int]
    keep_yearly: Optional[int]
    keep_tags: Optional[List[str]]
    prune: Optional[bool]
    dry_run: Optional[bool]


class FileGroup(BaseModel):
    path: str
    tags: Optional[List[str]]
    retention_policy: Optional[RetentionPolicy]


class LocalBackend(BaseModel):
    #: Mount path of the repository inside the sidecar
    path: str
    #: A single core/v1 volume source, kept in its camelCase API form
    volume_source: Dict[str, Any]


class RemoteBackend(BaseModel):
    endpoint: Optional[str]
    bucket: Optional[str]
    container: Optional[str]
    prefix: Optional[str]


class Backend(BaseModel):
    REMOTE_KINDS = ("s3", "gcs", "azure", "swift", "b2")

    storage_secret_name: str
    local: Optional[LocalBackend]
    s3: Optional[RemoteBackend]
    gcs: Optional[RemoteBackend]
    azure: Optional[RemoteBackend]
    swift: Optional[RemoteBackend]
    b2: Optional[RemoteBackend]

    def configured_kinds(self) -> List[str]:
        """Names of every backend kind set on this spec."""
        kinds = ["local"] if getattr(self, "local", None) is not None else []
        kinds.extend(k for k in self.REMOTE_KINDS if getattr(self, k, None) is not None)
        return kinds


class VolumeMount(BaseModel):
    name: str
    mount_path: str
    sub_path: Optional[str]


class BackupPolicySpec(BaseModel):
    """BackupPolicy CRD spec"""

    selector: LabelSelector
    file_groups: List[FileGroup]
    backend: Backend
    schedule: str
    volume_mounts: Optional[List[VolumeMount]]
    resources: Optional[Dict[str, Any]]
