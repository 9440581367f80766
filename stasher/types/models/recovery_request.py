from typing import Optional, Dict, List, Any
from stasher.types.base import BaseModel


class WorkloadReference(BaseModel):
    kind: str
    name: str


class RecoveryRequestSpec(BaseModel):
    """RecoveryRequest CRD spec"""

    #: Name of the BackupPolicy to recover from, same namespace
    policy: str
    node_name: Optional[str]
    workload: Optional[WorkloadReference]
    #: core/v1 Volume objects mounted into the recovery job, camelCase API form
    volumes: List[Dict[str, Any]]
