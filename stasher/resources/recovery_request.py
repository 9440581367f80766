from typing import Optional

from stasher.resources.custom import CustomResource
from stasher.types.models import RecoveryRequestSpec
from stasher.types.schemas import RecoveryRequestSpecSchema


class RecoveryPhase:
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class RecoveryRequest(CustomResource[RecoveryRequestSpec]):
    """RecoveryRequest custom resource."""

    KIND = "RecoveryRequest"
    PLURAL_NAME = "recoveryrequests"
    INVALID_REASON = "InvalidRecoveryRequest"
    spec_schema = RecoveryRequestSpecSchema

    #: Phases that must never be processed again
    SETTLED_PHASES = (RecoveryPhase.RUNNING, RecoveryPhase.SUCCEEDED)

    @property
    def phase(self) -> str:
        return self.status.get("phase") or RecoveryPhase.PENDING

    @property
    def is_settled(self) -> bool:
        return self.phase in self.SETTLED_PHASES

    @property
    def policy_name(self) -> Optional[str]:
        return self.spec.get("policy")

    @property
    def job_name(self) -> str:
        return f"stasher-{self.name}"
