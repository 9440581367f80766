import logging
from typing import Any, Dict

import kopf

logger = logging.getLogger(__name__)

NORMAL = "Normal"
WARNING = "Warning"

# Event reasons
SIDECAR_INJECTED = "SidecarInjected"
SIDECAR_REMOVED = "SidecarRemoved"
MULTIPLE_POLICIES = "MultiplePolicies"
FAILED_TO_UPDATE = "FailedToUpdate"
JOB_CREATED = "JobCreated"
FAILED_TO_RECOVER = "FailedToRecover"
RECOVERY_SUCCEEDED = "RecoverySucceeded"
FAILED_TO_DELETE = "FailedToDelete"


class EventRecorder:
    """Posts Kubernetes events through kopf's event poster.

    Posting is fire-and-forget: a failure to post is logged and never
    interrupts a reconcile.
    """

    def record(
        self, body: Dict[str, Any], type: str, reason: str, message: str
    ) -> None:
        try:
            kopf.event(body, type=type, reason=reason, message=message)
        except Exception as ex:
            logger.warning(f"Failed to post {type} event {reason}: {ex}")

    def normal(self, body: Dict[str, Any], reason: str, message: str) -> None:
        self.record(body, NORMAL, reason, message)

    def warning(self, body: Dict[str, Any], reason: str, message: str) -> None:
        self.record(body, WARNING, reason, message)

