import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from stasher.controller.events import EventRecorder
from stasher.types.settings import Settings


class FakeEventRecorder(EventRecorder):
    """Keeps events in memory instead of posting them."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str, str, Optional[str]]] = []

    def record(self, body: Dict[str, Any], type: str, reason: str, message: str) -> None:
        name = (body.get("metadata") or {}).get("name")
        self.events.append((type, reason, message, name))

    def reasons(self, type: Optional[str] = None) -> List[str]:
        return [e[1] for e in self.events if type is None or e[0] == type]


POLICY_BODY = {
    "apiVersion": "stasher.io/v1alpha1",
    "kind": "BackupPolicy",
    "metadata": {
        "name": "p1",
        "namespace": "default",
        "uid": "policy-uid",
        "resourceVersion": "1",
    },
    "spec": {
        "selector": {"matchLabels": {"app": "db"}},
        "fileGroups": [{"path": "/source/data", "retentionPolicy": {"keepLast": 5}}],
        "backend": {
            "storageSecretName": "backup-secret",
            "local": {"path": "/repo", "volumeSource": {"emptyDir": {}}},
        },
        "schedule": "@every 1m",
        "volumeMounts": [{"name": "data", "mountPath": "/source/data"}],
        "resources": {"requests": {"memory": "1Gi", "cpu": "500m"}},
    },
}

REQUEST_BODY = {
    "apiVersion": "stasher.io/v1alpha1",
    "kind": "RecoveryRequest",
    "metadata": {
        "name": "r1",
        "namespace": "default",
        "uid": "request-uid",
        "resourceVersion": "7",
    },
    "spec": {
        "policy": "p1",
        "nodeName": "node-1",
        "volumes": [{"name": "data", "hostPath": {"path": "/data/restore"}}],
    },
}


@pytest.fixture
def recorder():
    return FakeEventRecorder()


@pytest.fixture
def settings():
    return Settings(
        sidecar_image="stasher/stasher",
        sidecar_image_tag="0.6.0",
        max_num_requeues=3,
        enable_rbac=True,
        job_poll_interval_seconds=0.01,
        job_poll_timeout_seconds=0.05,
        sidecar_poll_interval_seconds=0.01,
        sidecar_poll_timeout_seconds=0.05,
    )


@pytest.fixture
def policy_body():
    return copy.deepcopy(POLICY_BODY)


@pytest.fixture
def request_body():
    return copy.deepcopy(REQUEST_BODY)
