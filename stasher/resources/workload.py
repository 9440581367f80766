import logging
from typing import Any, Dict, List, Optional

from kubernetes_asyncio.client import ApiException, V1PodTemplateSpec

from stasher.resources.base import BaseResource
from stasher.resources.sidecar import has_sidecar
from stasher.types.models import (
    LabelSelector,
    LabelSelectorRequirement,
    WorkloadReference,
)
from stasher.utils.errors import UnknownWorkloadKindError, not_found_error
from stasher.utils.helpers import get_annotation
from stasher.utils.poll import poll_until
from stasher.utils.selectors import selector_as_str

logger = logging.getLogger(__name__)

DEPLOYMENT = "Deployment"
REPLICA_SET = "ReplicaSet"
STATEFUL_SET = "StatefulSet"
DAEMON_SET = "DaemonSet"
REPLICATION_CONTROLLER = "ReplicationController"

WORKLOAD_KINDS = (DEPLOYMENT, REPLICA_SET, STATEFUL_SET, DAEMON_SET, REPLICATION_CONTROLLER)

#: Kinds whose controllers do not roll pods when the template changes
NON_ROLLING_KINDS = (REPLICA_SET, REPLICATION_CONTROLLER)

_KIND_ALIASES = {
    "deployment": DEPLOYMENT,
    "deployments": DEPLOYMENT,
    "deploy": DEPLOYMENT,
    "replicaset": REPLICA_SET,
    "replicasets": REPLICA_SET,
    "rs": REPLICA_SET,
    "statefulset": STATEFUL_SET,
    "statefulsets": STATEFUL_SET,
    "sts": STATEFUL_SET,
    "daemonset": DAEMON_SET,
    "daemonsets": DAEMON_SET,
    "ds": DAEMON_SET,
    "replicationcontroller": REPLICATION_CONTROLLER,
    "replicationcontrollers": REPLICATION_CONTROLLER,
    "rc": REPLICATION_CONTROLLER,
}


def canonical_kind(kind: Optional[str]) -> Optional[str]:
    """Canonical workload kind for `kind` or one of its aliases, else None."""
    if not kind:
        return None
    return _KIND_ALIASES.get(kind.lower())


def config_map_lock_name(reference: WorkloadReference) -> str:
    """Name of the ConfigMap the sidecar uses as its leader lock."""
    return f"lock-{reference.kind}-{reference.name}".lower()


class Workload:
    """A workload object read through the API, with its kind attached."""

    kind: str
    obj: Any

    def __init__(self, kind: str, obj: Any):
        self.kind = kind
        self.obj = obj

    @property
    def name(self) -> str:
        return self.obj.metadata.name

    @property
    def namespace(self) -> str:
        return self.obj.metadata.namespace

    @property
    def reference(self) -> WorkloadReference:
        return WorkloadReference(kind=self.kind, name=self.name)

    @property
    def template(self) -> V1PodTemplateSpec:
        return self.obj.spec.template

    @template.setter
    def template(self, template: V1PodTemplateSpec) -> None:
        self.obj.spec.template = template

    @property
    def template_labels(self) -> Dict[str, str]:
        template = self.template
        if template is None or template.metadata is None:
            return {}
        return template.metadata.labels or {}

    @property
    def has_sidecar(self) -> bool:
        template = self.template
        if template is None or template.spec is None:
            return False
        return has_sidecar(template.spec.containers)

    def get_annotation(self, key: str) -> Optional[str]:
        return get_annotation(self.obj.metadata, key)

    def set_annotation(self, key: str, value: str) -> None:
        metadata = self.obj.metadata
        metadata.annotations = {**(metadata.annotations or {}), key: value}

    def remove_annotation(self, key: str) -> None:
        metadata = self.obj.metadata
        annotations = dict(metadata.annotations or {})
        annotations.pop(key, None)
        metadata.annotations = annotations

    def pod_selector(self) -> str:
        """Label selector string of the pods this workload manages."""
        selector = self.obj.spec.selector
        if self.kind == REPLICATION_CONTROLLER:
            # ReplicationController selectors are a plain label map
            selector = LabelSelector(match_labels=selector or {}, match_expressions=[])
        else:
            selector = LabelSelector(
                match_labels=selector.match_labels or {},
                match_expressions=[
                    LabelSelectorRequirement(
                        key=e.key, operator=e.operator, values=e.values
                    )
                    for e in selector.match_expressions or []
                ],
            )
        return selector_as_str(selector)

    def __repr__(self) -> str:
        return f"<{self.kind} {self.namespace}/{self.name}>"


class WorkloadResource(BaseResource):
    """List, read and replace every workload kind the sidecar can be injected into."""

    def _list_call(self, kind: str):
        return {
            DEPLOYMENT: self.apps_v1_api.list_namespaced_deployment,
            REPLICA_SET: self.apps_v1_api.list_namespaced_replica_set,
            STATEFUL_SET: self.apps_v1_api.list_namespaced_stateful_set,
            DAEMON_SET: self.apps_v1_api.list_namespaced_daemon_set,
            REPLICATION_CONTROLLER: self.core_v1_api.list_namespaced_replication_controller,
        }[kind]

    def _read_call(self, kind: str):
        return {
            DEPLOYMENT: self.apps_v1_api.read_namespaced_deployment,
            REPLICA_SET: self.apps_v1_api.read_namespaced_replica_set,
            STATEFUL_SET: self.apps_v1_api.read_namespaced_stateful_set,
            DAEMON_SET: self.apps_v1_api.read_namespaced_daemon_set,
            REPLICATION_CONTROLLER: self.core_v1_api.read_namespaced_replication_controller,
        }[kind]

    def _replace_call(self, kind: str):
        return {
            DEPLOYMENT: self.apps_v1_api.replace_namespaced_deployment,
            REPLICA_SET: self.apps_v1_api.replace_namespaced_replica_set,
            STATEFUL_SET: self.apps_v1_api.replace_namespaced_stateful_set,
            DAEMON_SET: self.apps_v1_api.replace_namespaced_daemon_set,
            REPLICATION_CONTROLLER: self.core_v1_api.replace_namespaced_replication_controller,
        }[kind]

    async def list_workloads(self, kind: str, namespace: str) -> List[Workload]:
        result = await self._list_call(kind)(namespace=namespace)
        return [Workload(kind, item) for item in result.items or []]

    async def read_workload(self, kind: str, name: str, namespace: str) -> Optional[Workload]:
        try:
            obj = await self._read_call(kind)(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise
        return Workload(kind, obj)

    async def replace_workload(self, workload: Workload) -> Workload:
        """Write the workload back; the embedded resourceVersion guards against lost updates."""
        state = self._sync_start(workload.kind, workload.name, workload.namespace, "replace")
        try:
            obj = await self._replace_call(workload.kind)(
                name=workload.name, namespace=workload.namespace, body=workload.obj
            )
        except Exception:
            self._sync_complete(
                state, workload.kind, workload.name, workload.namespace, "replace", False
            )
            raise
        self._sync_complete(
            state, workload.kind, workload.name, workload.namespace, "replace", True
        )
        return Workload(workload.kind, obj)

    async def workload_exists(
        self, reference: WorkloadReference, namespace: str, key: str
    ) -> bool:
        """Check the referenced workload exists.

        Raises UnknownWorkloadKindError when the kind is not one the
        operator can handle, so a typo never passes as a missing object.
        """
        kind = canonical_kind(reference.kind)
        if kind is None:
            raise UnknownWorkloadKindError(key, reference.kind)
        return await self.read_workload(kind, reference.name, namespace) is not None

    async def delete_config_map_lock(self, reference: WorkloadReference, namespace: str) -> None:
        await self.delete_config_map(config_map_lock_name(reference), namespace)

    async def _restart_pods(self, workload: Workload, want_sidecar: bool) -> bool:
        pods = await self.list_pods(workload.namespace, workload.pod_selector())
        stale = [
            p.metadata.name
            for p in pods.items or []
            if has_sidecar(p.spec.containers) != want_sidecar
        ]
        for name in stale:
            logger.info(f"Deleting pod {workload.namespace}/{name} of {workload!r}")
            await self.delete_pod(name, workload.namespace)
        return not stale

    async def wait_until_sidecar_added(
        self, workload: Workload, interval: float, timeout: float
    ) -> None:
        """Recreate pods of `workload` until all of them run the sidecar."""
        await poll_until(
            lambda: self._restart_pods(workload, True),
            interval=interval,
            timeout=timeout,
            description=f"sidecar added to pods of {workload!r}",
        )

    async def wait_until_sidecar_removed(
        self, workload: Workload, interval: float, timeout: float
    ) -> None:
        """Recreate pods of `workload` until none of them runs the sidecar."""
        await poll_until(
            lambda: self._restart_pods(workload, False),
            interval=interval,
            timeout=timeout,
            description=f"sidecar removed from pods of {workload!r}",
        )
