"""Sidecar container and well-known volume merge on pod templates.

Every function here is pure: lists are returned as new lists and
`apply_policy` / `remove_policy` work on a deep copy of the template, so the
object held by the caller is never modified. Merges are keyed by name and
keep the position of entries that already exist, which makes repeated
application a no-op.
"""

import copy
from typing import Any, Dict, List, Optional, TypeVar

from kubernetes_asyncio.client import (
    V1Container,
    V1DownwardAPIVolumeFile,
    V1DownwardAPIVolumeSource,
    V1EmptyDirVolumeSource,
    V1EnvVar,
    V1EnvVarSource,
    V1ObjectFieldSelector,
    V1PodTemplateSpec,
    V1ResourceRequirements,
    V1Volume,
    V1VolumeMount,
)

from stasher.resources.backup_policy import BackupPolicy
from stasher.types.models import WorkloadReference
from stasher.utils.quantity import spec_equal

SIDECAR_CONTAINER_NAME = "stasher"
SCRATCH_DIR_VOLUME_NAME = "stasher-scratchdir"
PODINFO_VOLUME_NAME = "stasher-podinfo"
LOCAL_VOLUME_NAME = "stasher-local"

SCRATCH_DIR_MOUNT_PATH = "/tmp"
PODINFO_MOUNT_PATH = "/etc/stasher"

CANARY_TAG = "canary"

Named = TypeVar("Named")

# camelCase volume source key -> V1Volume attribute, e.g. emptyDir -> empty_dir
_VOLUME_ATTRIBUTES = {v: k for k, v in V1Volume.attribute_map.items()}


def _upsert(items: Optional[List[Named]], item: Named) -> List[Named]:
    result = list(items or [])
    for i, existing in enumerate(result):
        if existing.name == item.name:
            result[i] = item
            return result
    result.append(item)
    return result


def _delete(items: Optional[List[Named]], name: str) -> List[Named]:
    return [i for i in (items or []) if i.name != name]


def to_volume(name: str, source: Dict[str, Any]) -> V1Volume:
    """Build a V1Volume from a camelCase volume source mapping.

    The source values are kept as plain dicts; the API client serializes
    them unchanged.
    """
    kwargs = {}
    for key, value in (source or {}).items():
        attribute = _VOLUME_ATTRIBUTES.get(key)
        if attribute is None or attribute == "name":
            raise ValueError(f"Unknown volume source: {key}")
        kwargs[attribute] = value
    return V1Volume(name=name, **kwargs)


def volume_from_dict(volume: Dict[str, Any]) -> V1Volume:
    """Build a V1Volume from a full camelCase core/v1 Volume mapping."""
    source = {k: v for k, v in volume.items() if k != "name"}
    return to_volume(volume["name"], source)


def image_tag(policy: BackupPolicy, default_tag: str) -> str:
    return policy.image_tag or default_tag


def create_sidecar_container(
    policy: BackupPolicy, workload: WorkloadReference, image: str, tag: str
) -> V1Container:
    """Build the backup sidecar for `workload` from `policy`."""
    tag = image_tag(policy, tag)
    spec = policy.spec_model
    args = [
        "schedule",
        f"--policy-name={policy.name}",
        f"--workload-kind={workload.kind}",
        f"--workload-name={workload.name}",
    ]
    if tag == CANARY_TAG:
        pull_policy = "Always"
        args.append("--v=5")
    else:
        pull_policy = "IfNotPresent"
        args.append("--v=3")

    volume_mounts = [
        V1VolumeMount(name=SCRATCH_DIR_VOLUME_NAME, mount_path=SCRATCH_DIR_MOUNT_PATH),
        V1VolumeMount(name=PODINFO_VOLUME_NAME, mount_path=PODINFO_MOUNT_PATH),
    ]
    for mount in spec.volume_mounts or []:
        volume_mounts.append(
            V1VolumeMount(
                name=mount.name,
                mount_path=mount.mount_path,
                sub_path=mount.sub_path,
                read_only=True,
            )
        )
    if spec.backend.local is not None:
        volume_mounts.append(
            V1VolumeMount(name=LOCAL_VOLUME_NAME, mount_path=spec.backend.local.path)
        )

    resources = None
    if spec.resources:
        resources = V1ResourceRequirements(
            requests=spec.resources.get("requests"),
            limits=spec.resources.get("limits"),
        )

    return V1Container(
        name=SIDECAR_CONTAINER_NAME,
        image=f"{image}:{tag}",
        image_pull_policy=pull_policy,
        args=args,
        env=[
            V1EnvVar(
                name="NODE_NAME",
                value_from=V1EnvVarSource(
                    field_ref=V1ObjectFieldSelector(field_path="spec.nodeName")
                ),
            ),
            V1EnvVar(
                name="POD_NAME",
                value_from=V1EnvVarSource(
                    field_ref=V1ObjectFieldSelector(field_path="metadata.name")
                ),
            ),
        ],
        resources=resources,
        volume_mounts=volume_mounts,
    )


def upsert_container(
    containers: Optional[List[V1Container]], container: V1Container
) -> List[V1Container]:
    return _upsert(containers, container)


def ensure_container_deleted(
    containers: Optional[List[V1Container]], name: str
) -> List[V1Container]:
    return _delete(containers, name)


def upsert_volume(volumes: Optional[List[V1Volume]], volume: V1Volume) -> List[V1Volume]:
    return _upsert(volumes, volume)


def upsert_scratch_volume(volumes: Optional[List[V1Volume]]) -> List[V1Volume]:
    return upsert_volume(
        volumes,
        V1Volume(name=SCRATCH_DIR_VOLUME_NAME, empty_dir=V1EmptyDirVolumeSource()),
    )


def upsert_downward_volume(volumes: Optional[List[V1Volume]]) -> List[V1Volume]:
    """Expose the pod labels to the sidecar as a file named `labels`."""
    return upsert_volume(
        volumes,
        V1Volume(
            name=PODINFO_VOLUME_NAME,
            downward_api=V1DownwardAPIVolumeSource(
                items=[
                    V1DownwardAPIVolumeFile(
                        path="labels",
                        field_ref=V1ObjectFieldSelector(field_path="metadata.labels"),
                    )
                ]
            ),
        ),
    )


def merge_local_volume(
    volumes: Optional[List[V1Volume]],
    old: Optional[BackupPolicy],
    new: BackupPolicy,
) -> List[V1Volume]:
    """Bring the local backend volume in line with `new`.

    A local volume left by `old` is replaced in place or removed when the
    new backend is remote.
    """
    result = list(volumes or [])
    old_pos = -1
    if old is not None and old.has_local_backend:
        for i, volume in enumerate(result):
            if volume.name == LOCAL_VOLUME_NAME:
                old_pos = i
                break

    local = new.spec_model.backend.local
    if local is not None:
        volume = to_volume(LOCAL_VOLUME_NAME, local.volume_source)
        if old_pos != -1:
            result[old_pos] = volume
            return result
        return upsert_volume(result, volume)
    if old_pos != -1:
        del result[old_pos]
    return result


def ensure_volume_deleted(volumes: Optional[List[V1Volume]], name: str) -> List[V1Volume]:
    return _delete(volumes, name)


def has_sidecar(containers: Optional[List[V1Container]]) -> bool:
    return any(c.name == SIDECAR_CONTAINER_NAME for c in containers or [])


def apply_policy(
    template: V1PodTemplateSpec,
    old: Optional[BackupPolicy],
    new: BackupPolicy,
    workload: WorkloadReference,
    image: str,
    tag: str,
) -> V1PodTemplateSpec:
    """Return a copy of `template` carrying the sidecar built from `new`."""
    result = copy.deepcopy(template)
    pod_spec = result.spec
    pod_spec.containers = upsert_container(
        pod_spec.containers, create_sidecar_container(new, workload, image, tag)
    )
    volumes = upsert_scratch_volume(pod_spec.volumes)
    volumes = upsert_downward_volume(volumes)
    pod_spec.volumes = merge_local_volume(volumes, old, new)
    return result


def remove_policy(
    template: V1PodTemplateSpec, old: Optional[BackupPolicy]
) -> V1PodTemplateSpec:
    """Return a copy of `template` without the sidecar and its volumes."""
    result = copy.deepcopy(template)
    pod_spec = result.spec
    pod_spec.containers = ensure_container_deleted(
        pod_spec.containers, SIDECAR_CONTAINER_NAME
    )
    volumes = ensure_volume_deleted(pod_spec.volumes, SCRATCH_DIR_VOLUME_NAME)
    volumes = ensure_volume_deleted(volumes, PODINFO_VOLUME_NAME)
    if old is None or old.has_local_backend:
        volumes = ensure_volume_deleted(volumes, LOCAL_VOLUME_NAME)
    pod_spec.volumes = volumes or None
    return result


def policy_spec_equal(old: Optional[BackupPolicy], new: Optional[BackupPolicy]) -> bool:
    """Quantity-aware spec equality, two missing policies are equal."""
    if old is None or new is None:
        return old is None and new is None
    return spec_equal(old.spec, new.spec)
