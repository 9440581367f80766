from typing import List, Optional

from kubernetes_asyncio.client import (
    V1Container,
    V1EmptyDirVolumeSource,
    V1Job,
    V1JobSpec,
    V1ObjectMeta,
    V1OwnerReference,
    V1PodSpec,
    V1PodTemplateSpec,
    V1Volume,
    V1VolumeMount,
)

from stasher.resources.backup_policy import BackupPolicy
from stasher.resources.recovery_request import RecoveryRequest
from stasher.resources.sidecar import (
    LOCAL_VOLUME_NAME,
    SCRATCH_DIR_MOUNT_PATH,
    SCRATCH_DIR_VOLUME_NAME,
    SIDECAR_CONTAINER_NAME,
    image_tag,
    to_volume,
    volume_from_dict,
)


def missing_volume_mounts(request: RecoveryRequest, policy: BackupPolicy) -> List[str]:
    """Names of policy volume mounts that no request volume satisfies."""
    available = {v.get("name") for v in request.spec_model.volumes}
    return [
        m.name for m in policy.spec_model.volume_mounts or [] if m.name not in available
    ]


def prepare_recovery_job(
    request: RecoveryRequest,
    policy: BackupPolicy,
    image: str,
    tag: str,
    service_account_name: Optional[str] = None,
) -> V1Job:
    """Build the one-shot Job restoring `policy` backups into the request volumes.

    The Job is owned by the request, mounts exactly the policy's volume
    mounts plus a scratch directory, and pins itself to the requested node.
    """
    spec = policy.spec_model
    volume_mounts = [
        V1VolumeMount(name=m.name, mount_path=m.mount_path, sub_path=m.sub_path)
        for m in spec.volume_mounts or []
    ]
    volume_mounts.append(
        V1VolumeMount(name=SCRATCH_DIR_VOLUME_NAME, mount_path=SCRATCH_DIR_MOUNT_PATH)
    )
    volumes = [volume_from_dict(v) for v in request.spec_model.volumes]
    volumes.append(
        V1Volume(name=SCRATCH_DIR_VOLUME_NAME, empty_dir=V1EmptyDirVolumeSource())
    )

    local = spec.backend.local
    if local is not None:
        volume_mounts.append(V1VolumeMount(name=LOCAL_VOLUME_NAME, mount_path=local.path))
        # the local repository volume comes from the policy, never from the request
        volumes.append(to_volume(LOCAL_VOLUME_NAME, local.volume_source))

    return V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=V1ObjectMeta(
            name=request.job_name,
            namespace=request.namespace,
            owner_references=[
                V1OwnerReference(
                    api_version=request.api_version(),
                    kind=request.KIND,
                    name=request.name,
                    uid=request.uid,
                )
            ],
        ),
        spec=V1JobSpec(
            template=V1PodTemplateSpec(
                spec=V1PodSpec(
                    containers=[
                        V1Container(
                            name=SIDECAR_CONTAINER_NAME,
                            image=f"{image}:{image_tag(policy, tag)}",
                            args=[
                                "recover",
                                f"--recovery-name={request.name}",
                                "--v=10",
                            ],
                            volume_mounts=volume_mounts,
                        )
                    ],
                    restart_policy="OnFailure",
                    volumes=volumes,
                    node_name=request.spec_model.node_name,
                    service_account_name=service_account_name,
                )
            )
        ),
    )
