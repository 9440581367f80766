import logging
from typing import Callable

from kubernetes_asyncio.client import V1Job

from stasher.controller import events
from stasher.controller.events import EventRecorder
from stasher.controller.rbac import RbacEnsurer
from stasher.controller.status import StatusWriter
from stasher.controller.store import Store
from stasher.resources.backup_policy import BackupPolicy
from stasher.resources.recovery_job import missing_volume_mounts, prepare_recovery_job
from stasher.resources.recovery_request import RecoveryPhase, RecoveryRequest
from stasher.resources.workload import WorkloadResource
from stasher.types.settings import Settings
from stasher.utils.errors import InvalidResourceError, PolicyNotFoundError
from stasher.utils.helpers import meta_namespace_key

logger = logging.getLogger(__name__)


class RecoveryReconciler:
    """Turns a pending RecoveryRequest into exactly one recovery Job."""

    def __init__(
        self,
        store: Store[RecoveryRequest],
        policies: Store[BackupPolicy],
        workloads: WorkloadResource,
        rbac: RbacEnsurer,
        status: StatusWriter,
        recorder: EventRecorder,
        start_watcher: Callable[[RecoveryRequest, V1Job], None],
        settings: Settings,
    ):
        self.store = store
        self.policies = policies
        self.workloads = workloads
        self.rbac = rbac
        self.status = status
        self.recorder = recorder
        self.start_watcher = start_watcher
        self.settings = settings

    def resolve_policy(self, request: RecoveryRequest) -> BackupPolicy:
        policy = self.policies.get(meta_namespace_key(request.namespace, request.policy_name))
        if policy is None:
            raise PolicyNotFoundError(request.namespace, request.policy_name)
        policy.validate()
        return policy

    async def check(self, request: RecoveryRequest) -> BackupPolicy:
        """Validate the request against its policy and workload."""
        spec = request.validate()
        policy = self.resolve_policy(request)
        missing = missing_volume_mounts(request, policy)
        if missing:
            raise InvalidResourceError(
                request.KIND,
                request.key,
                f"volume(s) {', '.join(missing)} used by BackupPolicy "
                f"{policy.name} are not defined",
            )
        if spec.workload is not None:
            exists = await self.workloads.workload_exists(
                spec.workload, request.namespace, request.key
            )
            if not exists:
                raise InvalidResourceError(
                    request.KIND,
                    request.key,
                    f"{spec.workload.kind} {spec.workload.name} not found",
                )
        return policy

    async def fail(self, request: RecoveryRequest, reason: str) -> None:
        self.recorder.warning(request.event_body(), events.FAILED_TO_RECOVER, reason)
        await self.status.set_phase(request, RecoveryPhase.FAILED)

    async def reconcile(self, key: str) -> None:
        request = self.store.get(key)
        if request is None:
            logger.debug(f"RecoveryRequest {key} no longer exists")
            return
        if request.is_settled:
            logger.debug(f"RecoveryRequest {key} is {request.phase}, nothing to do")
            return

        logger.info(f"Syncing RecoveryRequest {key}")
        try:
            policy = await self.check(request)
        except Exception as ex:
            logger.error(f"RecoveryRequest {key} cannot run: {ex}")
            await self.fail(request, str(ex))
            raise

        service_account = None
        if self.settings.enable_rbac:
            service_account = request.job_name
            await self.rbac.ensure(service_account, request)

        try:
            job = prepare_recovery_job(
                request,
                policy,
                self.settings.sidecar_image,
                self.settings.sidecar_image_tag,
                service_account_name=service_account,
            )
            created = await self.workloads.create_job(request.namespace, job)
        except Exception as ex:
            logger.error(f"Failed to create recovery Job for {key}: {ex}")
            await self.fail(request, f"Failed to create recovery Job. Reason: {ex}")
            raise

        if created:
            self.recorder.normal(
                request.event_body(),
                events.JOB_CREATED,
                f"Recovery job {job.metadata.name} created",
            )
        else:
            logger.info(f"Recovery Job {job.metadata.name} already exists")
        await self.status.set_phase(request, RecoveryPhase.RUNNING)
        self.start_watcher(request, job)
