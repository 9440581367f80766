import logging
from typing import List, Optional

from stasher.controller import events
from stasher.controller.events import EventRecorder
from stasher.controller.store import Store
from stasher.resources.backup_policy import BackupPolicy
from stasher.resources.sidecar import apply_policy, policy_spec_equal, remove_policy
from stasher.resources.workload import (
    NON_ROLLING_KINDS,
    WORKLOAD_KINDS,
    Workload,
    WorkloadResource,
)
from stasher.types.settings import Settings
from stasher.utils.errors import InvalidResourceError, ReconcileError
from stasher.utils.helpers import split_meta_namespace_key

logger = logging.getLogger(__name__)


class PolicyReconciler:
    """Keeps the backup sidecar of every workload in line with BackupPolicies.

    A workload selected by exactly one policy carries the sidecar built from
    that policy; a workload whose recorded policy is gone or no longer
    selects it has the sidecar removed.
    """

    def __init__(
        self,
        store: Store[BackupPolicy],
        workloads: WorkloadResource,
        recorder: EventRecorder,
        settings: Settings,
    ):
        self.store = store
        self.workloads = workloads
        self.recorder = recorder
        self.settings = settings

    def _current_policy(self, key: str) -> Optional[BackupPolicy]:
        policy = self.store.get(key)
        if policy is None:
            return None
        try:
            policy.validate()
        except InvalidResourceError as ex:
            # treated as absent so workloads it selected lose the sidecar
            logger.warning(f"Ignoring {ex}")
            return None
        return policy

    def _other_matches(self, policy: BackupPolicy, workload: Workload) -> List[str]:
        names = []
        for other in self.store.list_namespace(policy.namespace):
            if other.key == policy.key:
                continue
            try:
                if other.matches(workload.template_labels):
                    names.append(other.name)
            except InvalidResourceError:
                continue
        return names

    async def reconcile(self, key: str) -> None:
        namespace, name = split_meta_namespace_key(key)
        policy = self._current_policy(key)
        logger.info(
            f"Syncing BackupPolicy {key} ({'present' if policy else 'absent'})"
        )
        errors: List[Exception] = []
        for kind in WORKLOAD_KINDS:
            try:
                workloads = await self.workloads.list_workloads(kind, namespace)
            except Exception as ex:
                logger.error(f"Failed to list {kind} in {namespace}: {ex}")
                errors.append(ex)
                continue
            for workload in workloads:
                try:
                    await self.sync_workload(workload, name, policy)
                except Exception as ex:
                    logger.error(f"Failed to sync {workload!r} with BackupPolicy {key}: {ex}")
                    if policy is not None:
                        self.recorder.warning(
                            policy.event_body(),
                            events.FAILED_TO_UPDATE,
                            f"Failed to update {workload.kind} {workload.name}. Reason: {ex}",
                        )
                    errors.append(ex)
        if errors:
            raise ReconcileError(key, errors)

    async def sync_workload(
        self, workload: Workload, name: str, policy: Optional[BackupPolicy]
    ) -> None:
        recorded = BackupPolicy.from_last_applied(
            workload.get_annotation(BackupPolicy.LAST_APPLIED_ANNOTATION)
        )
        recorded_here = recorded is not None and recorded.name == name

        if policy is not None and policy.matches(workload.template_labels):
            others = self._other_matches(policy, workload)
            if others:
                self.recorder.warning(
                    policy.event_body(),
                    events.MULTIPLE_POLICIES,
                    f"{workload.kind} {workload.name} is selected by multiple "
                    f"BackupPolicies: {', '.join(sorted([name] + others))}",
                )
                return
            if (
                recorded_here
                and workload.has_sidecar
                and recorded.image_tag == policy.image_tag
                and policy_spec_equal(recorded, policy)
            ):
                return
            await self.inject(workload, recorded, policy)
        elif recorded_here:
            await self.remove(workload, recorded, policy)

    async def inject(
        self, workload: Workload, old: Optional[BackupPolicy], policy: BackupPolicy
    ) -> None:
        workload.template = apply_policy(
            workload.template,
            old,
            policy,
            workload.reference,
            self.settings.sidecar_image,
            self.settings.sidecar_image_tag,
        )
        workload.set_annotation(BackupPolicy.LAST_APPLIED_ANNOTATION, policy.last_applied())
        updated = await self.workloads.replace_workload(workload)
        logger.info(f"Injected sidecar of BackupPolicy {policy.key} into {workload!r}")
        self.recorder.normal(
            policy.event_body(),
            events.SIDECAR_INJECTED,
            f"Backup sidecar added to {workload.kind} {workload.name}",
        )
        if workload.kind in NON_ROLLING_KINDS:
            await self.workloads.wait_until_sidecar_added(
                updated,
                interval=self.settings.sidecar_poll_interval_seconds,
                timeout=self.settings.sidecar_poll_timeout_seconds,
            )

    async def remove(
        self,
        workload: Workload,
        old: BackupPolicy,
        policy: Optional[BackupPolicy],
    ) -> None:
        workload.template = remove_policy(workload.template, old)
        workload.remove_annotation(BackupPolicy.LAST_APPLIED_ANNOTATION)
        updated = await self.workloads.replace_workload(workload)
        await self.workloads.delete_config_map_lock(workload.reference, workload.namespace)
        logger.info(f"Removed sidecar of BackupPolicy {old.name} from {workload!r}")
        if policy is not None:
            self.recorder.normal(
                policy.event_body(),
                events.SIDECAR_REMOVED,
                f"Backup sidecar removed from {workload.kind} {workload.name}",
            )
        if workload.kind in NON_ROLLING_KINDS:
            await self.workloads.wait_until_sidecar_removed(
                updated,
                interval=self.settings.sidecar_poll_interval_seconds,
                timeout=self.settings.sidecar_poll_timeout_seconds,
            )
