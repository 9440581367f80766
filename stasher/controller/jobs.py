import asyncio
import logging

from kubernetes_asyncio.client import V1Job

from stasher.controller import events
from stasher.controller.events import EventRecorder
from stasher.controller.status import StatusWriter
from stasher.resources.base import BaseResource
from stasher.resources.recovery_request import RecoveryPhase, RecoveryRequest
from stasher.utils.errors import PollTimeoutError
from stasher.utils.poll import poll_until

logger = logging.getLogger(__name__)


class JobCompletionWatcher(BaseResource):
    """Waits for a recovery Job to succeed, then cleans it up."""

    def __init__(
        self,
        api_client,
        recorder: EventRecorder,
        status: StatusWriter,
        interval: float,
        timeout: float,
        sensor=None,
    ):
        super().__init__(api_client, sensor)
        self.recorder = recorder
        self.status = status
        self.interval = interval
        self.timeout = timeout

    async def succeeded(self, job: V1Job) -> bool:
        current = await self.fetch_job(job.metadata.name, job.metadata.namespace)
        if current is None:
            raise RuntimeError(f"Job {job.metadata.namespace}/{job.metadata.name} not found")
        return bool(current.status and (current.status.succeeded or 0) > 0)

    async def watch(self, request: RecoveryRequest, job: V1Job) -> None:
        """Report the Job's outcome, then delete it even if reporting failed.

        Cancellation leaves the Job in place.
        """
        try:
            await self.report(request, job)
        except asyncio.CancelledError:
            raise
        except Exception:
            await self.cleanup(request, job)
            raise
        await self.cleanup(request, job)

    async def report(self, request: RecoveryRequest, job: V1Job) -> None:
        """Wait for the Job, then record the outcome on the request."""
        body = request.event_body()
        try:
            await poll_until(
                lambda: self.succeeded(job),
                interval=self.interval,
                timeout=self.timeout,
                description=f"Job {job.metadata.name} to succeed",
            )
        except PollTimeoutError as ex:
            logger.error(f"Recovery {request.key} failed: {ex}")
            self.recorder.warning(body, events.FAILED_TO_RECOVER, str(ex))
            await self.status.set_phase(request, RecoveryPhase.FAILED)
        except Exception as ex:
            logger.error(f"Recovery {request.key} failed while checking Job: {ex}")
            self.recorder.warning(
                body, events.FAILED_TO_RECOVER, f"Failed to check Job. Reason: {ex}"
            )
            await self.status.set_phase(request, RecoveryPhase.FAILED)
        else:
            logger.info(f"Recovery {request.key} succeeded")
            self.recorder.normal(
                body,
                events.RECOVERY_SUCCEEDED,
                f"Recovery job {job.metadata.name} succeeded",
            )
            await self.status.set_phase(request, RecoveryPhase.SUCCEEDED)

    async def cleanup(self, request: RecoveryRequest, job: V1Job) -> None:
        """Delete the Job and its pods, failures are reported as events."""
        body = request.event_body()
        name, namespace = job.metadata.name, job.metadata.namespace
        try:
            await self.delete_job(name, namespace)
        except Exception as ex:
            logger.error(f"Failed to delete Job {namespace}/{name}: {ex}")
            self.recorder.warning(
                body, events.FAILED_TO_DELETE, f"Failed to delete Job. Reason: {ex}"
            )
        try:
            await self.delete_pods(namespace, f"job-name={name}")
        except Exception as ex:
            logger.error(f"Failed to delete pods of Job {namespace}/{name}: {ex}")
            self.recorder.warning(
                body, events.FAILED_TO_DELETE, f"Failed to delete Pods. Reason: {ex}"
            )
