import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Type, TypeVar

from kubernetes_asyncio.client import V1Job
from kubernetes_asyncio.client.api_client import ApiClient

from stasher.controller.client import CustomResourceClient
from stasher.controller.dispatcher import Dispatcher
from stasher.controller.events import EventRecorder
from stasher.controller.feed import ChangeFeed, FeedEvent
from stasher.controller.jobs import JobCompletionWatcher
from stasher.controller.policies import PolicyReconciler
from stasher.controller.queue import ItemExponentialRateLimiter, WorkQueue
from stasher.controller.rbac import RbacEnsurer
from stasher.controller.recoveries import RecoveryReconciler
from stasher.controller.status import StatusWriter
from stasher.controller.store import Store
from stasher.resources.backup_policy import BackupPolicy
from stasher.resources.custom import CustomResource
from stasher.resources.recovery_request import RecoveryRequest
from stasher.resources.workload import WorkloadResource
from stasher.sensors import OperatorSensor
from stasher.types.settings import Settings

T = TypeVar("T", bound=CustomResource)

logger = logging.getLogger(__name__)

Reconcile = Callable[[str], Awaitable[None]]


class ErrorReporter:
    """Process-wide sink for keys that exhausted their retries."""

    def __init__(self, sensor: Optional[OperatorSensor] = None):
        self.sensor = sensor
        self.count = 0

    def report(self, kind: str, key: str, error: Exception) -> None:
        self.count += 1
        logger.error(f"Dropping {kind} {key} out of the queue: {error}")
        if self.sensor:
            self.sensor.on_reconcile_dropped(kind, key, error)


class KindController(Generic[T]):
    """Change feed, dispatcher, work queue and workers of one resource kind."""

    def __init__(
        self,
        kind: Type[T],
        client: CustomResourceClient[T],
        settings: Settings,
        recorder: EventRecorder,
        reporter: ErrorReporter,
        sensor: Optional[OperatorSensor] = None,
    ):
        self.kind = kind
        self.settings = settings
        self.reporter = reporter
        self.sensor = sensor
        self.store: Store[T] = Store()
        self.channel: "asyncio.Queue[FeedEvent[T]]" = asyncio.Queue(
            maxsize=settings.event_channel_size
        )
        self.feed = ChangeFeed(
            client,
            self.store,
            self.channel,
            namespace=settings.watch_namespace,
            resync_period=settings.resync_period_seconds,
            retry_delay=settings.watch_retry_delay_seconds,
        )
        self.queue = WorkQueue(
            kind.KIND,
            ItemExponentialRateLimiter(
                settings.rate_limit_base_delay_seconds,
                settings.rate_limit_max_delay_seconds,
            ),
            sensor=sensor,
        )
        self.dispatcher = Dispatcher(self.queue, recorder, sensor=sensor)
        self.reconcile: Optional[Reconcile] = None

    @property
    def name(self) -> str:
        return self.kind.KIND

    def handle_error(self, key: str, error: Exception) -> None:
        """Retry `key` with backoff until the ceiling, then report it once."""
        requeues = self.queue.num_requeues(key)
        if requeues < self.settings.max_num_requeues:
            logger.warning(f"Error syncing {self.name} {key} (attempt {requeues + 1}): {error}")
            self.queue.add_rate_limited(key)
            if self.sensor:
                self.sensor.on_reconcile_retry(self.name, key, requeues + 1)
            return
        self.queue.forget(key)
        self.reporter.report(self.name, key, error)

    async def process_next_item(self) -> bool:
        """Reconcile one key, returns False once the queue is shut down."""
        key = await self.queue.get()
        if key is None:
            return False
        trigger = "retry" if self.queue.num_requeues(key) else "event"
        state = self.sensor.on_reconcile_start(self.name, key, trigger) if self.sensor else None
        try:
            await self.reconcile(key)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            self.handle_error(key, ex)
            if self.sensor:
                self.sensor.on_reconcile_complete(self.name, key, state, False, ex)
        else:
            self.queue.forget(key)
            if self.sensor:
                self.sensor.on_reconcile_complete(self.name, key, state, True)
        finally:
            self.queue.done(key)
        return True

    async def run_worker(self) -> None:
        while await self.process_next_item():
            pass


class Controller:
    """Owns one KindController per custom resource kind.

    Feeds and dispatchers start immediately; workers start once every feed
    has completed its first list, so reconcilers always read a warm cache.
    """

    def __init__(
        self,
        api_client: ApiClient,
        settings: Settings,
        sensor: Optional[OperatorSensor] = None,
        recorder: Optional[EventRecorder] = None,
    ):
        self.settings = settings
        self.sensor = sensor
        self.recorder = recorder or EventRecorder()
        self.reporter = ErrorReporter(sensor)

        self.policies: KindController[BackupPolicy] = KindController(
            BackupPolicy,
            CustomResourceClient(api_client, BackupPolicy, sensor),
            settings,
            self.recorder,
            self.reporter,
            sensor,
        )
        self.recoveries: KindController[RecoveryRequest] = KindController(
            RecoveryRequest,
            CustomResourceClient(api_client, RecoveryRequest, sensor),
            settings,
            self.recorder,
            self.reporter,
            sensor,
        )

        workloads = WorkloadResource(api_client, sensor)
        status = StatusWriter(api_client, sensor)
        self.job_watcher = JobCompletionWatcher(
            api_client,
            self.recorder,
            status,
            interval=settings.job_poll_interval_seconds,
            timeout=settings.job_poll_timeout_seconds,
            sensor=sensor,
        )
        self.policies.reconcile = PolicyReconciler(
            self.policies.store, workloads, self.recorder, settings
        ).reconcile
        self.recoveries.reconcile = RecoveryReconciler(
            self.recoveries.store,
            self.policies.store,
            workloads,
            RbacEnsurer(api_client, sensor),
            status,
            self.recorder,
            self.start_job_watcher,
            settings,
        ).reconcile

        self._tasks: List[asyncio.Task] = []
        self._watchers: Dict[str, asyncio.Task] = {}

    @property
    def kinds(self) -> List[KindController]:
        return [self.policies, self.recoveries]

    def start_job_watcher(self, request: RecoveryRequest, job: V1Job) -> None:
        """Watch `job` unless a watcher for `request` is already running."""
        if request.key in self._watchers:
            logger.debug(f"Job watcher for {request.key} already running")
            return
        task = asyncio.create_task(self.job_watcher.watch(request, job))
        self._watchers[request.key] = task
        task.add_done_callback(lambda t: self._watcher_done(request.key, t))

    def _watcher_done(self, key: str, task: asyncio.Task) -> None:
        if self._watchers.get(key) is task:
            del self._watchers[key]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Job watcher for RecoveryRequest {key} failed: {error}")

    async def wait_for_sync(self) -> None:
        await asyncio.gather(*(k.feed.has_synced.wait() for k in self.kinds))

    async def _run_workers(self) -> None:
        await self.wait_for_sync()
        logger.info("Caches synced, starting workers")
        workers = [
            k.run_worker()
            for k in self.kinds
            for _ in range(self.settings.workers_per_kind)
        ]
        await asyncio.gather(*workers)

    def start(self) -> None:
        for k in self.kinds:
            self._tasks.append(asyncio.create_task(k.feed.run()))
            self._tasks.append(asyncio.create_task(k.dispatcher.run(k.channel)))
        self._tasks.append(asyncio.create_task(self._run_workers()))
        logger.info(
            f"Controller started (namespace={self.settings.watch_namespace or '*'}, "
            f"workers={self.settings.workers_per_kind})"
        )

    async def stop(self) -> None:
        for k in self.kinds:
            k.queue.shut_down()
        tasks = self._tasks + list(self._watchers.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._watchers.clear()
        logger.info("Controller stopped")

    def queue_depths(self) -> Dict[str, int]:
        return {k.name: len(k.queue) for k in self.kinds}

    @property
    def dropped(self) -> int:
        return self.reporter.count
