import asyncio
import logging
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from kubernetes_asyncio.client import ApiException

from stasher.controller.client import ADDED, DELETED, MODIFIED, CustomResourceClient
from stasher.controller.store import DeletedFinalStateUnknown, Store
from stasher.resources.custom import CustomResource
from stasher.utils.errors import gone_error

T = TypeVar("T", bound=CustomResource)

logger = logging.getLogger(__name__)


class EventType(Enum):
    ADDED = "Added"
    UPDATED = "Updated"
    DELETED = "Deleted"


class FeedEvent(Generic[T]):
    """One change notification.

    Added carries `new`, Updated carries `old` and `new`, Deleted carries
    `old`, which is a DeletedFinalStateUnknown when the deletion was only
    noticed by a relist.
    """

    def __init__(
        self,
        type: EventType,
        new: Optional[T] = None,
        old: Union[T, DeletedFinalStateUnknown, None] = None,
    ):
        self.type = type
        self.new = new
        self.old = old

    def __repr__(self) -> str:
        return f"<FeedEvent {self.type.value} old={self.old!r} new={self.new!r}>"


class ChangeFeed(Generic[T]):
    """List and watch one kind into a Store, emitting typed events.

    Every watch window lasts one resync period; when it ends the feed lists
    again, so each object is re-examined at least once per period.
    """

    def __init__(
        self,
        client: CustomResourceClient[T],
        store: Store[T],
        channel: "asyncio.Queue[FeedEvent[T]]",
        namespace: str = "",
        resync_period: int = 300,
        retry_delay: float = 5.0,
    ):
        self.client = client
        self.store = store
        self.channel = channel
        self.namespace = namespace
        self.resync_period = resync_period
        self.retry_delay = retry_delay
        self.has_synced = asyncio.Event()

    @property
    def kind(self) -> str:
        return self.client.kind.KIND

    async def emit(self, event: FeedEvent[T]) -> None:
        await self.channel.put(event)

    async def relist(self) -> str:
        """Replace the store with a fresh list, returns its resourceVersion."""
        items, resource_version = await self.client.list(self.namespace)
        previous = self.store.replace(items)
        for obj in items:
            old = previous.pop(obj.key, None)
            if old is None:
                await self.emit(FeedEvent(EventType.ADDED, new=obj))
            elif old.resource_version != obj.resource_version:
                await self.emit(FeedEvent(EventType.UPDATED, new=obj, old=old))
        for key, old in previous.items():
            await self.emit(
                FeedEvent(EventType.DELETED, old=DeletedFinalStateUnknown(key, old))
            )
        self.has_synced.set()
        logger.debug(f"Listed {len(items)} {self.kind} object(s) at rv {resource_version}")
        return resource_version

    async def handle(self, event_type: str, obj: T) -> None:
        if event_type == DELETED:
            old = self.store.delete(obj.key)
            await self.emit(FeedEvent(EventType.DELETED, old=old or obj))
            return
        old = self.store.add(obj)
        if event_type == ADDED and old is None:
            await self.emit(FeedEvent(EventType.ADDED, new=obj))
        elif event_type in (ADDED, MODIFIED):
            await self.emit(FeedEvent(EventType.UPDATED, new=obj, old=old or obj))

    async def run_once(self) -> None:
        """One list followed by one watch window."""
        resource_version = await self.relist()
        async for event_type, obj in self.client.watch(
            self.namespace, resource_version, self.resync_period
        ):
            await self.handle(event_type, obj)

    async def run(self) -> None:
        logger.info(f"Starting {self.kind} change feed (namespace={self.namespace or '*'})")
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                logger.info(f"{self.kind} change feed stopped")
                raise
            except ApiException as ex:
                if gone_error(ex):
                    logger.info(f"{self.kind} watch expired, relisting")
                    continue
                logger.error(f"{self.kind} list/watch failed: {ex}")
                await asyncio.sleep(self.retry_delay)
            except Exception as ex:
                logger.exception(f"{self.kind} change feed error: {ex}")
                await asyncio.sleep(self.retry_delay)
