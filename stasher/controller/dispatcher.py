import asyncio
import logging
from typing import Generic, Optional, TypeVar

from stasher.controller.events import EventRecorder
from stasher.controller.feed import EventType, FeedEvent
from stasher.controller.queue import WorkQueue
from stasher.controller.store import deletion_handling_key
from stasher.resources.custom import CustomResource
from stasher.sensors import OperatorSensor
from stasher.utils.errors import InvalidResourceError

T = TypeVar("T", bound=CustomResource)

logger = logging.getLogger(__name__)


class Dispatcher(Generic[T]):
    """Decides which change notifications become work queue keys.

    * Added: queued when the spec is valid, otherwise a Warning event.
    * Updated: queued when the new spec is valid and differs from the old one.
    * Deleted: always queued.
    """

    def __init__(
        self,
        queue: WorkQueue,
        recorder: EventRecorder,
        sensor: Optional[OperatorSensor] = None,
    ):
        self.queue = queue
        self.recorder = recorder
        self.sensor = sensor

    def _valid(self, obj: T) -> bool:
        try:
            obj.validate()
        except InvalidResourceError as ex:
            logger.warning(str(ex))
            self.recorder.warning(obj.event_body(), obj.INVALID_REASON, str(ex))
            return False
        return True

    def dispatch(self, event: FeedEvent[T]) -> bool:
        """Apply the filter rules to one event, returns whether a key was queued."""
        if event.type is EventType.ADDED:
            if not self._valid(event.new):
                return False
            key = event.new.key
        elif event.type is EventType.UPDATED:
            if not self._valid(event.new):
                return False
            if event.new.spec_equal(event.old):
                return False
            key = event.new.key
        else:
            key = deletion_handling_key(event.old)
        logger.debug(f"Queueing {self.queue.name} {key} ({event.type.value})")
        self.queue.add(key)
        return True

    async def run(self, channel: "asyncio.Queue[FeedEvent[T]]") -> None:
        while True:
            event = await channel.get()
            try:
                enqueued = self.dispatch(event)
            except Exception as ex:
                logger.exception(f"Failed to dispatch {event!r}: {ex}")
                enqueued = False
            finally:
                channel.task_done()
            if self.sensor:
                self.sensor.on_feed_event(self.queue.name, event.type.value, enqueued)
