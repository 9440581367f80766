import asyncio
import logging
import time
from typing import Awaitable, Callable

from stasher.utils.errors import PollTimeoutError

logger = logging.getLogger(__name__)


async def poll_until(
    condition: Callable[[], Awaitable[bool]],
    *,
    interval: float,
    timeout: float,
    description: str = "condition",
) -> None:
    """Await `condition` every `interval` seconds until it returns True.

    Raises PollTimeoutError once `timeout` seconds of wall-clock time have
    passed. Errors raised by `condition` propagate to the caller. Cancelling
    the awaiting task stops the poll at its next sleep.
    """
    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        attempt += 1
        if await condition():
            logger.debug(f"{description} satisfied after {attempt} attempt(s)")
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise PollTimeoutError(
                f"timed out after {timeout}s waiting for {description}"
            )
        await asyncio.sleep(min(interval, remaining))
