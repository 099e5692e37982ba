"""Sends messages to actors after a delay or at a fixed interval."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Coroutine
from typing import Any

from troupe.delivery import ActorNotRunning, SendError

logger = logging.getLogger(__name__)

# A tick this late or less still counts as on time.
_TOLERANCE = 0.005


class MissedTickBehavior(enum.Enum):
    """What an interval does after a tick fired late."""

    BURST = "burst"
    """Fire the missed ticks as fast as possible, then keep the original cadence."""
    DELAY = "delay"
    """Start the period afresh from the late tick."""
    SKIP = "skip"
    """Drop the missed ticks and fire on the next point of the original cadence."""


def _next_deadline(deadline: float, now: float, period: float, behavior: MissedTickBehavior) -> float:
    if now <= deadline + _TOLERANCE:
        return deadline + period
    match behavior:
        case MissedTickBehavior.BURST:
            return deadline + period
        case MissedTickBehavior.DELAY:
            return now + period
        case MissedTickBehavior.SKIP:
            return now + period - ((now - deadline) % period)
    raise ValueError(f"unknown missed tick behavior: {behavior!r}")


async def _sleep_until(loop: asyncio.AbstractEventLoop, deadline: float) -> None:
    await asyncio.sleep(max(0.0, deadline - loop.time()))


class Scheduler:
    """Runs background tasks that send messages to actors at scheduled times.

    Each scheduled send returns its task; cancelling the task aborts it.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    async def __aenter__(self) -> Scheduler:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def set_timeout(self, recipient: Any, delay: float, message: Any) -> asyncio.Task[None]:
        """Send ``message`` to ``recipient`` once, ``delay`` seconds from now.

        Nothing is sent if the recipient is no longer alive by then.
        """
        if delay < 0:
            raise ValueError("delay must not be negative")
        loop = asyncio.get_running_loop()
        return self._spawn(self._timeout(loop, recipient, loop.time() + delay, message))

    @staticmethod
    async def _timeout(
        loop: asyncio.AbstractEventLoop, recipient: Any, deadline: float, message: Any
    ) -> None:
        await _sleep_until(loop, deadline)
        if not recipient.is_alive():
            return
        try:
            await recipient.tell(message)
        except SendError as exc:
            logger.debug("scheduled message not delivered: %s", exc)

    def set_interval(
        self,
        recipient: Any,
        period: float,
        message: Any,
        start_delay: float | None = None,
        missed_tick_behavior: MissedTickBehavior = MissedTickBehavior.BURST,
    ) -> asyncio.Task[None]:
        """Send ``message`` to ``recipient`` every ``period`` seconds.

        The first send happens now, or after ``start_delay`` seconds. The task
        ends once the recipient is no longer running.
        """
        if period <= 0:
            raise ValueError("period must be positive")
        if start_delay is not None and start_delay < 0:
            raise ValueError("start delay must not be negative")
        loop = asyncio.get_running_loop()
        first = loop.time() + (start_delay or 0.0)
        return self._spawn(
            self._interval(loop, recipient, first, period, message, missed_tick_behavior)
        )

    @staticmethod
    async def _interval(
        loop: asyncio.AbstractEventLoop,
        recipient: Any,
        deadline: float,
        period: float,
        message: Any,
        behavior: MissedTickBehavior,
    ) -> None:
        while True:
            await _sleep_until(loop, deadline)
            deadline = _next_deadline(deadline, loop.time(), period, behavior)
            if not recipient.is_alive():
                return
            try:
                await recipient.tell(message)
            except ActorNotRunning:
                return

    async def close(self) -> None:
        """Cancel every scheduled send and wait for the tasks to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)