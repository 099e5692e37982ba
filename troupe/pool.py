"""A fixed-size pool of actors that spreads work over the least loaded worker."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from troupe.delivery import ActorNotRunning, ActorRef, SendError

logger = logging.getLogger(__name__)

Factory = Callable[[], ActorRef | Awaitable[ActorRef]]


@dataclass(eq=False)
class _Slot:
    actor: ActorRef
    load: int = 0


class ActorPool:
    """A fixed set of worker actors made by ``factory``.

    ``dispatch`` hands a message to the worker with the fewest messages in
    flight; ``broadcast`` sends a message to every worker. A worker that stops
    is replaced by a fresh one from the factory. Use the pool as an async
    context manager to stop watching its workers when done.
    """

    def __init__(self, size: int, factory: Callable[[], ActorRef]) -> None:
        _check_size(size)
        self._setup(size, [factory() for _ in range(size)], factory)

    @classmethod
    async def create_async(
        cls, size: int, factory: Callable[[], Awaitable[ActorRef]]
    ) -> ActorPool:
        """Build a pool whose workers come from an async factory."""
        _check_size(size)
        actors = await asyncio.gather(*(factory() for _ in range(size)))
        pool = cls.__new__(cls)
        pool._setup(size, list(actors), factory)
        return pool

    def _setup(self, size: int, actors: list[ActorRef], factory: Factory) -> None:
        self.size = size
        self._factory = factory
        self._slots = [_Slot(actor) for actor in actors]
        loop = asyncio.get_running_loop()
        self._watchers = [
            loop.create_task(self._watch(index), name=f"pool-watch-{index}")
            for index in range(size)
        ]

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return f"ActorPool(size={self.size}, workers={self.workers()!r})"

    async def __aenter__(self) -> ActorPool:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self._shutdown()

    async def _shutdown(self) -> None:
        for watcher in self._watchers:
            watcher.cancel()
        await asyncio.gather(*self._watchers, return_exceptions=True)

    async def _watch(self, index: int) -> None:
        while True:
            await self._slots[index].actor.wait_for_shutdown()
            try:
                replacement = self._factory()
                if inspect.isawaitable(replacement):
                    replacement = await replacement
            except Exception:
                logger.exception("actor pool could not replace worker %d", index)
                return
            self._slots[index] = _Slot(replacement)

    def workers(self) -> list[ActorRef]:
        """The current worker actors, in slot order."""
        return [slot.actor for slot in self._slots]

    async def dispatch(self, message: Any) -> Any:
        """Ask the least loaded worker to handle ``message`` and return its reply.

        Workers that are no longer running are skipped; if none takes the
        message, ActorNotRunning is raised. Errors from the handler propagate.
        """
        tried: set[_Slot] = set()
        for _ in range(len(self._slots)):
            candidates = [slot for slot in self._slots if slot not in tried]
            if not candidates:
                break
            slot = min(candidates, key=lambda candidate: candidate.load)
            tried.add(slot)
            slot.load += 1
            try:
                return await slot.actor.ask(message)
            except ActorNotRunning as exc:
                if exc.message is not message:
                    raise
            finally:
                slot.load -= 1
        raise ActorNotRunning(message)

    async def broadcast(self, message: Any) -> list[SendError | None]:
        """Tell every worker ``message``; one entry per worker, None where it was accepted."""
        results = await asyncio.gather(
            *(slot.actor.tell(message) for slot in self._slots), return_exceptions=True
        )
        outcome: list[SendError | None] = []
        for result in results:
            if isinstance(result, SendError):
                outcome.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.append(None)
        return outcome


def _check_size(size: int) -> None:
    if size < 1:
        raise ValueError("an actor pool needs at least one worker")