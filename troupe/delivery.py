"""Lightweight asyncio actors and the strategies used to deliver messages to them."""

from __future__ import annotations

import asyncio
import enum
import inspect
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 64

_STOP = object()
_ids = itertools.count(1)
_background: set[asyncio.Task[bool]] = set()


class DeliveryKind(enum.Enum):
    """How a message is handed to a subscriber's mailbox."""

    GUARANTEED = "guaranteed"
    BEST_EFFORT = "best_effort"
    TIMED_DELIVERY = "timed_delivery"
    SPAWNED = "spawned"
    SPAWNED_WITH_TIMEOUT = "spawned_with_timeout"


_TIMED_KINDS = frozenset({DeliveryKind.TIMED_DELIVERY, DeliveryKind.SPAWNED_WITH_TIMEOUT})
_SPAWNED_KINDS = frozenset({DeliveryKind.SPAWNED, DeliveryKind.SPAWNED_WITH_TIMEOUT})


@dataclass(frozen=True)
class DeliveryStrategy:
    """A delivery kind, with the timeout in seconds for the timed kinds.

    - guaranteed: wait until the mailbox has room.
    - best effort: skip recipients whose mailbox is full.
    - timed: wait for room, but no longer than the timeout.
    - spawned: deliver from a background task, waiting for room.
    - spawned with timeout: deliver from a background task with a timeout.
    """

    kind: DeliveryKind = DeliveryKind.BEST_EFFORT
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.kind in _TIMED_KINDS:
            if self.timeout is None:
                raise ValueError(f"{self.kind.value} delivery needs a timeout")
            if self.timeout < 0:
                raise ValueError("timeout must not be negative")
        elif self.timeout is not None:
            raise ValueError(f"{self.kind.value} delivery takes no timeout")

    @classmethod
    def guaranteed(cls) -> DeliveryStrategy:
        return cls(DeliveryKind.GUARANTEED)

    @classmethod
    def best_effort(cls) -> DeliveryStrategy:
        return cls(DeliveryKind.BEST_EFFORT)

    @classmethod
    def timed(cls, timeout: float) -> DeliveryStrategy:
        return cls(DeliveryKind.TIMED_DELIVERY, timeout)

    @classmethod
    def spawned(cls) -> DeliveryStrategy:
        return cls(DeliveryKind.SPAWNED)

    @classmethod
    def spawned_with_timeout(cls, timeout: float) -> DeliveryStrategy:
        return cls(DeliveryKind.SPAWNED_WITH_TIMEOUT, timeout)


class SendError(Exception):
    """A message could not be put into an actor's mailbox."""

    description = "message could not be sent"

    def __init__(self, message: Any = None) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.description


class ActorNotRunning(SendError):
    description = "actor not running"


class MailboxFull(SendError):
    description = "mailbox full"


class SendTimeout(SendError):
    description = "timed out waiting for mailbox capacity"


class ActorRef:
    """Handle to an actor: a handler fed one message at a time from its mailbox.

    An exception raised while handling a message sent with ``tell`` stops the
    actor; one raised while handling ``ask`` is passed back to the caller.
    """

    def __init__(self, handler: Callable[[Any], Any], capacity: int | None = DEFAULT_CAPACITY) -> None:
        if capacity is not None and capacity < 1:
            raise ValueError("mailbox capacity must be at least 1")
        self.id = next(_ids)
        self.capacity = capacity
        self._handler = handler
        self._mailbox: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity or 0)
        self._accepting = True
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"actor-{self.id}")

    def __repr__(self) -> str:
        state = "alive" if self._running else "stopped"
        return f"ActorRef(id={self.id}, {state})"

    async def _run(self) -> None:
        current: asyncio.Future[Any] | None = None
        try:
            while True:
                item = await self._mailbox.get()
                if item is _STOP:
                    return
                message, current = item
                try:
                    result = self._handler(message)
                    if inspect.isawaitable(result):
                        result = await result
                except Exception as exc:
                    if current is None:
                        logger.error("actor %d stopped: handler failed", self.id, exc_info=exc)
                        return
                    if not current.done():
                        current.set_exception(exc)
                else:
                    if current is not None and not current.done():
                        current.set_result(result)
                current = None
        finally:
            self._running = False
            self._accepting = False
            if current is not None and not current.done():
                current.set_exception(ActorNotRunning(message))
            self._fail_pending()

    def _fail_pending(self) -> None:
        while True:
            try:
                item = self._mailbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            if item is _STOP:
                continue
            message, reply = item
            if reply is not None and not reply.done():
                reply.set_exception(ActorNotRunning(message))

    def _ensure_accepting(self, message: Any) -> None:
        if not self._accepting:
            raise ActorNotRunning(message)

    async def tell(self, message: Any) -> None:
        """Queue a message, waiting for room in the mailbox."""
        self._ensure_accepting(message)
        await self._mailbox.put((message, None))
        if not self._running:
            raise ActorNotRunning(message)

    def try_tell(self, message: Any) -> None:
        """Queue a message at once, or raise MailboxFull."""
        self._ensure_accepting(message)
        try:
            self._mailbox.put_nowait((message, None))
        except asyncio.QueueFull:
            raise MailboxFull(message) from None

    async def tell_timeout(self, message: Any, timeout: float) -> None:
        """Queue a message, waiting at most ``timeout`` seconds for room."""
        self._ensure_accepting(message)
        item = (message, None)
        try:
            self._mailbox.put_nowait(item)
            return
        except asyncio.QueueFull:
            pass
        try:
            await asyncio.wait_for(self._mailbox.put(item), timeout)
        except TimeoutError:
            raise SendTimeout(message) from None
        if not self._running:
            raise ActorNotRunning(message)

    async def ask(self, message: Any) -> Any:
        """Send a message and wait for the handler's reply."""
        self._ensure_accepting(message)
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._mailbox.put((message, reply))
        if not self._running and not reply.done():
            raise ActorNotRunning(message)
        return await reply

    async def stop(self) -> None:
        """Stop gracefully: messages already queued are handled first."""
        if not self._accepting:
            raise ActorNotRunning()
        self._accepting = False
        await self._mailbox.put(_STOP)

    async def wait_for_shutdown(self) -> None:
        await asyncio.wait([self._task])

    def is_alive(self) -> bool:
        return self._running


def spawn(handler: Callable[[Any], Any], capacity: int | None = DEFAULT_CAPACITY) -> ActorRef:
    """Start an actor running ``handler``; ``capacity=None`` gives an unbounded mailbox."""
    return ActorRef(handler, capacity)


async def _attempt(
    recipient: Any,
    message: Any,
    strategy: DeliveryStrategy,
    on_dead: Callable[[], Any] | None,
) -> bool:
    try:
        match strategy.kind:
            case DeliveryKind.GUARANTEED | DeliveryKind.SPAWNED:
                await recipient.tell(message)
            case DeliveryKind.BEST_EFFORT:
                recipient.try_tell(message)
            case DeliveryKind.TIMED_DELIVERY | DeliveryKind.SPAWNED_WITH_TIMEOUT:
                await recipient.tell_timeout(message, strategy.timeout)
    except ActorNotRunning:
        if on_dead is not None:
            on_dead()
        return False
    except SendError:
        return False
    return True


async def deliver(
    recipient: Any,
    message: Any,
    strategy: DeliveryStrategy,
    on_dead: Callable[[], Any] | None = None,
) -> bool | asyncio.Task[bool]:
    """Deliver ``message`` to ``recipient`` as ``strategy`` says.

    ``on_dead`` is called when the recipient is no longer running. Immediate
    strategies return whether the message was accepted; spawned strategies
    return the background task, whose result says the same.
    """
    if strategy.kind in _SPAWNED_KINDS:
        task = asyncio.get_running_loop().create_task(_attempt(recipient, message, strategy, on_dead))
        _background.add(task)
        task.add_done_callback(_background.discard)
        return task
    return await _attempt(recipient, message, strategy, on_dead)