"""Publish-subscribe broadcasting to actors, with optional per-subscriber filters."""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from troupe.delivery import DeliveryKind, DeliveryStrategy, deliver

M = TypeVar("M")

_SPAWNED_KINDS = frozenset({DeliveryKind.SPAWNED, DeliveryKind.SPAWNED_WITH_TIMEOUT})


class PubSub(Generic[M]):
    """Broadcasts each published message to all subscribers whose filter accepts it.

    Subscribers are keyed by actor id, so subscribing an actor again replaces
    its earlier subscription. Subscribers found no longer running during an
    immediate delivery are removed.
    """

    def __init__(self, delivery_strategy: DeliveryStrategy | None = None) -> None:
        self.delivery_strategy = delivery_strategy or DeliveryStrategy.best_effort()
        self._subscribers: dict[int, tuple[Any, Callable[[M], bool] | None]] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, recipient: Any) -> None:
        """Subscribe ``recipient`` to every published message."""
        self._subscribers[recipient.id] = (recipient, None)

    def subscribe_filter(self, recipient: Any, predicate: Callable[[M], bool]) -> None:
        """Subscribe ``recipient`` to published messages for which ``predicate`` is true."""
        self._subscribers[recipient.id] = (recipient, predicate)

    async def publish(self, message: M) -> None:
        """Send ``message`` to every subscriber whose filter accepts it."""
        strategy = self.delivery_strategy
        in_background = strategy.kind in _SPAWNED_KINDS
        dead: list[int] = []
        for actor_id, (recipient, predicate) in list(self._subscribers.items()):
            if predicate is not None and not predicate(message):
                continue
            on_dead = None if in_background else functools.partial(dead.append, actor_id)
            await deliver(recipient, message, strategy, on_dead)
        for actor_id in dead:
            self._subscribers.pop(actor_id, None)