"""Topic-based message broker with glob subscriptions."""

from __future__ import annotations

import functools
from typing import Any, Generic, TypeVar

from troupe.delivery import DeliveryKind, DeliveryStrategy, deliver
from troupe.pattern import TopicPattern

M = TypeVar("M")

_SPAWNED_KINDS = frozenset({DeliveryKind.SPAWNED, DeliveryKind.SPAWNED_WITH_TIMEOUT})


def _as_pattern(topic: str | TopicPattern) -> TopicPattern:
    return topic if isinstance(topic, TopicPattern) else TopicPattern(topic)


class Broker(Generic[M]):
    """Routes messages published on a topic to every recipient whose
    subscription pattern matches it. Recipients found no longer running
    are dropped from their subscription."""

    def __init__(self, delivery_strategy: DeliveryStrategy | None = None) -> None:
        self.delivery_strategy = delivery_strategy or DeliveryStrategy.best_effort()
        self._subscriptions: dict[TopicPattern, list[Any]] = {}

    def subscribe(self, topic: str | TopicPattern, recipient: Any) -> None:
        """Subscribe ``recipient`` to topics matching ``topic``."""
        self._subscriptions.setdefault(_as_pattern(topic), []).append(recipient)

    def unsubscribe(self, actor_id: int, topic: str | TopicPattern | None = None) -> None:
        """Remove an actor from one pattern, or from all patterns if ``topic`` is None."""
        if topic is None:
            for pattern in list(self._subscriptions):
                self._remove(pattern, actor_id)
        else:
            self._remove(_as_pattern(topic), actor_id)

    def _remove(self, pattern: TopicPattern, actor_id: int) -> None:
        recipients = self._subscriptions.get(pattern)
        if recipients is None:
            return
        recipients[:] = [recipient for recipient in recipients if recipient.id != actor_id]
        if not recipients:
            del self._subscriptions[pattern]

    async def publish(self, topic: str, message: M) -> None:
        """Deliver ``message`` to every subscriber whose pattern matches ``topic``."""
        strategy = self.delivery_strategy
        in_background = strategy.kind in _SPAWNED_KINDS
        dead: list[tuple[TopicPattern, int]] = []
        for pattern, recipients in list(self._subscriptions.items()):
            if not pattern.matches(topic):
                continue
            for recipient in list(recipients):
                if in_background:
                    on_dead = functools.partial(self.unsubscribe, recipient.id, pattern)
                else:
                    on_dead = functools.partial(dead.append, (pattern, recipient.id))
                await deliver(recipient, message, strategy, on_dead)
        for pattern, actor_id in dead:
            self._remove(pattern, actor_id)