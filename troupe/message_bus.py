"""Message bus that routes published messages by their exact type."""

from __future__ import annotations

import functools
from typing import Any

from troupe.delivery import DeliveryKind, DeliveryStrategy, deliver

_SPAWNED_KINDS = frozenset({DeliveryKind.SPAWNED, DeliveryKind.SPAWNED_WITH_TIMEOUT})


class MessageBus:
    """Delivers each published message to every recipient registered for its type.

    Routing uses the exact type of the message; subclasses are not routed to
    recipients registered for a base class. Recipients found no longer running
    are dropped from the registrations for that type.
    """

    def __init__(self, delivery_strategy: DeliveryStrategy | None = None) -> None:
        self.delivery_strategy = delivery_strategy or DeliveryStrategy.best_effort()
        self._subscriptions: dict[type, list[Any]] = {}

    def __len__(self) -> int:
        return sum(len(recipients) for recipients in self._subscriptions.values())

    def register(self, message_type: type, recipient: Any) -> None:
        """Register ``recipient`` to receive messages of ``message_type``."""
        self._subscriptions.setdefault(message_type, []).append(recipient)

    def unregister(self, message_type: type, actor_id: int) -> None:
        """Stop delivering messages of ``message_type`` to the actor ``actor_id``."""
        recipients = self._subscriptions.get(message_type)
        if recipients is None:
            return
        recipients[:] = [recipient for recipient in recipients if recipient.id != actor_id]
        if not recipients:
            del self._subscriptions[message_type]

    async def publish(self, message: Any) -> None:
        """Deliver ``message`` to every recipient registered for its type."""
        message_type = type(message)
        recipients = self._subscriptions.get(message_type)
        if not recipients:
            return
        strategy = self.delivery_strategy
        in_background = strategy.kind in _SPAWNED_KINDS
        dead: list[int] = []
        for recipient in list(recipients):
            if in_background:
                on_dead = functools.partial(self.unregister, message_type, recipient.id)
            else:
                on_dead = functools.partial(dead.append, recipient.id)
            await deliver(recipient, message, strategy, on_dead)
        for actor_id in dead:
            self.unregister(message_type, actor_id)