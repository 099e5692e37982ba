"""Message queue with exchanges, queues, bindings and typed consumers."""

from __future__ import annotations

import functools
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from troupe.delivery import DeliveryKind, DeliveryStrategy, deliver
from troupe.exchange import Binding, Exchange, ExchangeType, HeaderMatch

_SPAWNED_KINDS = frozenset({DeliveryKind.SPAWNED, DeliveryKind.SPAWNED_WITH_TIMEOUT})

FilterFn = Callable[[Mapping[str, str]], bool]


class AmqpError(Exception):
    """A message queue operation failed."""

    description = "message queue error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.description)


class ExchangeAlreadyExists(AmqpError):
    description = "Exchange already exists"


class QueueAlreadyExists(AmqpError):
    description = "Queue already exists"


class ExchangeNotFound(AmqpError):
    description = "Exchange not found"


class QueueNotFound(AmqpError):
    description = "Queue not found"


class BindingAlreadyExists(AmqpError):
    description = "Binding already exists"


class HeadersRequired(AmqpError):
    description = "Headers required"


class InvalidHeaderMatch(AmqpError):
    description = "Invalid header match"


class ExchangeInUse(AmqpError):
    description = "Exchange in use"


class QueueInUse(AmqpError):
    description = "Queue in use"


@dataclass
class MessageProperties:
    """Properties of a published message.

    ``headers`` drive routing through a headers exchange. ``filter`` is called
    with each consumer's tags and decides whether that consumer gets the message.
    """

    headers: dict[str, str] | None = None
    filter: FilterFn | None = None


@dataclass
class _Registration:
    recipient: Any
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class _Queue:
    auto_delete: bool = False
    recipients: dict[type, list[_Registration]] = field(default_factory=dict)


def _accept_all(_tags: Mapping[str, str]) -> bool:
    return True


class MessageQueue:
    """Exchanges route published messages to queues, whose consumers receive them.

    Every declared queue is bound to the default exchange (named ``""``) under
    its own name. Consumers register for one message type and only receive
    messages of exactly that type. Consumers found no longer running are
    cancelled.
    """

    def __init__(self, delivery_strategy: DeliveryStrategy | None = None) -> None:
        self.delivery_strategy = delivery_strategy or DeliveryStrategy.best_effort()
        self._exchanges: dict[str, Exchange] = {}
        self._queues: dict[str, _Queue] = {}
        self._default_exchange = Exchange("", ExchangeType.DIRECT)

    def exchange_declare(
        self, exchange: str, kind: ExchangeType = ExchangeType.DIRECT, auto_delete: bool = False
    ) -> None:
        """Declare a new exchange; the name must be non-empty and unused."""
        if not exchange or exchange in self._exchanges:
            raise ExchangeAlreadyExists()
        self._exchanges[exchange] = Exchange(exchange, kind, auto_delete)

    def exchange_delete(self, exchange: str, if_unused: bool = False) -> None:
        """Delete an exchange, refusing if ``if_unused`` and it still has bindings."""
        found = self._exchanges.get(exchange)
        if found is None:
            raise ExchangeNotFound()
        if if_unused and found.bindings:
            raise ExchangeInUse()
        del self._exchanges[exchange]

    def queue_declare(self, queue: str, auto_delete: bool = False) -> None:
        """Declare a new queue and bind it to the default exchange under its name."""
        if queue in self._queues:
            raise QueueAlreadyExists()
        self._queues[queue] = _Queue(auto_delete)
        self._default_exchange.bindings.append(Binding(queue, queue))

    def queue_delete(self, queue: str, if_unused: bool = False) -> None:
        """Delete a queue and its bindings, refusing if ``if_unused`` and it has consumers.

        Auto-delete exchanges left without bindings are deleted too.
        """
        found = self._queues.get(queue)
        if found is None:
            raise QueueNotFound()
        if if_unused and found.recipients:
            raise QueueInUse()
        del self._queues[queue]

        self._default_exchange.bindings[:] = [
            b for b in self._default_exchange.bindings if b.queue_name != queue
        ]
        emptied = []
        for exchange in self._exchanges.values():
            exchange.bindings[:] = [b for b in exchange.bindings if b.queue_name != queue]
            if not exchange.bindings and exchange.auto_delete:
                emptied.append(exchange.name)
        for name in emptied:
            del self._exchanges[name]

    def queue_bind(
        self,
        queue: str,
        exchange: str,
        routing_key: str = "",
        arguments: Mapping[str, str] | None = None,
    ) -> None:
        """Bind a queue to an exchange under a routing key or pattern.

        For a headers exchange, ``arguments`` hold the header rules and the
        ``x-match`` mode (``all`` or ``any``).
        """
        if queue not in self._queues:
            raise QueueNotFound()
        target = self._exchanges.get(exchange)
        if target is None:
            raise ExchangeNotFound()
        if any(b.queue_name == queue and b.routing_key == routing_key for b in target.bindings):
            raise BindingAlreadyExists()

        header_match = None
        if target.kind is ExchangeType.HEADERS:
            try:
                header_match = HeaderMatch.from_arguments(dict(arguments or {}))
            except ValueError:
                raise InvalidHeaderMatch() from None

        target.bindings.append(Binding(queue, routing_key, header_match))

    def queue_unbind(self, queue: str, exchange: str, routing_key: str = "") -> None:
        """Remove a binding; an auto-delete exchange left without bindings is deleted."""
        target = self._exchanges.get(exchange)
        if target is None:
            raise ExchangeNotFound()
        target.bindings[:] = [
            b for b in target.bindings if not (b.queue_name == queue and b.routing_key == routing_key)
        ]
        if not target.bindings and target.auto_delete:
            del self._exchanges[exchange]

    async def basic_publish(
        self,
        exchange: str,
        routing_key: str,
        message: Any,
        properties: MessageProperties | None = None,
    ) -> None:
        """Publish ``message`` through an exchange; ``""`` is the default exchange."""
        if not exchange:
            target = self._default_exchange
        else:
            target = self._exchanges.get(exchange)
            if target is None:
                raise ExchangeNotFound()

        props = properties or MessageProperties()
        if target.kind is ExchangeType.HEADERS and props.headers is None:
            raise HeadersRequired()

        accept = props.filter or _accept_all
        for queue_name in target.route(routing_key, props.headers):
            await self._deliver(queue_name, message, accept)

    async def _deliver(self, queue_name: str, message: Any, accept: FilterFn) -> None:
        queue = self._queues.get(queue_name)
        if queue is None:
            return
        message_type = type(message)
        registrations = queue.recipients.get(message_type)
        if not registrations:
            return

        strategy = self.delivery_strategy
        in_background = strategy.kind in _SPAWNED_KINDS
        to_cancel: list[Any] = []
        for registration in list(registrations):
            if not accept(registration.tags):
                continue
            if in_background:
                on_dead = functools.partial(
                    self._cancel_quietly, queue_name, registration.recipient, message_type
                )
            else:
                on_dead = functools.partial(to_cancel.append, registration.recipient)
            await deliver(registration.recipient, message, strategy, on_dead)

        for recipient in to_cancel:
            self._cancel_quietly(queue_name, recipient, message_type)

    def _cancel_quietly(self, queue: str, recipient: Any, message_type: type) -> None:
        try:
            self.basic_cancel(queue, recipient, message_type)
        except AmqpError:
            pass

    def basic_consume(
        self,
        queue: str,
        recipient: Any,
        message_type: type,
        tags: Mapping[str, str] | None = None,
    ) -> None:
        """Register ``recipient`` for messages of ``message_type`` arriving on ``queue``.

        Registering the same actor again for the same type has no effect.
        """
        found = self._queues.get(queue)
        if found is None:
            raise QueueNotFound()
        registrations = found.recipients.setdefault(message_type, [])
        if not any(reg.recipient.id == recipient.id for reg in registrations):
            registrations.append(_Registration(recipient, dict(tags or {})))

    def basic_cancel(self, queue: str, recipient: Any, message_type: type) -> None:
        """Stop delivering ``message_type`` from ``queue`` to ``recipient``.

        An auto-delete queue is then deleted if it has no consumers left, and
        QueueInUse is raised if it still has some.
        """
        found = self._queues.get(queue)
        if found is None:
            raise QueueNotFound()
        registrations = found.recipients.get(message_type)
        if registrations is not None:
            registrations[:] = [reg for reg in registrations if reg.recipient.id != recipient.id]
        found.recipients = {k: v for k, v in found.recipients.items() if v}

        if found.auto_delete:
            self.queue_delete(queue, if_unused=True)