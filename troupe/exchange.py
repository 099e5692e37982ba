"""Exchanges and bindings: how a published message picks its target queues."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from troupe.pattern import TopicPattern


class ExchangeType(enum.Enum):
    """The routing rule an exchange applies to its bindings."""

    DIRECT = "direct"
    """Route on an exact routing-key match."""
    TOPIC = "topic"
    """Route on a glob match of the binding key against the routing key."""
    FANOUT = "fanout"
    """Route to every bound queue."""
    HEADERS = "headers"
    """Route on the message headers."""


@dataclass
class HeaderMatch:
    """Header rules of a binding: all of them must match, or any one of them."""

    match_all: bool
    rules: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, str]) -> HeaderMatch:
        """Build the rules from binding arguments.

        ``x-match`` selects ``all`` (the default) or ``any``; every other key
        starting with ``x-`` is ignored. Any other ``x-match`` value raises
        ValueError.
        """
        mode = arguments.get("x-match", "all")
        rules = {key: value for key, value in arguments.items() if not key.startswith("x-")}
        match mode:
            case "all":
                return cls(True, rules)
            case "any":
                return cls(False, rules)
            case _:
                raise ValueError(f"invalid header match: {mode!r}")

    def matches(self, headers: Mapping[str, str]) -> bool:
        checks = (key in headers and headers[key] == value for key, value in self.rules.items())
        return all(checks) if self.match_all else any(checks)


@dataclass
class Binding:
    """A queue bound to an exchange under a routing key or pattern."""

    queue_name: str
    routing_key: str
    header_match: HeaderMatch | None = None


@dataclass
class Exchange:
    """A named exchange holding the bindings it routes messages through."""

    name: str
    kind: ExchangeType = ExchangeType.DIRECT
    auto_delete: bool = False
    bindings: list[Binding] = field(default_factory=list)

    def route(self, routing_key: str, headers: Mapping[str, str] | None = None) -> list[str]:
        """Names of the queues a message with this key and headers goes to.

        Each queue appears once, in binding order. A headers exchange raises
        ValueError when no headers are given.
        """
        return list(dict.fromkeys(self._targets(routing_key, headers)))

    def _targets(self, routing_key: str, headers: Mapping[str, str] | None) -> Iterable[str]:
        match self.kind:
            case ExchangeType.DIRECT:
                return (b.queue_name for b in self.bindings if b.routing_key == routing_key)
            case ExchangeType.TOPIC:
                return [
                    b.queue_name
                    for b in self.bindings
                    if TopicPattern(b.routing_key).matches(routing_key)
                ]
            case ExchangeType.FANOUT:
                return (b.queue_name for b in self.bindings)
            case ExchangeType.HEADERS:
                if headers is None:
                    raise ValueError("headers required for a headers exchange")
                return (
                    b.queue_name
                    for b in self.bindings
                    if b.header_match is not None and b.header_match.matches(headers)
                )
        raise ValueError(f"unknown exchange type: {self.kind!r}")