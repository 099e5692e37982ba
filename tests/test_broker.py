import asyncio
import itertools

import pytest

from troupe.broker import Broker
from troupe.delivery import (
    ActorNotRunning,
    DeliveryStrategy,
    MailboxFull,
    SendTimeout,
    spawn,
)
from troupe.pattern import PatternError, TopicPattern

_fake_ids = itertools.count(-1, -1)


class _FakeRecipient:
    def __init__(self, error=None):
        self.id = next(_fake_ids)
        self.error = error
        self.calls = []

    def _receive(self, message):
        self.calls.append(message)
        if self.error is not None:
            raise self.error(message)

    async def tell(self, message):
        self._receive(message)

    def try_tell(self, message):
        self._receive(message)

    async def tell_timeout(self, message, timeout):
        self._receive(message)


async def _settle():
    for _ in range(10):
        await asyncio.sleep(0)


def _collector():
    received = []
    return spawn(received.append), received


async def _drain(*refs):
    await _settle()
    for ref in refs:
        await ref.stop()
        await ref.wait_for_shutdown()


STRATEGIES = [
    DeliveryStrategy.guaranteed(),
    DeliveryStrategy.best_effort(),
    DeliveryStrategy.timed(1.0),
    DeliveryStrategy.spawned(),
    DeliveryStrategy.spawned_with_timeout(1.0),
]


def test_default_strategy_is_best_effort():
    assert Broker().delivery_strategy == DeliveryStrategy.best_effort()


def test_invalid_topic_pattern_rejected():
    with pytest.raises(PatternError):
        Broker().subscribe("sensors/***", _FakeRecipient())


@pytest.mark.asyncio
@pytest.mark.parametrize("strategy", STRATEGIES)
async def test_publish_reaches_matching_subscriber(strategy):
    broker = Broker(strategy)
    ref, received = _collector()
    broker.subscribe("sensors/kitchen/*", ref)
    await broker.publish("sensors/kitchen/temperature", 22.5)
    await broker.publish("sensors/garage/temperature", 19.0)
    await _drain(ref)
    assert received == [22.5]


@pytest.mark.asyncio
async def test_multiple_patterns():
    broker = Broker(DeliveryStrategy.guaranteed())
    exact_ref, exact = _collector()
    wide_ref, wide = _collector()
    broker.subscribe("my-topic", exact_ref)
    broker.subscribe(TopicPattern("my-*"), wide_ref)
    await broker.publish("my-topic", "Hola")
    await broker.publish("my-other", "Adios")
    await _drain(exact_ref, wide_ref)
    assert exact == ["Hola"]
    assert wide == ["Hola", "Adios"]


@pytest.mark.asyncio
async def test_wildcard_does_not_cross_separator():
    broker = Broker()
    ref, received = _collector()
    broker.subscribe("sensors/*", ref)
    await broker.publish("sensors/kitchen/temperature", "deep")
    await broker.publish("sensors/kitchen", "shallow")
    await _drain(ref)
    assert received == ["shallow"]


@pytest.mark.asyncio
async def test_duplicate_subscription_delivers_twice():
    broker = Broker()
    ref, received = _collector()
    broker.subscribe("a", ref)
    broker.subscribe("a", ref)
    await broker.publish("a", "m")
    await _drain(ref)
    assert received == ["m", "m"]


@pytest.mark.asyncio
async def test_unsubscribe_from_one_topic():
    broker = Broker()
    ref, received = _collector()
    broker.subscribe("a/*", ref)
    broker.subscribe("b/*", ref)
    broker.unsubscribe(ref.id, "a/*")
    await broker.publish("a/x", "from-a")
    await broker.publish("b/x", "from-b")
    await _drain(ref)
    assert received == ["from-b"]


@pytest.mark.asyncio
async def test_unsubscribe_from_all_topics():
    broker = Broker()
    ref, received = _collector()
    other_ref, other = _collector()
    broker.subscribe("a/*", ref)
    broker.subscribe("b/*", ref)
    broker.subscribe("b/*", other_ref)
    broker.unsubscribe(ref.id)
    await broker.publish("a/x", "from-a")
    await broker.publish("b/x", "from-b")
    await _drain(ref, other_ref)
    assert received == []
    assert other == ["from-b"]


@pytest.mark.asyncio
async def test_unsubscribe_unknown_topic_leaves_others():
    broker = Broker()
    ref, received = _collector()
    broker.subscribe("a/*", ref)
    broker.unsubscribe(ref.id, "nothing/here")
    await broker.publish("a/x", "still")
    await _drain(ref)
    assert received == ["still"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "strategy",
    [DeliveryStrategy.guaranteed(), DeliveryStrategy.best_effort(), DeliveryStrategy.timed(0.1)],
)
async def test_dead_recipient_is_removed(strategy):
    broker = Broker(strategy)
    dead = _FakeRecipient(ActorNotRunning)
    live = _FakeRecipient()
    broker.subscribe("t", dead)
    broker.subscribe("t", live)
    await broker.publish("t", "first")
    await broker.publish("t", "second")
    assert dead.calls == ["first"]
    assert live.calls == ["first", "second"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "strategy", [DeliveryStrategy.spawned(), DeliveryStrategy.spawned_with_timeout(0.1)]
)
async def test_dead_recipient_removed_in_background(strategy):
    broker = Broker(strategy)
    dead = _FakeRecipient(ActorNotRunning)
    broker.subscribe("t", dead)
    await broker.publish("t", "first")
    await _settle()
    await broker.publish("t", "second")
    await _settle()
    assert dead.calls == ["first"]


@pytest.mark.asyncio
async def test_stopped_actor_is_removed():
    broker = Broker(DeliveryStrategy.guaranteed())
    stopped_ref, stopped = _collector()
    await _drain(stopped_ref)
    live_ref, live = _collector()
    broker.subscribe("t", stopped_ref)
    broker.subscribe("t", live_ref)
    await broker.publish("t", "msg")
    broker.unsubscribe(live_ref.id)
    broker.subscribe("t", live_ref)
    await broker.publish("t", "again")
    await _drain(live_ref)
    assert stopped == []
    assert live == ["msg", "again"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "strategy, error",
    [
        (DeliveryStrategy.best_effort(), MailboxFull),
        (DeliveryStrategy.timed(0.1), SendTimeout),
    ],
)
async def test_busy_recipient_keeps_subscription(strategy, error):
    broker = Broker(strategy)
    busy = _FakeRecipient(error)
    broker.subscribe("t", busy)
    await broker.publish("t", "first")
    await broker.publish("t", "second")
    assert busy.calls == ["first", "second"]


@pytest.mark.asyncio
async def test_full_mailbox_skipped_with_best_effort():
    broker = Broker(DeliveryStrategy.best_effort())
    started = asyncio.Event()
    gate = asyncio.Event()
    seen = []

    async def handler(message):
        seen.append(message)
        started.set()
        await gate.wait()

    ref = spawn(handler, capacity=1)
    broker.subscribe("t", ref)
    await broker.publish("t", "first")
    await started.wait()
    await broker.publish("t", "second")
    await broker.publish("t", "third")
    with pytest.raises(MailboxFull):
        ref.try_tell("probe")
    assert ref.is_alive()
    gate.set()
    await _settle()
    await broker.publish("t", "fourth")
    await _drain(ref)
    assert seen == ["first", "second", "fourth"]