import asyncio

import pytest

from troupe.delivery import DeliveryStrategy, spawn
from troupe.message_bus import MessageBus


def _actor():
    inbox = []
    return spawn(inbox.append), inbox


async def _halt(*actors):
    for actor in actors:
        await actor.stop()
        await actor.wait_for_shutdown()


@pytest.mark.asyncio
async def test_routes_by_type():
    bus = MessageBus(DeliveryStrategy.guaranteed())
    strings, got_strings = _actor()
    ints, got_ints = _actor()
    bus.register(str, strings)
    bus.register(int, ints)
    await bus.publish("hello")
    await bus.publish(5)
    await _halt(strings, ints)
    assert (got_strings, got_ints) == (["hello"], [5])


@pytest.mark.asyncio
async def test_all_registered_recipients_receive():
    bus = MessageBus()
    pairs = [_actor() for _ in range(3)]
    for actor, _ in pairs:
        bus.register(str, actor)
    await bus.publish("news")
    await _halt(*(actor for actor, _ in pairs))
    assert [inbox for _, inbox in pairs] == [["news"]] * 3


@pytest.mark.asyncio
async def test_subclass_is_not_routed_to_base_registration():
    class Base:
        pass

    class Derived(Base):
        pass

    bus = MessageBus()
    actor, inbox = _actor()
    bus.register(Base, actor)
    await bus.publish(Derived())
    await _halt(actor)
    assert inbox == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "registered, removed, expected, remaining",
    [
        ([str], str, [], 0),
        ([str, int], str, [7], 1),
        ([str, int], int, ["text"], 1),
    ],
)
async def test_unregister_affects_only_given_type(registered, removed, expected, remaining):
    bus = MessageBus()
    actor, inbox = _actor()
    for message_type in registered:
        bus.register(message_type, actor)
    bus.unregister(removed, actor.id)
    for message in ("text", 7):
        await bus.publish(message)
    await _halt(actor)
    assert inbox == expected
    assert len(bus) == remaining


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "strategy, settle, remaining",
    [
        (DeliveryStrategy.best_effort(), 0, 1),
        (DeliveryStrategy.guaranteed(), 0, 1),
        (DeliveryStrategy.timed(0.1), 0, 1),
        (DeliveryStrategy.spawned(), 0.01, 1),
        (DeliveryStrategy.spawned_with_timeout(0.1), 0.01, 1),
    ],
)
async def test_dead_recipient_is_unregistered(strategy, settle, remaining):
    bus = MessageBus(strategy)
    dead, _ = _actor()
    await _halt(dead)
    alive, inbox = _actor()
    bus.register(str, dead)
    bus.register(str, alive)
    await bus.publish("ping")
    await asyncio.sleep(settle)
    await _halt(alive)
    assert len(bus) == remaining
    assert inbox == ["ping"]


@pytest.mark.asyncio
async def test_full_mailbox_skips_but_keeps_recipient():
    release = asyncio.Event()
    handled = []

    async def slow(message):
        await release.wait()
        handled.append(message)

    blocked = spawn(slow, 1)
    blocked.try_tell("first")
    bus = MessageBus(DeliveryStrategy.best_effort())
    bus.register(str, blocked)
    await bus.publish("second")
    assert len(bus) == 1
    release.set()
    await _halt(blocked)
    assert handled == ["first"]