# troupe

troupe provides lightweight asyncio actors and a set of ready-made routing components built on them:

- **`troupe.broker.Broker`** routes messages by topic. Subscriptions are glob patterns such as `sensors/*/humidity`.
- **`troupe.message_bus.MessageBus`** sends each message to the recipients registered for the message's exact type.
- **`troupe.pubsub.PubSub`** broadcasts to every subscriber. A subscriber can supply a predicate that filters what it receives.
- **`troupe.message_queue.MessageQueue`** has AMQP-style exchanges (direct, topic, fanout, headers), queues, bindings and typed consumers.
- **`troupe.scheduler.Scheduler`** sends a message once after a delay, or repeatedly at a fixed interval.
- **`troupe.pool.ActorPool`** keeps a fixed set of worker actors. `dispatch` gives a message to the worker with the fewest messages in flight. A worker that stops is replaced.

The package has no dependencies outside the standard library. It needs Python 3.11 or later.

## Installation

```
pip install troupe
```

To run the tests:

```
pip install "troupe[test]"
pytest
```

## Actors

`troupe.delivery.spawn(handler, capacity)` starts an actor and returns an `ActorRef`. The actor calls `handler(message)` for each message in its mailbox, one message at a time. The handler can be a plain function or a coroutine function. The default capacity is 64. Pass `capacity=None` for an unbounded mailbox.

```python
import asyncio
from troupe.delivery import spawn

async def main():
    total = 0

    async def add(n):
        nonlocal total
        total += n
        return total

    counter = spawn(add, 64)
    await counter.tell(3)             # queue and return
    print(await counter.ask(2))       # 5
    await counter.stop()              # queued messages are handled first
    await counter.wait_for_shutdown()
    print(counter.is_alive())         # False

asyncio.run(main())
```

`ActorRef` has the following methods:

- `await tell(message)` waits for room in the mailbox.
- `try_tell(message)` queues the message at once, or raises `MailboxFull`.
- `await tell_timeout(message, timeout)` waits at most `timeout` seconds for room, then raises `SendTimeout`.
- `await ask(message)` waits for the handler's reply.
- `await stop()` stops the actor gracefully.
- `await wait_for_shutdown()`
- `is_alive()`
- `id` is a unique integer for the actor.

If the handler raises while handling a message sent with `tell`, the actor stops. If it raises while handling an `ask`, the exception goes back to the caller and the actor keeps running.

A message that cannot be sent raises a subclass of `SendError`:

- `ActorNotRunning`
- `MailboxFull`
- `SendTimeout`

The message that failed is available as `error.message`.

## Delivery strategies

The broker, message bus, pub/sub and message queue each take a `DeliveryStrategy`. When none is given they use best effort.

| Strategy | Behaviour |
| --- | --- |
| `DeliveryStrategy.guaranteed()` | wait until each recipient's mailbox has room |
| `DeliveryStrategy.best_effort()` | skip recipients whose mailbox is full |
| `DeliveryStrategy.timed(t)` | wait up to `t` seconds per recipient |
| `DeliveryStrategy.spawned()` | deliver from a background task, waiting for room |
| `DeliveryStrategy.spawned_with_timeout(t)` | deliver from a background task, giving up after `t` seconds |

`troupe.delivery.deliver(recipient, message, strategy, on_dead)` applies a strategy to a single recipient:

- It calls `on_dead()` when the recipient is no longer running.
- For the immediate strategies, it returns whether the message was accepted.
- For the spawned strategies, it returns the background task.

Recipients found to have stopped are removed from subscriptions automatically.

## Broker

```python
from troupe.broker import Broker
from troupe.delivery import DeliveryStrategy

broker = Broker(DeliveryStrategy.guaranteed())
broker.subscribe("sensors/kitchen/*", display)
await broker.publish("sensors/kitchen/temperature", 22.5)
broker.unsubscribe(display.id)                      # from every pattern
broker.unsubscribe(display.id, "sensors/kitchen/*") # from one pattern
```

Patterns are `troupe.pattern.TopicPattern` objects, or strings that are turned into them. Matching is case sensitive. The pattern syntax is:

- `*` and `?` never match `/`.
- `**` must form a whole path component and spans any number of components.
- `[...]` and `[!...]` match character sets.

A malformed pattern raises `PatternError`, which is a `ValueError`.

## Message bus

```python
from troupe.message_bus import MessageBus

bus = MessageBus()
bus.register(float, display)
await bus.publish(22.5)            # goes to recipients registered for float
bus.unregister(float, display.id)
```

## Pub/sub

```python
from troupe.pubsub import PubSub

pubsub = PubSub()
pubsub.subscribe(logger_actor)
pubsub.subscribe_filter(alerts, lambda text: text.startswith("TopicA:"))
await pubsub.publish("TopicA: something happened")
```

Subscribing the same actor again replaces its earlier subscription.

## Message queue

```python
from troupe.exchange import ExchangeType
from troupe.message_queue import MessageQueue, MessageProperties

mq = MessageQueue()
mq.exchange_declare("sensors", ExchangeType.TOPIC)
mq.queue_declare("temperature")
mq.queue_bind("temperature", "sensors", "temperature.*")
mq.basic_consume("temperature", display, float, tags={"room": "kitchen"})
await mq.basic_publish("sensors", "temperature.kitchen", 22.5)
```

Bindings and routing:

- Every declared queue is bound to the default exchange `""` under its own name.
- A headers exchange reads its rules from the binding `arguments`. `x-match` may be `all` (the default) or `any`.
- A message published to a headers exchange needs `MessageProperties(headers=...)`.
- `MessageProperties(filter=...)` is called with each consumer's tags and decides which consumers receive the message.

Exchanges and queues can be removed with `exchange_delete`, `queue_delete`, `queue_unbind` and `basic_cancel`, which also honour `if_unused` and `auto_delete`.

Failures raise subclasses of `AmqpError`:

- `ExchangeAlreadyExists`
- `QueueAlreadyExists`
- `ExchangeNotFound`
- `QueueNotFound`
- `BindingAlreadyExists`
- `HeadersRequired`
- `InvalidHeaderMatch`
- `ExchangeInUse`
- `QueueInUse`

The routing rules are also available on their own in `troupe.exchange`, as `Exchange.route(routing_key, headers)` and `HeaderMatch`.

## Scheduler

```python
from troupe.scheduler import MissedTickBehavior, Scheduler

async with Scheduler() as scheduler:
    scheduler.set_timeout(counter, 1.0, 10)
    task = scheduler.set_interval(
        counter, 0.1, 1,
        start_delay=0.5,
        missed_tick_behavior=MissedTickBehavior.SKIP,
    )
    ...
    task.cancel()   # abort one schedule
```

Both methods return the background task. An interval stops by itself once its recipient is no longer running. `close()` cancels every schedule; leaving the `async with` block calls it.

## Pool

```python
from troupe.pool import ActorPool

async with ActorPool(4, make_worker) as pool:   # or: await ActorPool.create_async(4, make_async_worker)
    reply = await pool.dispatch("job")
    results = await pool.broadcast("hello all")  # None per worker that accepted it
    print(pool.workers())
```

`dispatch` skips workers that have stopped. If no worker takes the message, it raises `ActorNotRunning`.

## What it does not do

- All actors live in one asyncio event loop, inside one process. There is no networking, remote messaging or actor registry across machines.
- Mailboxes and subscriptions are held in memory only. Nothing is persisted.
- There is no command-line tool.