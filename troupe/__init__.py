"""Asyncio actors with a topic broker, a type-routed message bus, pub/sub,
AMQP-style message queues, a scheduler and worker pools."""

__version__ = "0.4.0"

__all__ = [
    "broker",
    "delivery",
    "exchange",
    "message_bus",
    "message_queue",
    "pattern",
    "pool",
    "pubsub",
    "scheduler",
]