"""
Notification port (contracts-first).

Committed domain events leave the service through this port. Implementations
live in infrastructure (Celery, in-memory for tests) and are injected from the
composition root, keeping dependencies one-way.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.common.outbox import OutboxMessage


@runtime_checkable
class NotificationPort(Protocol):
    """Deliver one outbox message to downstream consumers.

    Delivery is at-least-once: consumers dedupe on ``message.event_id``.
    Raising signals a failed attempt; the message stays pending for the relay.
    """

    async def publish(self, message: OutboxMessage) -> None:  # pragma: no cover - interface
        ...
