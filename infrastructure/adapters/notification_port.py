"""Infrastructure adapter that implements the application NotificationPort
by handing outbox messages to a Celery task.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from application.ports.notifications import NotificationPort
from domain.common.outbox import OutboxMessage
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


class CeleryNotificationPort(NotificationPort):
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None):
        self.dispatcher = dispatcher or TaskDispatcher()

    async def publish(self, message: OutboxMessage) -> None:
        # send_task talks to the broker synchronously
        await asyncio.to_thread(
            self.dispatcher.send_notification,
            event_id=message.event_id,
            event_type=message.event_type,
            aggregate_type=message.aggregate_type,
            aggregate_id=message.aggregate_id,
            payload=message.payload,
        )
