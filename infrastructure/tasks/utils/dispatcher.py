"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app

NOTIFICATION_TASK = "infrastructure.tasks.tasks.notifications.deliver_notification"


class TaskDispatcher:
    """Internal facade used by adapters to schedule tasks."""

    def send_notification(
        self,
        *,
        event_id: str,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: Dict[str, Any],
    ) -> None:
        """Queue one committed domain event for delivery to its recipients."""
        celery_app.send_task(
            NOTIFICATION_TASK,
            kwargs={
                "event_id": event_id,
                "event_type": event_type,
                "aggregate_type": aggregate_type,
                "aggregate_id": aggregate_id,
                "payload": payload,
            },
        )

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
