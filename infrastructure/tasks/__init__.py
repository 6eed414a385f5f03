"""Background work for the settlement service.

``celery -A infrastructure.tasks worker -B`` runs notification delivery and the
periodic settlement jobs; web code only talks to ``TaskDispatcher``.
"""
from .config.celery import NOTIFICATION_QUEUE, SETTLEMENT_QUEUE, celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher", "NOTIFICATION_QUEUE", "SETTLEMENT_QUEUE"]
