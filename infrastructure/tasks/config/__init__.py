"""Celery app, queue names and the beat schedule for settlement jobs."""
from .beat import CELERY_BEAT_SCHEDULE
from .celery import CELERY_IMPORTS, NOTIFICATION_QUEUE, SETTLEMENT_QUEUE, celery_app

__all__ = ["celery_app", "CELERY_BEAT_SCHEDULE", "CELERY_IMPORTS", "NOTIFICATION_QUEUE", "SETTLEMENT_QUEUE"]
