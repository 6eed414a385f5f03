"""Common base task for Celery jobs"""
from __future__ import annotations

import structlog
from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


class BaseTask(Task):
    """Binds task context into structlog and logs the outcome of every run."""

    def __call__(self, *args, **kwargs):
        structlog.contextvars.bind_contextvars(task_id=self.request.id, task_name=self.name)
        try:
            return super().__call__(*args, **kwargs)
        finally:
            structlog.contextvars.unbind_contextvars("task_id", "task_name")

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        # payloads may carry customer data, so only the event id is logged
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            event_id=(kwargs or {}).get("event_id"),
            exc=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            exc=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
        )
        super().on_success(retval, task_id, args, kwargs)
