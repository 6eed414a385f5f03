"""Task base class (structlog context binding) and the dispatch facade."""
from .base_task import BaseTask
from .dispatcher import NOTIFICATION_TASK, TaskDispatcher

__all__ = ["BaseTask", "NOTIFICATION_TASK", "TaskDispatcher"]
