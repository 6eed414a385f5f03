"""Celery application for settlement background work.

Two queues: ``notifications`` fans committed domain events out to users,
``settlement`` runs the periodic outbox relay and wallet reconciliation.
"""
from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging
from kombu import Queue

from core.config import settings
from core.logging_config import configure_logging, get_logger
from .beat import CELERY_BEAT_SCHEDULE


CELERY_IMPORTS = ("infrastructure.tasks.tasks",)

NOTIFICATION_QUEUE = "notifications"
SETTLEMENT_QUEUE = "settlement"


celery_app = Celery(settings.redis.namespace)

celery_app.conf.update(
    broker_url=settings.redis.url or None,
    result_backend=settings.redis.url or None,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # 执行完成后再 ack，worker 崩溃时消息重新投递（消费方按 event_id 去重）
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue=SETTLEMENT_QUEUE,
    task_queues=(Queue(NOTIFICATION_QUEUE), Queue(SETTLEMENT_QUEUE)),
    task_routes={
        "infrastructure.tasks.tasks.notifications.*": {"queue": NOTIFICATION_QUEUE},
        "infrastructure.tasks.tasks.settlement.*": {"queue": SETTLEMENT_QUEUE},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)
celery_app.conf.imports = CELERY_IMPORTS

# 本地与测试环境无 broker，任务同步执行
if (settings.ENVIRONMENT or "production").lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    # 接管 Celery 默认的日志配置，使用 structlog 处理链
    configure_logging()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        eager=bool(sender.conf.task_always_eager),
        queues=[q.name for q in sender.conf.task_queues],
    )
