"""
Periodic settlement jobs: outbox relay and wallet reconciliation.
"""
from __future__ import annotations

import asyncio

from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..utils.base_task import BaseTask
from application.services.outbox_relay import OutboxRelay
from application.services.wallet_service import WalletApplicationService
from core.config import settings
from core.logging_config import get_logger
from infrastructure.adapters.notification_port import CeleryNotificationPort
from infrastructure.database import build_engine
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)


async def _with_session_factory(job):
    # 每次 asyncio.run 都是新的事件循环，连接池不能跨循环复用
    engine = build_engine(settings.database.url, echo=settings.database.echo)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def uow_factory(readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    try:
        return await job(uow_factory)
    finally:
        await engine.dispose()


@shared_task(bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def relay_outbox(self) -> dict:
    async def _run(uow_factory):
        relay = OutboxRelay(uow_factory, CeleryNotificationPort())
        return await relay.run_once()

    result = asyncio.run(_with_session_factory(_run))
    return {
        "fetched": result.fetched,
        "dispatched": result.dispatched,
        "failed": result.failed,
        "abandoned": result.abandoned,
    }


@shared_task(bind=True, base=BaseTask)
def reconcile_wallets(self) -> dict:
    async def _run(uow_factory):
        service = WalletApplicationService(uow_factory)
        return await service.reconcile_all()

    reports = asyncio.run(_with_session_factory(_run))
    mismatched = [r.wallet_id for r in reports if not r.consistent]
    if mismatched:
        logger.error("wallet_reconciliation_alert", wallet_ids=mismatched)
    return {"wallets": len(reports), "mismatched": mismatched}
