"""
Outbox 仓储实现
"""
from datetime import datetime
from typing import List, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.outbox import OutboxMessage, OutboxRepository, OutboxStatus
from infrastructure.models.outbox import OutboxEventModel


logger = get_logger(__name__)


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OutboxEventModel) -> OutboxMessage:
        return OutboxMessage(
            id=model.id,
            event_id=model.event_id,
            event_type=model.event_type,
            aggregate_type=model.aggregate_type,
            aggregate_id=model.aggregate_id,
            payload=model.payload or {},
            status=OutboxStatus(model.status),
            attempts=model.attempts,
            last_error=model.last_error,
            occurred_at=model.occurred_at,
            dispatched_at=model.dispatched_at,
        )

    async def add_many(self, messages: Sequence[OutboxMessage]) -> None:
        models = [
            OutboxEventModel(
                event_id=m.event_id,
                event_type=m.event_type,
                aggregate_type=m.aggregate_type,
                aggregate_id=m.aggregate_id,
                payload=m.payload,
                status=m.status.value,
                attempts=m.attempts,
                occurred_at=m.occurred_at,
            )
            for m in messages
        ]
        if not models:
            return
        self.session.add_all(models)
        await self.session.flush()
        for message, model in zip(messages, models):
            message.id = model.id

    async def list_pending(self, limit: int = 100, max_attempts: int = 10) -> List[OutboxMessage]:
        result = await self.session.execute(
            select(OutboxEventModel)
            .where(
                OutboxEventModel.status == OutboxStatus.PENDING.value,
                OutboxEventModel.attempts < max_attempts,
            )
            .order_by(OutboxEventModel.id)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_dispatched(self, event_id: str, dispatched_at: datetime) -> None:
        await self.session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.event_id == event_id)
            .values(
                status=OutboxStatus.DISPATCHED.value,
                attempts=OutboxEventModel.attempts + 1,
                dispatched_at=dispatched_at,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )

    async def mark_failed(self, event_id: str, error: str, *, give_up: bool = False) -> None:
        status = OutboxStatus.FAILED if give_up else OutboxStatus.PENDING
        await self.session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.event_id == event_id)
            .values(
                status=status.value,
                attempts=OutboxEventModel.attempts + 1,
                last_error=error[:2000],
            )
            .execution_options(synchronize_session=False)
        )
        if give_up:
            logger.error("outbox_event_abandoned", event_id=event_id, error=error)
