"""
Outbox relay: re-deliver committed events that inline dispatch could not.

Runs from a periodic Celery task. Delivery is at-least-once; a message is
abandoned (FAILED) once it reaches the configured attempt limit.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from application.ports.notifications import NotificationPort
from application.services.base import UowFactory
from core.config import settings
from core.logging_config import get_logger
from domain.common.money import utcnow


logger = get_logger(__name__)


@dataclass
class RelayResult:
    fetched: int = 0
    dispatched: int = 0
    failed: int = 0
    abandoned: int = 0


class OutboxRelay:
    def __init__(
        self,
        uow_factory: UowFactory,
        notifier: NotificationPort,
        *,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._batch_size = batch_size or settings.settlement.outbox_batch_size
        self._max_attempts = max_attempts or settings.settlement.outbox_max_attempts
        self._clock = clock

    async def run_once(self) -> RelayResult:
        async with self._uow_factory(readonly=True) as uow:
            messages = await uow.outbox_repository.list_pending(self._batch_size, self._max_attempts)

        result = RelayResult(fetched=len(messages))
        for message in messages:
            try:
                await self._notifier.publish(message)
            except Exception as exc:
                give_up = message.attempts + 1 >= self._max_attempts
                logger.warning(
                    "outbox_relay_publish_failed",
                    event_id=message.event_id,
                    event_type=message.event_type,
                    attempts=message.attempts + 1,
                    error=str(exc),
                )
                async with self._uow_factory() as uow:
                    await uow.outbox_repository.mark_failed(message.event_id, str(exc), give_up=give_up)
                result.failed += 1
                result.abandoned += int(give_up)
                continue
            async with self._uow_factory() as uow:
                await uow.outbox_repository.mark_dispatched(message.event_id, self._clock())
            result.dispatched += 1

        if result.fetched:
            logger.info(
                "outbox_relay_run",
                fetched=result.fetched,
                dispatched=result.dispatched,
                failed=result.failed,
                abandoned=result.abandoned,
            )
        return result
