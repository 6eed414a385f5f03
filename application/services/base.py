"""
应用服务基类 - 事务边界、乐观锁重试与 outbox 投递
"""
from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from application.ports.notifications import NotificationPort
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import ConcurrencyConflictException, StorageUnavailableException
from domain.common.money import utcnow
from domain.common.outbox import OutboxMessage, OutboxRepository
from domain.common.policy import SettlementPolicy
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.dispute.service import DisputeDomainService
from domain.order.service import OrderDomainService
from domain.payout.service import PayoutDomainService
from domain.wallet.service import WalletLedger


logger = get_logger(__name__)

T = TypeVar("T")

UowFactory = Callable[..., AbstractUnitOfWork]


class DomainServices:
    """同一工作单元内的领域服务集合，共享一个 WalletLedger"""

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        policy: SettlementPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow = uow
        self.ledger = WalletLedger(uow.wallet_repository, uow.wallet_transaction_repository, clock)
        self.orders = OrderDomainService(uow.order_repository, self.ledger, policy, clock)
        self.payouts = PayoutDomainService(uow.payout_repository, self.ledger, policy, clock)
        self.disputes = DisputeDomainService(
            uow.dispute_repository, uow.order_repository, self.ledger, policy, clock
        )

    def clear_events(self) -> List:
        events = []
        for service in (self.ledger, self.orders, self.payouts, self.disputes):
            events.extend(service.clear_events())
        return sorted(events, key=lambda e: e.occurred_at)


class SettlementApplicationService:
    """
    应用服务基类

    1. 每次写操作在独立工作单元内执行，领域事件作为 outbox 消息同事务写入
    2. 版本冲突时整体重试（重新读取、重新校验）
    3. 提交后尽力投递通知；投递失败只记录，不回滚已提交的记账
    """

    def __init__(
        self,
        uow_factory: UowFactory,
        *,
        notifier: Optional[NotificationPort] = None,
        policy: Optional[SettlementPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        conflict_retries: Optional[int] = None,
    ):
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._policy = policy or settings.settlement.to_policy()
        self._clock = clock
        self._conflict_retries = (
            settings.settlement.conflict_retries if conflict_retries is None else conflict_retries
        )

    async def _execute(self, operation: Callable[[DomainServices], Awaitable[T]], *, name: str) -> T:
        def _log_retry(state: RetryCallState) -> None:
            logger.info(
                "concurrency_conflict_retry",
                operation=name,
                attempt=state.attempt_number,
                error=state.outcome.exception().message,
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._conflict_retries + 1),
                retry=retry_if_exception_type(ConcurrencyConflictException),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    result, messages = await self._commit(operation)
        except ConcurrencyConflictException:
            logger.warning("concurrency_conflict_exhausted", operation=name, attempts=self._conflict_retries + 1)
            raise

        logger.info("settlement_operation_committed", operation=name, events=[m.event_type for m in messages])
        await self._dispatch(messages)
        return result

    async def _commit(self, operation: Callable[[DomainServices], Awaitable[T]]):
        """单个工作单元：执行操作并把领域事件写入 outbox，退出时提交"""
        async with self._uow_factory() as uow:
            services = DomainServices(uow, self._policy, self._clock)
            result = await operation(services)
            messages = [OutboxMessage.from_event(e) for e in services.clear_events()]
            if messages:
                await uow.outbox_repository.add_many(messages)
        return result, messages

    async def _read(self, operation: Callable[[DomainServices], Awaitable[T]]) -> T:
        async with self._uow_factory(readonly=True) as uow:
            return await operation(DomainServices(uow, self._policy, self._clock))

    async def _dispatch(self, messages: Sequence[OutboxMessage]) -> None:
        if not messages or self._notifier is None:
            # 未配置通知端口时消息保持 PENDING，由中继任务投递
            return
        for message in messages:
            try:
                await self._notifier.publish(message)
            except Exception as exc:
                logger.warning(
                    "notification_dispatch_failed",
                    event_id=message.event_id,
                    event_type=message.event_type,
                    error=str(exc),
                )
                await self._mark(lambda repo: repo.mark_failed(message.event_id, str(exc)))
                continue
            await self._mark(lambda repo: repo.mark_dispatched(message.event_id, self._clock()))

    async def _mark(self, action: Callable[[OutboxRepository], Awaitable[None]]) -> None:
        try:
            async with self._uow_factory() as uow:
                await action(uow.outbox_repository)
        except StorageUnavailableException as exc:
            logger.warning("outbox_mark_failed", error=exc.message)
