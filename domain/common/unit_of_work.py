"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.common.outbox import OutboxRepository
from domain.dispute.repository import DisputeRepository
from domain.order.repository import OrderRepository
from domain.payout.repository import PayoutRepository
from domain.wallet.repository import WalletRepository, WalletTransactionRepository


class AbstractUnitOfWork(ABC):
    """
    应用层事务边界控制抽象

    一次业务操作的全部状态变更、账本流水与 outbox 消息在同一事务内提交或回滚。
    """

    order_repository: OrderRepository
    wallet_repository: WalletRepository
    wallet_transaction_repository: WalletTransactionRepository
    payout_repository: PayoutRepository
    dispute_repository: DisputeRepository
    outbox_repository: OutboxRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.wallet_repository = None  # type: ignore[assignment]
        self.wallet_transaction_repository = None  # type: ignore[assignment]
        self.payout_repository = None  # type: ignore[assignment]
        self.dispute_repository = None  # type: ignore[assignment]
        self.outbox_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
