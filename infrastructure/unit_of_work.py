"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import StorageUnavailableException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.dispute_repository import SQLAlchemyDisputeRepository
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.outbox_repository import SQLAlchemyOutboxRepository
from infrastructure.repositories.payout_repository import SQLAlchemyPayoutRepository
from infrastructure.repositories.wallet_repository import (
    SQLAlchemyWalletRepository,
    SQLAlchemyWalletTransactionRepository,
)


logger = get_logger(__name__)

# 连接/驱动层面的失败，可重试；与业务失败严格区分
_STORAGE_ERRORS = (OperationalError, InterfaceError)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    def _bind_repositories(self) -> None:
        self.order_repository = SQLAlchemyOrderRepository(self.session)
        self.wallet_repository = SQLAlchemyWalletRepository(self.session)
        self.wallet_transaction_repository = SQLAlchemyWalletTransactionRepository(self.session)
        self.payout_repository = SQLAlchemyPayoutRepository(self.session)
        self.dispute_repository = SQLAlchemyDisputeRepository(self.session)
        self.outbox_repository = SQLAlchemyOutboxRepository(self.session)

    def _unbind_repositories(self) -> None:
        self.order_repository = None
        self.wallet_repository = None
        self.wallet_transaction_repository = None
        self.payout_repository = None
        self.dispute_repository = None
        self.outbox_repository = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._bind_repositories()
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            try:
                self._transaction = await self.session.begin()
            except _STORAGE_ERRORS as e:
                await self._close()
                logger.error("storage_unavailable", phase="begin", error=str(e))
                raise StorageUnavailableException(type(e).__name__) from e
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        except _STORAGE_ERRORS as e:
            logger.error("storage_unavailable", phase="commit", error=str(e))
            raise StorageUnavailableException(type(e).__name__) from e
        finally:
            await self._close()
        if isinstance(exc, _STORAGE_ERRORS):
            logger.error("storage_unavailable", phase="execute", error=str(exc))
            raise StorageUnavailableException(type(exc).__name__) from exc

    async def _close(self) -> None:
        # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
        tx = getattr(self, "_transaction", None)
        if tx is not None and getattr(tx, "is_active", False):
            close = getattr(tx, "close", None)
            if callable(close):
                res = close()
                if inspect.isawaitable(res):
                    await res
        if self._external_session is None and self.session is not None:
            await self.session.close()
            self.session = None
        self._unbind_repositories()

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
