"""
钱包仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrencyConflictException, DuplicateResourceException
from domain.wallet.entity import (
    LedgerBucket,
    ReferenceType,
    TransactionType,
    Wallet,
    WalletTransaction,
)
from domain.wallet.repository import WalletRepository, WalletTransactionRepository
from infrastructure.models.wallet import WalletModel, WalletTransactionModel


logger = get_logger(__name__)


def _money(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


class SQLAlchemyWalletRepository(WalletRepository):
    """钱包仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WalletModel) -> Wallet:
        """将数据库模型转换为领域实体"""
        return Wallet(
            id=model.id,
            vendor_id=model.vendor_id,
            commission_rate=_money(model.commission_rate),
            pending_balance=_money(model.pending_balance),
            available_balance=_money(model.available_balance),
            total_earnings=_money(model.total_earnings),
            total_withdrawn=_money(model.total_withdrawn),
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Wallet) -> WalletModel:
        """将领域实体转换为数据库模型"""
        return WalletModel(
            id=entity.id,
            vendor_id=entity.vendor_id,
            commission_rate=entity.commission_rate,
            pending_balance=entity.pending_balance,
            available_balance=entity.available_balance,
            total_earnings=entity.total_earnings,
            total_withdrawn=entity.total_withdrawn,
            version=entity.version,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, wallet: Wallet) -> Wallet:
        """创建钱包"""
        db_wallet = self._to_model(wallet)
        self.session.add(db_wallet)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("create_wallet_conflict", vendor_id=wallet.vendor_id)
            raise DuplicateResourceException(
                f"Vendor {wallet.vendor_id} already has a wallet",
                details={"vendor_id": wallet.vendor_id},
                field="vendor_id",
            )
        await self.session.refresh(db_wallet)
        logger.info("wallet_created", wallet_id=db_wallet.id, vendor_id=db_wallet.vendor_id)
        return self._to_entity(db_wallet)

    async def _get_one(self, *criteria, for_update: bool) -> Optional[Wallet]:
        query = select(WalletModel).where(*criteria).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_wallet = result.scalar_one_or_none()
        return self._to_entity(db_wallet) if db_wallet else None

    async def get_by_id(self, wallet_id: int, *, for_update: bool = False) -> Optional[Wallet]:
        """根据ID获取钱包"""
        return await self._get_one(WalletModel.id == wallet_id, for_update=for_update)

    async def get_by_vendor_id(self, vendor_id: str, *, for_update: bool = False) -> Optional[Wallet]:
        """根据商家ID获取钱包"""
        return await self._get_one(WalletModel.vendor_id == vendor_id, for_update=for_update)

    async def update(self, wallet: Wallet) -> Wallet:
        """以 version 为条件写回余额"""
        result = await self.session.execute(
            update(WalletModel)
            .where(WalletModel.id == wallet.id, WalletModel.version == wallet.version)
            .values(
                pending_balance=wallet.pending_balance,
                available_balance=wallet.available_balance,
                total_earnings=wallet.total_earnings,
                total_withdrawn=wallet.total_withdrawn,
                updated_at=wallet.updated_at,
                version=WalletModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("wallet_version_conflict", wallet_id=wallet.id, expected_version=wallet.version)
            raise ConcurrencyConflictException("wallet", wallet.id, wallet.version)
        wallet.version += 1
        return wallet

    async def list_ids(self) -> List[int]:
        result = await self.session.execute(select(WalletModel.id).order_by(WalletModel.id))
        return list(result.scalars().all())


class SQLAlchemyWalletTransactionRepository(WalletTransactionRepository):
    """流水仓储的SQLAlchemy实现（只追加）"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WalletTransactionModel) -> WalletTransaction:
        """将数据库模型转换为领域实体"""
        return WalletTransaction(
            id=model.id,
            wallet_id=model.wallet_id,
            type=TransactionType(model.type),
            amount=_money(model.amount),
            pending_before=_money(model.pending_before),
            pending_after=_money(model.pending_after),
            available_before=_money(model.available_before),
            available_after=_money(model.available_after),
            description=model.description or "",
            reference_type=ReferenceType(model.reference_type) if model.reference_type else None,
            reference_id=model.reference_id,
            order_item_id=model.order_item_id,
            gross_amount=_money(model.gross_amount),
            net_amount=_money(model.net_amount),
            bucket=LedgerBucket(model.bucket) if model.bucket else None,
            created_at=model.created_at,
        )

    def _to_model(self, entity: WalletTransaction) -> WalletTransactionModel:
        """将领域实体转换为数据库模型"""
        return WalletTransactionModel(
            wallet_id=entity.wallet_id,
            type=entity.type.value,
            amount=entity.amount,
            pending_before=entity.pending_before,
            pending_after=entity.pending_after,
            available_before=entity.available_before,
            available_after=entity.available_after,
            description=entity.description,
            reference_type=entity.reference_type.value if entity.reference_type else None,
            reference_id=entity.reference_id,
            order_item_id=entity.order_item_id,
            gross_amount=entity.gross_amount,
            net_amount=entity.net_amount,
            bucket=entity.bucket.value if entity.bucket else None,
            created_at=entity.created_at,
        )

    async def add(self, transaction: WalletTransaction) -> WalletTransaction:
        """追加流水"""
        db_txn = self._to_model(transaction)
        self.session.add(db_txn)
        await self.session.flush()
        transaction.id = db_txn.id
        logger.info(
            "wallet_posted",
            wallet_id=transaction.wallet_id,
            transaction_id=transaction.id,
            type=transaction.type.value,
            amount=str(transaction.amount),
            pending_after=str(transaction.pending_after),
            available_after=str(transaction.available_after),
            reference_type=transaction.reference_type.value if transaction.reference_type else None,
            reference_id=transaction.reference_id,
        )
        return transaction

    def _filtered(self, query, wallet_id, type, start, end):
        query = query.where(WalletTransactionModel.wallet_id == wallet_id)
        if type is not None:
            query = query.where(WalletTransactionModel.type == type.value)
        if start is not None:
            query = query.where(WalletTransactionModel.created_at >= start)
        if end is not None:
            query = query.where(WalletTransactionModel.created_at <= end)
        return query

    async def list_by_wallet(
        self,
        wallet_id: int,
        *,
        type: Optional[TransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[WalletTransaction]:
        """分页查询流水（新到旧）"""
        query = self._filtered(select(WalletTransactionModel), wallet_id, type, start, end)
        query = query.order_by(WalletTransactionModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_by_wallet(
        self,
        wallet_id: int,
        *,
        type: Optional[TransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        query = self._filtered(select(func.count(WalletTransactionModel.id)), wallet_id, type, start, end)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def list_for_replay(self, wallet_id: int) -> List[WalletTransaction]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.wallet_id == wallet_id)
            .order_by(WalletTransactionModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_reference(
        self,
        wallet_id: int,
        reference_type: ReferenceType,
        reference_id: int,
    ) -> List[WalletTransaction]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(
                WalletTransactionModel.wallet_id == wallet_id,
                WalletTransactionModel.reference_type == reference_type.value,
                WalletTransactionModel.reference_id == reference_id,
            )
            .order_by(WalletTransactionModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
