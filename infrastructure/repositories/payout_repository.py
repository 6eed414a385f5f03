"""
提现仓储实现
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrencyConflictException
from domain.payout.entity import BankDetails, PayoutRequest, PayoutStatus
from domain.payout.repository import PayoutRepository
from infrastructure.models.payout import PayoutRequestModel


logger = get_logger(__name__)


class SQLAlchemyPayoutRepository(PayoutRepository):
    """提现仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PayoutRequestModel) -> PayoutRequest:
        """将数据库模型转换为领域实体"""
        return PayoutRequest(
            id=model.id,
            wallet_id=model.wallet_id,
            vendor_id=model.vendor_id,
            amount=Decimal(str(model.amount)),
            bank=BankDetails(
                bank_name=model.bank_name,
                account_number=model.account_number,
                account_holder=model.account_holder,
                branch_code=model.branch_code,
            ),
            status=PayoutStatus(model.status),
            notes=model.notes,
            admin_notes=model.admin_notes,
            transaction_ref=model.transaction_ref,
            failure_reason=model.failure_reason,
            processed_by=model.processed_by,
            processed_at=model.processed_at,
            completed_at=model.completed_at,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: PayoutRequest) -> PayoutRequestModel:
        """将领域实体转换为数据库模型"""
        return PayoutRequestModel(
            id=entity.id,
            wallet_id=entity.wallet_id,
            vendor_id=entity.vendor_id,
            amount=entity.amount,
            bank_name=entity.bank.bank_name,
            account_number=entity.bank.account_number,
            account_holder=entity.bank.account_holder,
            branch_code=entity.bank.branch_code,
            status=entity.status.value,
            notes=entity.notes,
            admin_notes=entity.admin_notes,
            transaction_ref=entity.transaction_ref,
            failure_reason=entity.failure_reason,
            processed_by=entity.processed_by,
            processed_at=entity.processed_at,
            completed_at=entity.completed_at,
            version=entity.version,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, payout: PayoutRequest) -> PayoutRequest:
        """创建提现申请"""
        db_payout = self._to_model(payout)
        self.session.add(db_payout)
        await self.session.flush()
        await self.session.refresh(db_payout)
        logger.info(
            "payout_created",
            payout_id=db_payout.id,
            wallet_id=db_payout.wallet_id,
            amount=str(db_payout.amount),
        )
        return self._to_entity(db_payout)

    async def get_by_id(self, payout_id: int, *, for_update: bool = False) -> Optional[PayoutRequest]:
        """根据ID获取提现申请"""
        query = (
            select(PayoutRequestModel)
            .where(PayoutRequestModel.id == payout_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_payout = result.scalar_one_or_none()
        return self._to_entity(db_payout) if db_payout else None

    async def update(self, payout: PayoutRequest) -> PayoutRequest:
        """以 version 为条件更新状态字段"""
        result = await self.session.execute(
            update(PayoutRequestModel)
            .where(PayoutRequestModel.id == payout.id, PayoutRequestModel.version == payout.version)
            .values(
                status=payout.status.value,
                admin_notes=payout.admin_notes,
                transaction_ref=payout.transaction_ref,
                failure_reason=payout.failure_reason,
                processed_by=payout.processed_by,
                processed_at=payout.processed_at,
                completed_at=payout.completed_at,
                updated_at=payout.updated_at,
                version=PayoutRequestModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("payout_version_conflict", payout_id=payout.id, expected_version=payout.version)
            raise ConcurrencyConflictException("payout", payout.id, payout.version)
        payout.version += 1
        logger.info("payout_updated", payout_id=payout.id, status=payout.status.value)
        return payout

    async def exists_pending(self, wallet_id: int) -> bool:
        """钱包是否已有待审核的提现申请"""
        result = await self.session.execute(
            select(func.count(PayoutRequestModel.id)).where(
                PayoutRequestModel.wallet_id == wallet_id,
                PayoutRequestModel.status == PayoutStatus.PENDING.value,
            )
        )
        return result.scalar_one() > 0

    def _filtered(self, query, vendor_id, status):
        if vendor_id:
            query = query.where(PayoutRequestModel.vendor_id == vendor_id)
        if status:
            query = query.where(PayoutRequestModel.status == status.value)
        return query

    async def list(
        self,
        *,
        vendor_id: Optional[str] = None,
        status: Optional[PayoutStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[PayoutRequest]:
        query = self._filtered(select(PayoutRequestModel), vendor_id, status)
        query = query.order_by(PayoutRequestModel.created_at.desc(), PayoutRequestModel.id.desc())
        result = await self.session.execute(query.offset(skip).limit(limit))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self, *, vendor_id: Optional[str] = None, status: Optional[PayoutStatus] = None) -> int:
        result = await self.session.execute(
            self._filtered(select(func.count(PayoutRequestModel.id)), vendor_id, status)
        )
        return result.scalar_one()
