"""
提现应用服务 - 申请、审核、完成与失败
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from application.dtos.payouts import (
    PayoutApproveDTO,
    PayoutCompleteDTO,
    PayoutCreateDTO,
    PayoutDTO,
    PayoutFailDTO,
    PayoutTransitionDTO,
)
from application.services.base import DomainServices, SettlementApplicationService
from core.logging_config import get_logger
from domain.common.principal import Principal, Role
from domain.payout.entity import PayoutStatus


logger = get_logger(__name__)


class PayoutApplicationService(SettlementApplicationService):
    """提现应用服务"""

    async def request_payout(self, vendor: Principal, data: PayoutCreateDTO) -> PayoutTransitionDTO:
        async def _op(s: DomainServices):
            return await s.payouts.request(vendor, data.amount, data.bank(), data.notes)

        result = await self._execute(_op, name="request_payout")
        logger.info(
            "payout_requested",
            payout_id=result.payout.id,
            vendor_id=vendor.user_id,
            amount=str(result.payout.amount),
        )
        return PayoutTransitionDTO.from_transition(result)

    async def get_payout(self, payout_id: int, actor: Principal) -> PayoutDTO:
        async def _op(s: DomainServices):
            payout = await s.payouts.get_payout(payout_id)
            s.payouts.ensure_can_view(payout, actor)
            return payout

        return PayoutDTO.from_entity(await self._read(_op))

    async def list_payouts(
        self,
        actor: Principal,
        *,
        status: Optional[PayoutStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[PayoutDTO], int]:
        """商家只能看到自己的提现；管理员看到全部"""
        if not actor.is_admin:
            actor.require(Role.VENDOR)
        vendor_id = None if actor.is_admin else actor.user_id

        async def _op(s: DomainServices):
            repo = s.uow.payout_repository
            rows = await repo.list(vendor_id=vendor_id, status=status, skip=skip, limit=limit)
            return rows, await repo.count(vendor_id=vendor_id, status=status)

        rows, total = await self._read(_op)
        return [PayoutDTO.from_entity(p) for p in rows], int(total)

    async def approve(self, payout_id: int, admin: Principal, data: PayoutApproveDTO) -> PayoutTransitionDTO:
        async def _op(s: DomainServices):
            return await s.payouts.approve(payout_id, admin, data.notes)

        result = await self._execute(_op, name="approve_payout")
        logger.info(
            "payout_approved",
            payout_id=payout_id,
            admin_id=admin.user_id,
            amount=str(result.payout.amount),
            available_after=str(result.transaction.available_after),
        )
        return PayoutTransitionDTO.from_transition(result)

    async def complete(self, payout_id: int, admin: Principal, data: PayoutCompleteDTO) -> PayoutTransitionDTO:
        async def _op(s: DomainServices):
            return await s.payouts.complete(payout_id, admin, data.transaction_ref, data.notes)

        result = await self._execute(_op, name="complete_payout")
        logger.info("payout_completed", payout_id=payout_id, transaction_ref=result.payout.transaction_ref)
        return PayoutTransitionDTO.from_transition(result)

    async def fail(self, payout_id: int, admin: Principal, data: PayoutFailDTO) -> PayoutTransitionDTO:
        async def _op(s: DomainServices):
            return await s.payouts.fail(payout_id, admin, data.reason)

        result = await self._execute(_op, name="fail_payout")
        logger.warning(
            "payout_failed",
            payout_id=payout_id,
            from_status=result.previous_status.value,
            refunded=result.transaction is not None,
        )
        return PayoutTransitionDTO.from_transition(result)
