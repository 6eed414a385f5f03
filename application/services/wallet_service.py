"""
钱包应用服务 - 开户、余额查询、流水、调账与对账
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from application.dtos.wallets import (
    AdjustmentDTO,
    AdjustmentResultDTO,
    ReconciliationDTO,
    WalletCreateDTO,
    WalletDTO,
    WalletTransactionDTO,
)
from application.services.base import DomainServices, SettlementApplicationService
from core.logging_config import get_logger
from domain.common.exceptions import WalletNotFoundException
from domain.common.principal import Principal, Role
from domain.wallet.entity import TransactionType
from domain.wallet.service import ReconciliationReport


logger = get_logger(__name__)


class WalletApplicationService(SettlementApplicationService):

    async def open_wallet(self, admin: Principal, data: WalletCreateDTO) -> WalletDTO:
        """商家审核通过后开户（每个商家一个钱包）"""
        admin.require(Role.ADMIN)

        async def _op(s: DomainServices):
            return await s.ledger.open_wallet(data.vendor_id, data.commission_rate)

        wallet = await self._execute(_op, name="open_wallet")
        logger.info("wallet_opened", wallet_id=wallet.id, vendor_id=wallet.vendor_id)
        return WalletDTO.model_validate(wallet)

    async def get_wallet(self, actor: Principal, vendor_id: Optional[str] = None) -> WalletDTO:
        """商家查看自己的钱包；管理员可指定 vendor_id"""
        target = self._target_vendor(actor, vendor_id)

        async def _op(s: DomainServices):
            return await s.ledger.get_wallet(target)

        return WalletDTO.model_validate(await self._read(_op))

    async def list_transactions(
        self,
        actor: Principal,
        *,
        vendor_id: Optional[str] = None,
        type: Optional[TransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[WalletTransactionDTO], int]:
        target = self._target_vendor(actor, vendor_id)

        async def _op(s: DomainServices):
            wallet = await s.ledger.get_wallet(target)
            repo = s.uow.wallet_transaction_repository
            rows = await repo.list_by_wallet(wallet.id, type=type, start=start, end=end, skip=skip, limit=limit)
            total = await repo.count_by_wallet(wallet.id, type=type, start=start, end=end)
            return rows, total

        rows, total = await self._read(_op)
        return [WalletTransactionDTO.model_validate(r) for r in rows], int(total)

    async def adjust(self, admin: Principal, vendor_id: str, data: AdjustmentDTO) -> AdjustmentResultDTO:
        async def _op(s: DomainServices):
            txn = await s.ledger.adjust(vendor_id, data.amount, data.reason, admin)
            return await s.ledger.get_wallet(vendor_id), txn

        wallet, txn = await self._execute(_op, name="adjust_balance")
        logger.warning(
            "wallet_adjusted",
            vendor_id=vendor_id,
            amount=str(txn.amount),
            admin_id=admin.user_id,
            transaction_id=txn.id,
        )
        return AdjustmentResultDTO(
            wallet=WalletDTO.model_validate(wallet),
            transaction=WalletTransactionDTO.model_validate(txn),
        )

    async def reconcile(self, admin: Principal, vendor_id: str) -> ReconciliationDTO:
        admin.require(Role.ADMIN)

        async def _op(s: DomainServices):
            wallet = await s.ledger.get_wallet(vendor_id)
            return await s.ledger.reconcile(wallet.id)

        report = await self._read(_op)
        self._log_report(report)
        return ReconciliationDTO.from_report(report)

    async def reconcile_all(self) -> List[ReconciliationDTO]:
        """逐个钱包重放流水核对余额；不一致只记录日志，不自动修正"""
        async with self._uow_factory(readonly=True) as uow:
            wallet_ids = await uow.wallet_repository.list_ids()

        reports: List[ReconciliationDTO] = []
        for wallet_id in wallet_ids:
            async def _op(s: DomainServices, wallet_id=wallet_id):
                return await s.ledger.reconcile(wallet_id)

            report = await self._read(_op)
            self._log_report(report)
            reports.append(ReconciliationDTO.from_report(report))

        logger.info(
            "wallet_reconciliation_finished",
            wallets=len(reports),
            mismatched=sum(1 for r in reports if not r.consistent),
        )
        return reports

    @staticmethod
    def _target_vendor(actor: Principal, vendor_id: Optional[str]) -> str:
        if actor.is_admin:
            if not vendor_id:
                raise WalletNotFoundException(vendor_id)
            return vendor_id
        actor.require(Role.VENDOR)
        return actor.user_id

    @staticmethod
    def _log_report(report: ReconciliationReport) -> None:
        if report.is_consistent:
            logger.info("wallet_reconciled", wallet_id=report.wallet_id, transactions=report.transaction_count)
            return
        logger.error(
            "wallet_reconciliation_mismatch",
            wallet_id=report.wallet_id,
            vendor_id=report.vendor_id,
            issues=report.issues,
            broken_chain_at=report.broken_chain_at,
        )
