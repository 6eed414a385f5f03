"""
钱包API路由
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_principal, get_wallet_service
from application.dto import PaginationParams
from application.dtos.wallets import (
    AdjustmentDTO,
    AdjustmentResultDTO,
    ReconciliationDTO,
    WalletCreateDTO,
    WalletDTO,
    WalletTransactionDTO,
)
from application.services.wallet_service import WalletApplicationService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal, Role
from domain.wallet.entity import TransactionType

router = APIRouter(prefix="/wallets", tags=["钱包"])


@router.post("", summary="开通商家钱包", response_model=ApiResponse[WalletDTO], status_code=201)
async def open_wallet(
    data: WalletCreateDTO,
    principal: Principal = Depends(get_current_principal),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    wallet = await service.open_wallet(principal, data)
    return success_response(data=wallet, message="Wallet opened")


@router.get("/me", summary="我的钱包", response_model=ApiResponse[WalletDTO])
async def my_wallet(
    principal: Principal = Depends(get_current_principal),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    return success_response(data=await service.get_wallet(principal))


@router.get(
    "/me/transactions",
    summary="我的流水",
    response_model=ApiResponse[PaginatedData[WalletTransactionDTO]],
)
async def my_transactions(
    params: PaginationParams = Depends(),
    type: Optional[TransactionType] = Query(None, description="流水类型"),
    start: Optional[datetime] = Query(None, description="开始时间（含）"),
    end: Optional[datetime] = Query(None, description="结束时间（不含）"),
    principal: Principal = Depends(get_current_principal),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    items, total = await service.list_transactions(
        principal, type=type, start=start, end=end, skip=params.skip, limit=params.limit
    )
    return paginated_response(items=items, total=total, page=params.page, size=params.size)


@router.get("/{vendor_id}", summary="查看商家钱包（管理员）", response_model=ApiResponse[WalletDTO])
async def vendor_wallet(
    vendor_id: str,
    principal: Principal = Depends(get_current_principal),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    principal.require(Role.ADMIN)
    return success_response(data=await service.get_wallet(principal, vendor_id))


@router.post("/{vendor_id}/adjustments", summary="调账", response_model=ApiResponse[AdjustmentResultDTO])
async def adjust_balance(
    vendor_id: str,
    data: AdjustmentDTO,
    principal: Principal = Depends(get_current_principal),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    """正数记 CREDIT，负数记 DEBIT；调整可用余额与累计收益"""
    result = await service.adjust(principal, vendor_id, data)
    return success_response(data=result, message="Balance adjusted")


@router.get("/{vendor_id}/reconcile", summary="对账", response_model=ApiResponse[ReconciliationDTO])
async def reconcile(
    vendor_id: str,
    principal: Principal = Depends(get_current_principal),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    """从零重放流水并与钱包缓存余额比对"""
    return success_response(data=await service.reconcile(principal, vendor_id))
