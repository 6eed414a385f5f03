"""
提现API路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_principal, get_payout_service
from application.dto import PaginationParams
from application.dtos.payouts import (
    PayoutApproveDTO,
    PayoutCompleteDTO,
    PayoutCreateDTO,
    PayoutDTO,
    PayoutFailDTO,
    PayoutTransitionDTO,
)
from application.services.payout_service import PayoutApplicationService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal
from domain.payout.entity import PayoutStatus

router = APIRouter(prefix="/payouts", tags=["提现"])


@router.post("", summary="申请提现", response_model=ApiResponse[PayoutTransitionDTO], status_code=201)
async def request_payout(
    data: PayoutCreateDTO,
    principal: Principal = Depends(get_current_principal),
    service: PayoutApplicationService = Depends(get_payout_service),
):
    """
    申请提现（仅校验可用余额，审核通过时才扣款）

    - **amount**: Rs.1,000 – Rs.1,000,000
    - **bank_name**: 必须在支持的银行列表中
    - **account_number**: 8-20 位数字
    """
    result = await service.request_payout(principal, data)
    return success_response(data=result, message="Payout requested")


@router.get("", summary="提现列表", response_model=ApiResponse[PaginatedData[PayoutDTO]])
async def list_payouts(
    params: PaginationParams = Depends(),
    status: Optional[PayoutStatus] = Query(None),
    principal: Principal = Depends(get_current_principal),
    service: PayoutApplicationService = Depends(get_payout_service),
):
    items, total = await service.list_payouts(principal, status=status, skip=params.skip, limit=params.limit)
    return paginated_response(items=items, total=total, page=params.page, size=params.size)


@router.get("/{payout_id}", summary="提现详情", response_model=ApiResponse[PayoutDTO])
async def get_payout(
    payout_id: int,
    principal: Principal = Depends(get_current_principal),
    service: PayoutApplicationService = Depends(get_payout_service),
):
    return success_response(data=await service.get_payout(payout_id, principal))


@router.post("/{payout_id}/approve", summary="批准提现", response_model=ApiResponse[PayoutTransitionDTO])
async def approve_payout(
    payout_id: int,
    data: PayoutApproveDTO,
    principal: Principal = Depends(get_current_principal),
    service: PayoutApplicationService = Depends(get_payout_service),
):
    """PENDING → PROCESSING 并扣减可用余额；余额不足时保持 PENDING"""
    result = await service.approve(payout_id, principal, data)
    return success_response(data=result, message="Payout approved")


@router.post("/{payout_id}/complete", summary="完成提现", response_model=ApiResponse[PayoutTransitionDTO])
async def complete_payout(
    payout_id: int,
    data: PayoutCompleteDTO,
    principal: Principal = Depends(get_current_principal),
    service: PayoutApplicationService = Depends(get_payout_service),
):
    result = await service.complete(payout_id, principal, data)
    return success_response(data=result, message="Payout completed")


@router.post("/{payout_id}/fail", summary="提现失败", response_model=ApiResponse[PayoutTransitionDTO])
async def fail_payout(
    payout_id: int,
    data: PayoutFailDTO,
    principal: Principal = Depends(get_current_principal),
    service: PayoutApplicationService = Depends(get_payout_service),
):
    """处理中失败会把款项退回可用余额"""
    result = await service.fail(payout_id, principal, data)
    return success_response(data=result, message="Payout marked as failed")
