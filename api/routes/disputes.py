"""
争议API路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_principal, get_dispute_service
from application.dto import PaginationParams
from application.dtos.disputes import (
    CommentCreateDTO,
    CommentDTO,
    DisputeCreateDTO,
    DisputeDTO,
    DisputeResolutionDTO,
    DisputeResolveDTO,
    RefundDTO,
)
from application.services.dispute_service import DisputeApplicationService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal
from domain.dispute.entity import DisputeStatus

router = APIRouter(prefix="/disputes", tags=["争议"])


@router.post("", summary="发起争议", response_model=ApiResponse[DisputeDTO], status_code=201)
async def open_dispute(
    data: DisputeCreateDTO,
    principal: Principal = Depends(get_current_principal),
    service: DisputeApplicationService = Depends(get_dispute_service),
):
    """
    送达后 7 天内发起；同一订单只能有一个进行中的争议

    - **description**: 20-1000 个字符
    - **evidence**: 最多 5 个 HTTPS 链接
    """
    dispute = await service.open_dispute(principal, data)
    return success_response(data=dispute, message="Dispute opened")


@router.get("", summary="争议列表", response_model=ApiResponse[PaginatedData[DisputeDTO]])
async def list_disputes(
    params: PaginationParams = Depends(),
    status: Optional[DisputeStatus] = Query(None),
    principal: Principal = Depends(get_current_principal),
    service: DisputeApplicationService = Depends(get_dispute_service),
):
    items, total = await service.list_disputes(principal, status=status, skip=params.skip, limit=params.limit)
    return paginated_response(items=items, total=total, page=params.page, size=params.size)


@router.get("/{dispute_id}", summary="争议详情", response_model=ApiResponse[DisputeDTO])
async def get_dispute(
    dispute_id: int,
    principal: Principal = Depends(get_current_principal),
    service: DisputeApplicationService = Depends(get_dispute_service),
):
    return success_response(data=await service.get_dispute(dispute_id, principal))


@router.post("/{dispute_id}/comments", summary="添加评论", response_model=ApiResponse[CommentDTO], status_code=201)
async def add_comment(
    dispute_id: int,
    data: CommentCreateDTO,
    principal: Principal = Depends(get_current_principal),
    service: DisputeApplicationService = Depends(get_dispute_service),
):
    return success_response(data=await service.add_comment(dispute_id, principal, data))


@router.post("/{dispute_id}/review", summary="进入审核", response_model=ApiResponse[DisputeDTO])
async def start_review(
    dispute_id: int,
    principal: Principal = Depends(get_current_principal),
    service: DisputeApplicationService = Depends(get_dispute_service),
):
    return success_response(data=await service.start_review(dispute_id, principal))


@router.patch("/{dispute_id}/resolve", summary="裁决争议", response_model=ApiResponse[DisputeResolutionDTO])
async def resolve_dispute(
    dispute_id: int,
    data: DisputeResolveDTO,
    principal: Principal = Depends(get_current_principal),
    service: DisputeApplicationService = Depends(get_dispute_service),
):
    """
    CUSTOMER_FAVOR：同一事务内按商家分摊退款、冲销佣金，订单置为 REFUNDED；
    VENDOR_FAVOR / CLOSED_NO_ACTION：订单恢复到争议前状态
    """
    result = await service.resolve(dispute_id, principal, data)
    return success_response(data=result, message="Dispute resolved")


@router.post("/{dispute_id}/refund", summary="执行退款（补偿）", response_model=ApiResponse[Optional[RefundDTO]])
async def process_refund(
    dispute_id: int,
    principal: Principal = Depends(get_current_principal),
    service: DisputeApplicationService = Depends(get_dispute_service),
):
    """幂等：已退款的争议返回 data=null"""
    refund = await service.process_refund(dispute_id, principal)
    message = "Refund processed" if refund else "Refund already processed"
    return success_response(data=refund, message=message)
