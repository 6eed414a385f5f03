"""
订单API路由 - FastAPI表现层
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_principal, get_order_service
from application.dto import PaginationParams
from application.dtos.orders import (
    AdminNoteDTO,
    CancelOrderDTO,
    ItemStatusUpdateDTO,
    OrderCreateDTO,
    OrderDTO,
    OrderTransitionDTO,
    ReturnRequestDTO,
    StatusOverrideDTO,
)
from application.services.order_service import OrderApplicationService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal
from domain.order.entity import OrderStatus

router = APIRouter(prefix="/orders", tags=["订单"])


@router.post("", summary="下单", response_model=ApiResponse[OrderDTO], status_code=201)
async def place_order(
    data: OrderCreateDTO,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    创建订单（金额与佣金比例在下单时快照）

    - **items**: 订单项（商家、商品快照、单价、数量）
    - **address**: 收货地址快照
    - **discount** / **shipping_fee**: 优惠与运费，total = subtotal - discount + shipping_fee
    """
    order = await service.place_order(principal, data)
    return success_response(data=order, message="Order placed")


@router.get("", summary="我的订单", response_model=ApiResponse[PaginatedData[OrderDTO]])
async def list_orders(
    params: PaginationParams = Depends(),
    status: Optional[OrderStatus] = Query(None, description="按状态筛选"),
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    items, total = await service.list_orders(principal, status=status, skip=params.skip, limit=params.limit)
    return paginated_response(items=items, total=total, page=params.page, size=params.size)


@router.get("/{order_id}", summary="订单详情", response_model=ApiResponse[OrderDTO])
async def get_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.get_order(order_id, principal))


@router.post("/{order_id}/cancel", summary="取消订单", response_model=ApiResponse[OrderTransitionDTO])
async def cancel_order(
    order_id: int,
    data: CancelOrderDTO,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    """下单后 24 小时内、发货前可取消；已支付订单冲销冻结款与佣金"""
    result = await service.cancel(order_id, principal, data)
    return success_response(data=result, message="Order cancelled")


@router.post("/{order_id}/mark-delivered", summary="标记送达", response_model=ApiResponse[OrderTransitionDTO])
async def mark_delivered(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.mark_delivered(order_id, principal))


@router.post("/{order_id}/confirm-delivery", summary="确认收货", response_model=ApiResponse[OrderTransitionDTO])
async def confirm_delivery(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    """确认收货后各商家待结算资金扣佣转入可用余额"""
    result = await service.confirm_delivery(order_id, principal)
    return success_response(data=result, message="Delivery confirmed")


@router.post("/{order_id}/request-return", summary="申请退货", response_model=ApiResponse[OrderTransitionDTO])
async def request_return(
    order_id: int,
    data: ReturnRequestDTO,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.request_return(order_id, principal, data))


@router.post("/{order_id}/return/complete", summary="完成退货", response_model=ApiResponse[OrderTransitionDTO])
async def complete_return(
    order_id: int,
    data: AdminNoteDTO,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.complete_return(order_id, principal, data))


@router.post("/{order_id}/return/reject", summary="驳回退货", response_model=ApiResponse[OrderTransitionDTO])
async def reject_return(
    order_id: int,
    data: AdminNoteDTO,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.reject_return(order_id, principal, data))


@router.patch("/{order_id}/status", summary="管理员修改状态", response_model=ApiResponse[OrderTransitionDTO])
async def override_status(
    order_id: int,
    data: StatusOverrideDTO,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    """绕过状态机直接设置状态，不产生资金记账；目标状态与当前相同会被拒绝"""
    result = await service.override_status(order_id, principal, data)
    return success_response(data=result, message="Order status overridden")


@router.patch("/items/{item_id}/status", summary="商家更新订单项状态", response_model=ApiResponse[OrderTransitionDTO])
async def update_item_status(
    item_id: int,
    data: ItemStatusUpdateDTO,
    principal: Principal = Depends(get_current_principal),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.update_item_status(item_id, principal, data))
