"""
支付事件API路由

网关回调的验签由支付集成层完成，这里只接收已验证的支付结果。
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_current_principal, get_payment_service
from application.dtos.orders import OrderTransitionDTO
from application.dtos.payments import PaymentEventDTO
from application.services.payment_service import PaymentEventService
from core.response import Response as ApiResponse, success_response
from domain.common.principal import Principal, Role

router = APIRouter(prefix="/payments", tags=["支付"])


@router.post("/events", summary="支付结果通知", response_model=ApiResponse[OrderTransitionDTO])
async def payment_event(
    event: PaymentEventDTO,
    principal: Principal = Depends(get_current_principal),
    service: PaymentEventService = Depends(get_payment_service),
):
    """
    COMPLETED：确认支付并按订单项冻结资金、记佣金；
    FAILED / CANCELLED：取消待支付订单。重复通知不会重复记账。
    """
    principal.require(Role.ADMIN)
    result = await service.handle(event)
    return success_response(data=result, message="Payment event applied")
