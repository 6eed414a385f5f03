"""
API依赖项 - 调用方身份与应用服务装配
"""
from typing import Optional

import structlog
from fastapi import Depends, Header, Request

from application.ports.notifications import NotificationPort
from application.services.dispute_service import DisputeApplicationService
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentEventService
from application.services.payout_service import PayoutApplicationService
from application.services.wallet_service import WalletApplicationService
from core.exceptions import UnauthorizedException
from domain.common.principal import Principal, Role
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_current_principal(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Principal:
    """
    读取上游认证网关注入的身份头

    SYSTEM 角色仅供内部调用，不接受外部请求头声明。
    """
    if not x_user_id or not x_user_role:
        raise UnauthorizedException("Missing X-User-Id / X-User-Role headers")
    try:
        role = Role(x_user_role.strip().upper())
    except ValueError:
        raise UnauthorizedException(f"Unknown role: {x_user_role}") from None
    if role is Role.SYSTEM:
        raise UnauthorizedException("SYSTEM role cannot be asserted by clients")
    structlog.contextvars.bind_contextvars(user_id=x_user_id, user_role=role.value)
    return Principal(user_id=x_user_id.strip(), role=role)


def get_notifier(request: Request) -> Optional[NotificationPort]:
    """通知端口由应用启动时挂到 app.state，测试可替换"""
    return getattr(request.app.state, "notifier", None)


def get_uow_factory(request: Request):
    return getattr(request.app.state, "uow_factory", SQLAlchemyUnitOfWork)


def get_clock(request: Request):
    return getattr(request.app.state, "clock", None)


def _service_kwargs(request: Request) -> dict:
    kwargs = {"notifier": get_notifier(request)}
    clock = get_clock(request)
    if clock is not None:
        kwargs["clock"] = clock
    return kwargs


async def get_order_service(request: Request, uow_factory=Depends(get_uow_factory)) -> OrderApplicationService:
    return OrderApplicationService(uow_factory, **_service_kwargs(request))


async def get_payment_service(request: Request, uow_factory=Depends(get_uow_factory)) -> PaymentEventService:
    return PaymentEventService(uow_factory, **_service_kwargs(request))


async def get_wallet_service(request: Request, uow_factory=Depends(get_uow_factory)) -> WalletApplicationService:
    return WalletApplicationService(uow_factory, **_service_kwargs(request))


async def get_payout_service(request: Request, uow_factory=Depends(get_uow_factory)) -> PayoutApplicationService:
    return PayoutApplicationService(uow_factory, **_service_kwargs(request))


async def get_dispute_service(request: Request, uow_factory=Depends(get_uow_factory)) -> DisputeApplicationService:
    return DisputeApplicationService(uow_factory, **_service_kwargs(request))
