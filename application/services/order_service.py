"""
订单应用服务（application/services）- 编排订单领域服务，处理事务与 DTO 转换
"""
from __future__ import annotations

from typing import List, Optional, Tuple

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
from application.services.base import DomainServices, SettlementApplicationService
from core.logging_config import get_logger
from domain.common.principal import Principal, Role
from domain.order.entity import OrderStatus
from domain.order.service import NewOrderItem


logger = get_logger(__name__)


class OrderApplicationService(SettlementApplicationService):
    """订单应用服务 - 下单、履约、确认收货、取消、退货与人工改状态"""

    async def place_order(self, customer: Principal, data: OrderCreateDTO) -> OrderDTO:
        async def _op(s: DomainServices):
            return await s.orders.place_order(
                customer,
                [
                    NewOrderItem(
                        vendor_id=i.vendor_id,
                        product_snapshot=i.product_snapshot,
                        unit_price=i.unit_price,
                        quantity=i.quantity,
                    )
                    for i in data.items
                ],
                data.address,
                discount=data.discount,
                shipping_fee=data.shipping_fee,
                coupon_snapshot=data.coupon,
            )

        order = await self._execute(_op, name="place_order")
        logger.info("order_placed", order_id=order.id, order_number=order.order_number, total=str(order.total))
        return OrderDTO.from_entity(order)

    async def get_order(self, order_id: int, actor: Principal) -> OrderDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id)
            s.orders.ensure_can_view(order, actor)
            return order

        return OrderDTO.from_entity(await self._read(_op))

    async def list_orders(
        self,
        customer: Principal,
        *,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[OrderDTO], int]:
        customer.require(Role.CUSTOMER)

        async def _op(s: DomainServices):
            repo = s.uow.order_repository
            orders = await repo.list_by_customer(customer.user_id, status=status, skip=skip, limit=limit)
            total = await repo.count_by_customer(customer.user_id, status=status)
            return orders, total

        orders, total = await self._read(_op)
        return [OrderDTO.from_entity(o) for o in orders], int(total)

    async def cancel(self, order_id: int, actor: Principal, data: CancelOrderDTO) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id, for_update=True)
            return await s.orders.cancel(order, data.reason, actor)

        result = await self._execute(_op, name="cancel_order")
        logger.info("order_cancelled", order_id=order_id, reversed={k: str(v) for k, v in result.amounts.items()})
        return OrderTransitionDTO.from_transition(result)

    async def update_item_status(
        self,
        item_id: int,
        vendor: Principal,
        data: ItemStatusUpdateDTO,
    ) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            return await s.orders.update_item_status(
                item_id,
                vendor,
                data.status,
                tracking_number=data.tracking_number,
                tracking_url=data.tracking_url,
            )

        result = await self._execute(_op, name="update_item_status")
        return OrderTransitionDTO.from_transition(result)

    async def mark_delivered(self, order_id: int, actor: Principal) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id, for_update=True)
            return await s.orders.mark_delivered(order, actor)

        return OrderTransitionDTO.from_transition(await self._execute(_op, name="mark_delivered"))

    async def confirm_delivery(self, order_id: int, customer: Principal) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id, for_update=True)
            return await s.orders.confirm_delivery(order, customer)

        result = await self._execute(_op, name="confirm_delivery")
        logger.info("order_funds_released", order_id=order_id, released={k: str(v) for k, v in result.amounts.items()})
        return OrderTransitionDTO.from_transition(result)

    async def request_return(self, order_id: int, customer: Principal, data: ReturnRequestDTO) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id, for_update=True)
            return await s.orders.request_return(order, customer, data.reason, data.description)

        return OrderTransitionDTO.from_transition(await self._execute(_op, name="request_return"))

    async def complete_return(self, order_id: int, admin: Principal, data: AdminNoteDTO) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id, for_update=True)
            return await s.orders.complete_return(order, admin, data.note)

        return OrderTransitionDTO.from_transition(await self._execute(_op, name="complete_return"))

    async def reject_return(self, order_id: int, admin: Principal, data: AdminNoteDTO) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id, for_update=True)
            return await s.orders.reject_return(order, admin, data.note or "")

        return OrderTransitionDTO.from_transition(await self._execute(_op, name="reject_return"))

    async def override_status(self, order_id: int, admin: Principal, data: StatusOverrideDTO) -> OrderTransitionDTO:
        async def _op(s: DomainServices):
            order = await s.orders.get_order(order_id, for_update=True)
            return await s.orders.override_status(order, data.status, data.reason, admin)

        result = await self._execute(_op, name="override_status")
        logger.warning(
            "order_status_overridden",
            order_id=order_id,
            from_status=result.previous_status.value,
            to_status=result.current_status.value,
            admin_id=admin.user_id,
        )
        return OrderTransitionDTO.from_transition(result)
