"""
Order DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import ConfigDict, Field

from application.dto import DTOBase, Money
from domain.order.entity import Order, OrderItem, OrderStatus, StatusHistoryEntry
from domain.order.service import OrderTransition


class OrderItemCreateDTO(DTOBase):
    vendor_id: str = Field(..., min_length=1, max_length=64)
    product_snapshot: dict[str, Any] = Field(..., description="商品快照：id、名称、规格等")
    unit_price: Money = Field(..., ge=0)
    quantity: int = Field(..., gt=0, le=10_000)


class OrderCreateDTO(DTOBase):
    items: list[OrderItemCreateDTO] = Field(..., min_length=1)
    address: dict[str, Any] = Field(..., min_length=1, description="收货地址快照")
    coupon: Optional[dict[str, Any]] = None
    discount: Money = Field(Decimal("0.00"), ge=0)
    shipping_fee: Money = Field(Decimal("0.00"), ge=0)


class OrderItemDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vendor_id: str
    product_snapshot: dict[str, Any]
    unit_price: Decimal
    quantity: int
    total: Decimal
    commission_rate: Decimal
    status: OrderStatus
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    shipped_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, item: OrderItem) -> "OrderItemDTO":
        return cls.model_validate(item)


class StatusHistoryDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    status: OrderStatus
    note: Optional[str] = None
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entity(cls, entry: StatusHistoryEntry) -> "StatusHistoryDTO":
        return cls.model_validate(entry)


class OrderDTO(DTOBase):
    id: int
    order_number: str
    customer_id: str
    status: OrderStatus
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    total: Decimal
    address: dict[str, Any]
    coupon: Optional[dict[str, Any]] = None
    payment_ref: Optional[str] = None
    payment_confirmed_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    items: list[OrderItemDTO]
    history: list[StatusHistoryDTO]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: Order) -> "OrderDTO":
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            status=order.status,
            subtotal=order.subtotal,
            discount=order.discount,
            shipping_fee=order.shipping_fee,
            total=order.total,
            address=order.address_snapshot,
            coupon=order.coupon_snapshot,
            payment_ref=order.payment_ref,
            payment_confirmed_at=order.payment_confirmed_at,
            cancel_reason=order.cancel_reason,
            items=[OrderItemDTO.from_entity(i) for i in order.items],
            history=[StatusHistoryDTO.from_entity(h) for h in order.history],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderTransitionDTO(DTOBase):
    """状态变更结果：前后状态与按商家汇总的金额"""
    order_id: int
    order_number: str
    previous_status: OrderStatus
    current_status: OrderStatus
    changed: bool = True
    amounts: dict[str, Decimal] = Field(default_factory=dict)
    total: Decimal

    @classmethod
    def from_transition(cls, result: OrderTransition) -> "OrderTransitionDTO":
        return cls(
            order_id=result.order.id,
            order_number=result.order.order_number,
            previous_status=result.previous_status,
            current_status=result.current_status,
            changed=result.changed,
            amounts=result.amounts,
            total=result.order.total,
        )


class CancelOrderDTO(DTOBase):
    reason: str = Field(..., min_length=1, max_length=500)


class ReturnRequestDTO(DTOBase):
    reason: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)


class AdminNoteDTO(DTOBase):
    note: Optional[str] = Field(None, max_length=1000)


class StatusOverrideDTO(DTOBase):
    status: OrderStatus
    reason: str = Field(..., max_length=500)


class ItemStatusUpdateDTO(DTOBase):
    status: OrderStatus
    tracking_number: Optional[str] = Field(None, max_length=128)
    tracking_url: Optional[str] = Field(None, max_length=512)
