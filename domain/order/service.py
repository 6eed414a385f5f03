"""
订单领域服务 - 订单状态机与资金记账编排
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from domain.common.exceptions import (
    AlreadyTerminalException,
    DomainValidationException,
    ForbiddenActionException,
    InvalidTransitionException,
    OrderItemNotFoundException,
    OrderNotFoundException,
)
from domain.common.money import ZERO, to_money, utcnow
from domain.common.policy import SettlementPolicy
from domain.common.principal import SYSTEM, Principal, Role
from domain.dispute.refund import RefundEngine
from domain.wallet.commission import compute_commission
from domain.wallet.entity import LedgerBucket, Posting, ReferenceType, TransactionType
from domain.wallet.service import WalletLedger

from .entity import ITEM_FLOW, Order, OrderItem, OrderStatus
from .events import (
    OrderCancelled,
    OrderFundsReleased,
    OrderItemShipped,
    OrderPaymentConfirmed,
    OrderPlaced,
    OrderReturned,
    OrderReturnRequested,
    OrderStatusChanged,
    OrderStatusOverridden,
)
from .repository import OrderRepository


@dataclass(frozen=True)
class NewOrderItem:
    vendor_id: str
    product_snapshot: dict
    unit_price: Decimal
    quantity: int


@dataclass
class OrderTransition:
    """一次状态变更的结果：前后状态与按商家汇总的金额"""
    order: Order
    previous_status: OrderStatus
    changed: bool = True
    amounts: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def current_status(self) -> OrderStatus:
        return self.order.status


class OrderDomainService:
    """
    订单领域服务

    职责：
    1. 下单校验与金额快照
    2. 状态机推进（支付确认、履约、送达、确认收货、取消、退货、人工改状态）
    3. 通过 WalletLedger 记 HOLD / COMMISSION / RELEASE / REFUND
    4. 产生领域事件
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        ledger: WalletLedger,
        policy: SettlementPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.order_repository = order_repository
        self.ledger = ledger
        self.policy = policy
        self.clock = clock
        self.events: List = []

    # ---- 加载与权限 ----

    async def get_order(self, order_id: int, *, for_update: bool = False) -> Order:
        order = await self.order_repository.get_by_id(order_id, for_update=for_update)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    @staticmethod
    def ensure_can_view(order: Order, actor: Principal) -> None:
        if actor.is_admin or order.customer_id == actor.user_id:
            return
        if actor.role is Role.VENDOR and actor.user_id in order.vendor_ids:
            return
        raise ForbiddenActionException("You do not have access to this order")

    @staticmethod
    def _ensure_customer(order: Order, actor: Principal) -> None:
        if actor.is_admin:
            return
        if actor.role is not Role.CUSTOMER or actor.user_id != order.customer_id:
            raise ForbiddenActionException("Only the customer who placed the order can do this")

    def _status_event(self, cls, order: Order, previous: OrderStatus, actor: Optional[Principal], note=None, **extra):
        self.events.append(
            cls(
                order_id=order.id,
                order_number=order.order_number,
                customer_id=order.customer_id,
                from_status=previous.value,
                to_status=order.status.value,
                actor_id=actor.user_id if actor else None,
                note=note,
                vendor_ids=order.vendor_ids,
                **extra,
            )
        )

    # ---- 下单 ----

    async def place_order(
        self,
        customer: Principal,
        items: Sequence[NewOrderItem],
        address_snapshot: dict,
        *,
        discount: Decimal = ZERO,
        shipping_fee: Decimal = ZERO,
        coupon_snapshot: Optional[dict] = None,
    ) -> Order:
        customer.require(Role.CUSTOMER)
        if not items:
            raise DomainValidationException("Order must contain at least one item", field="items")
        if not address_snapshot:
            raise DomainValidationException("Shipping address is required", field="address")

        rates: Dict[str, Decimal] = {}
        for vendor_id in {i.vendor_id for i in items}:
            rates[vendor_id] = (await self.ledger.get_wallet(vendor_id)).commission_rate

        order_items = [
            OrderItem(
                id=None,
                order_id=None,
                vendor_id=i.vendor_id,
                product_snapshot=dict(i.product_snapshot),
                unit_price=i.unit_price,
                quantity=i.quantity,
                commission_rate=rates[i.vendor_id],
            )
            for i in items
        ]
        subtotal = sum((i.total for i in order_items), ZERO)
        discount = to_money(discount, field="discount")
        shipping_fee = to_money(shipping_fee, field="shipping_fee")
        if discount > subtotal:
            raise DomainValidationException("Discount cannot exceed the order subtotal", field="discount")

        now = self.clock()
        order = Order(
            id=None,
            order_number=f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}",
            customer_id=customer.user_id,
            items=order_items,
            subtotal=subtotal,
            discount=discount,
            shipping_fee=shipping_fee,
            total=subtotal - discount + shipping_fee,
            address_snapshot=dict(address_snapshot),
            coupon_snapshot=dict(coupon_snapshot) if coupon_snapshot else None,
            created_at=now,
        )
        order.record(OrderStatus.PENDING_PAYMENT, actor=customer, now=now, note="Order placed")
        created = await self.order_repository.create(order)
        self.events.append(
            OrderPlaced(
                order_id=created.id,
                order_number=created.order_number,
                customer_id=created.customer_id,
                total=created.total,
                vendor_ids=created.vendor_ids,
            )
        )
        return created

    # ---- 支付 ----

    async def confirm_payment(self, order: Order, payment_ref: Optional[str] = None) -> OrderTransition:
        """
        支付确认：PENDING_PAYMENT → PAYMENT_CONFIRMED，逐订单项记 HOLD 与 COMMISSION

        幂等：已确认支付的订单直接返回 changed=False。
        """
        if order.status is not OrderStatus.PENDING_PAYMENT and order.payment_confirmed_at is not None:
            return OrderTransition(order=order, previous_status=order.status, changed=False)

        now = self.clock()
        previous = order.transition(OrderStatus.PAYMENT_CONFIRMED, actor=SYSTEM, now=now, note="Payment confirmed")
        order.payment_ref = payment_ref
        order.payment_confirmed_at = now

        held: Dict[str, Decimal] = {}
        for item in order.items:
            if item.total <= 0:
                continue
            breakdown = compute_commission(item.total, item.commission_rate)
            await self.ledger.post_for_vendor(
                item.vendor_id,
                Posting(
                    type=TransactionType.HOLD,
                    amount=item.total,
                    description=f"Hold for order {order.order_number}",
                    reference_type=ReferenceType.ORDER,
                    reference_id=order.id,
                    order_item_id=item.id,
                ),
            )
            if breakdown.commission > 0:
                await self.ledger.post_for_vendor(
                    item.vendor_id,
                    Posting(
                        type=TransactionType.COMMISSION,
                        amount=-breakdown.commission,
                        description=f"Platform commission {breakdown.rate}% for order {order.order_number}",
                        reference_type=ReferenceType.ORDER,
                        reference_id=order.id,
                        order_item_id=item.id,
                    ),
                )
            held[item.vendor_id] = held.get(item.vendor_id, ZERO) + item.total

        await self.order_repository.update(order)
        self._status_event(OrderPaymentConfirmed, order, previous, SYSTEM, payment_ref=payment_ref, held=held)
        return OrderTransition(order=order, previous_status=previous, amounts=held)

    async def fail_payment(self, order: Order, reason: Optional[str] = None) -> OrderTransition:
        """支付失败/取消：PENDING_PAYMENT → CANCELLED，无资金变动；重复通知为空操作"""
        if order.status is OrderStatus.CANCELLED:
            return OrderTransition(order=order, previous_status=order.status, changed=False)
        if order.status is not OrderStatus.PENDING_PAYMENT:
            raise InvalidTransitionException(
                "order", order.status.value, OrderStatus.CANCELLED.value, reason="payment already confirmed"
            )
        note = reason or "Payment failed"
        previous = order.transition(OrderStatus.CANCELLED, actor=SYSTEM, now=self.clock(), note=note)
        order.cancel_reason = note
        await self.order_repository.update(order)
        self._status_event(OrderCancelled, order, previous, SYSTEM, note=note, reason=note)
        return OrderTransition(order=order, previous_status=previous)

    # ---- 履约 ----

    async def update_item_status(
        self,
        item_id: int,
        vendor: Principal,
        target: OrderStatus,
        *,
        tracking_number: Optional[str] = None,
        tracking_url: Optional[str] = None,
    ) -> OrderTransition:
        """商家推进自己的订单项：PAYMENT_CONFIRMED → PROCESSING → SHIPPED，订单状态取最慢项"""
        vendor.require(Role.VENDOR)
        order = await self.order_repository.get_by_item_id(item_id, for_update=True)
        item = order.item(item_id) if order else None
        if order is None or item is None:
            raise OrderItemNotFoundException(item_id)
        if not vendor.is_admin and item.vendor_id != vendor.user_id:
            raise ForbiddenActionException("This item belongs to another vendor")
        if order.status not in (OrderStatus.PAYMENT_CONFIRMED, OrderStatus.PROCESSING):
            raise InvalidTransitionException("order", order.status.value, target.value)
        if target not in ITEM_FLOW[1:] or item.status not in ITEM_FLOW or (
            ITEM_FLOW.index(target) != ITEM_FLOW.index(item.status) + 1
        ):
            raise InvalidTransitionException("order item", item.status.value, target.value)
        if target is OrderStatus.SHIPPED and not (tracking_number and tracking_number.strip()):
            raise DomainValidationException("Tracking number is required to ship an item", field="tracking_number")

        now = self.clock()
        item.status = target
        if target is OrderStatus.SHIPPED:
            item.tracking_number = tracking_number.strip()
            item.tracking_url = tracking_url
            item.shipped_at = now

        previous = order.status
        rolled = order.rollup_item_status()
        if rolled is not order.status:
            order.record(rolled, actor=vendor, now=now, note=f"Item {item_id} {target.value}", cascade_items=False)
        else:
            order.updated_at = now
        await self.order_repository.update(order)

        if target is OrderStatus.SHIPPED:
            self.events.append(
                OrderItemShipped(
                    order_id=order.id,
                    order_number=order.order_number,
                    customer_id=order.customer_id,
                    item_id=item_id,
                    vendor_id=item.vendor_id,
                    tracking_number=item.tracking_number,
                    tracking_url=item.tracking_url,
                )
            )
        if order.status is not previous:
            self._status_event(OrderStatusChanged, order, previous, vendor)
        return OrderTransition(order=order, previous_status=previous, changed=order.status is not previous)

    async def mark_delivered(self, order: Order, actor: Principal) -> OrderTransition:
        """SHIPPED → DELIVERED；重复标记为空操作"""
        if not actor.is_admin:
            actor.require(Role.VENDOR)
            if actor.user_id not in order.vendor_ids:
                raise ForbiddenActionException("You do not have items in this order")
        if order.status is OrderStatus.DELIVERED:
            return OrderTransition(order=order, previous_status=order.status, changed=False)
        previous = order.transition(OrderStatus.DELIVERED, actor=actor, now=self.clock(), note="Delivered")
        await self.order_repository.update(order)
        self._status_event(OrderStatusChanged, order, previous, actor)
        return OrderTransition(order=order, previous_status=previous)

    async def confirm_delivery(self, order: Order, customer: Principal) -> OrderTransition:
        """
        确认收货：DELIVERED → DELIVERY_CONFIRMED

        按商家记 RELEASE：待结算扣除毛额，可用余额与累计收益增加净额。
        这是资金变为可提现的唯一途径。
        """
        self._ensure_customer(order, customer)
        if order.status is OrderStatus.DELIVERY_CONFIRMED:
            raise AlreadyTerminalException("order", order.id, order.status.value)
        previous = order.transition(
            OrderStatus.DELIVERY_CONFIRMED, actor=customer, now=self.clock(), note="Delivery confirmed"
        )

        released: Dict[str, Decimal] = {}
        for vendor_id, items in order.items_by_vendor().items():
            gross = sum((i.total for i in items), ZERO)
            if gross <= 0:
                continue
            commission = sum((compute_commission(i.total, i.commission_rate).commission for i in items), ZERO)
            net = gross - commission
            await self.ledger.post_for_vendor(
                vendor_id,
                Posting(
                    type=TransactionType.RELEASE,
                    amount=net,
                    gross_amount=gross,
                    description=f"Release for order {order.order_number}",
                    reference_type=ReferenceType.ORDER,
                    reference_id=order.id,
                ),
            )
            released[vendor_id] = net

        await self.order_repository.update(order)
        self._status_event(OrderFundsReleased, order, previous, customer, released=released)
        return OrderTransition(order=order, previous_status=previous, amounts=released)

    # ---- 取消 ----

    async def cancel(self, order: Order, reason: str, actor: Principal) -> OrderTransition:
        """
        取消订单：仅 PENDING_PAYMENT / PAYMENT_CONFIRMED，且在下单后固定窗口内

        已记的 HOLD / COMMISSION 按商家冲销（从待结算余额），不释放。
        """
        self._ensure_customer(order, actor)
        if not reason or not reason.strip():
            raise DomainValidationException("Cancellation reason is required", field="reason")
        if order.status is OrderStatus.CANCELLED:
            raise AlreadyTerminalException("order", order.id, order.status.value)
        if order.status not in (OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_CONFIRMED):
            raise InvalidTransitionException("order", order.status.value, OrderStatus.CANCELLED.value)
        now = self.clock()
        if not order.within_window(order.created_at, self.policy.cancel_window, now):
            raise InvalidTransitionException(
                "order", order.status.value, OrderStatus.CANCELLED.value, reason="cancellation window has expired"
            )

        was_paid = order.status is OrderStatus.PAYMENT_CONFIRMED
        previous = order.transition(OrderStatus.CANCELLED, actor=actor, now=now, note=reason.strip())
        order.cancel_reason = reason.strip()

        reversed_amounts: Dict[str, Decimal] = {}
        if was_paid:
            for vendor_id, items in order.items_by_vendor().items():
                gross = sum((i.total for i in items), ZERO)
                if gross <= 0:
                    continue
                commission = sum((compute_commission(i.total, i.commission_rate).commission for i in items), ZERO)
                await self.ledger.post_for_vendor(
                    vendor_id,
                    Posting(
                        type=TransactionType.REFUND,
                        amount=-gross,
                        bucket=LedgerBucket.PENDING,
                        description=f"Hold reversed, order {order.order_number} cancelled",
                        reference_type=ReferenceType.ORDER,
                        reference_id=order.id,
                    ),
                )
                if commission > 0:
                    await self.ledger.post_for_vendor(
                        vendor_id,
                        Posting(
                            type=TransactionType.COMMISSION,
                            amount=commission,
                            description=f"Commission reversed, order {order.order_number} cancelled",
                            reference_type=ReferenceType.ORDER,
                            reference_id=order.id,
                        ),
                    )
                reversed_amounts[vendor_id] = gross

        await self.order_repository.update(order)
        self._status_event(
            OrderCancelled, order, previous, actor, note=order.cancel_reason,
            reason=order.cancel_reason, reversed=reversed_amounts,
        )
        return OrderTransition(order=order, previous_status=previous, amounts=reversed_amounts)

    # ---- 退货 ----

    async def request_return(
        self,
        order: Order,
        customer: Principal,
        reason: str,
        description: Optional[str] = None,
    ) -> OrderTransition:
        """送达后固定窗口内申请退货（窗口起点取状态历史中的送达时间）"""
        self._ensure_customer(order, customer)
        if not reason or not reason.strip():
            raise DomainValidationException("Return reason is required", field="reason")
        now = self.clock()
        if order.status in (OrderStatus.DELIVERED, OrderStatus.DELIVERY_CONFIRMED) and not order.within_window(
            order.delivered_at(), self.policy.return_window, now
        ):
            raise InvalidTransitionException(
                "order", order.status.value, OrderStatus.RETURN_REQUESTED.value, reason="return window has expired"
            )
        note = reason.strip() if not description else f"{reason.strip()}: {description.strip()}"
        previous = order.transition(OrderStatus.RETURN_REQUESTED, actor=customer, now=now, note=note)
        await self.order_repository.update(order)
        self._status_event(OrderReturnRequested, order, previous, customer, note=note, reason=reason.strip())
        return OrderTransition(order=order, previous_status=previous)

    async def complete_return(self, order: Order, admin: Principal, note: Optional[str] = None) -> OrderTransition:
        """RETURN_REQUESTED → RETURNED，按全额退款分摊冲销各商家"""
        admin.require(Role.ADMIN)
        previous = order.transition(OrderStatus.RETURNED, actor=admin, now=self.clock(), note=note or "Return received")
        engine = RefundEngine(self.ledger)
        calculation = engine.calculate_refund(order)
        applied = await engine.apply(
            order,
            calculation,
            reference_type=ReferenceType.ORDER,
            reference_id=order.id,
            description=f"Return of order {order.order_number}",
        )
        await self.order_repository.update(order)
        amounts = {a.vendor_id: a.share for a in applied}
        self._status_event(
            OrderReturned, order, previous, admin, note=note, refund_amount=calculation.refund_amount,
        )
        return OrderTransition(order=order, previous_status=previous, amounts=amounts)

    async def reject_return(self, order: Order, admin: Principal, note: str) -> OrderTransition:
        """驳回退货，恢复到申请前的状态"""
        admin.require(Role.ADMIN)
        if order.status is not OrderStatus.RETURN_REQUESTED:
            raise InvalidTransitionException("order", order.status.value, "RETURN_REJECTED")
        if not note or not note.strip():
            raise DomainValidationException("A note is required to reject a return", field="note")
        restored = order.status_before_latest(OrderStatus.RETURN_REQUESTED) or OrderStatus.DELIVERED
        previous = order.record(restored, actor=admin, now=self.clock(), note=note.strip())
        await self.order_repository.update(order)
        self._status_event(OrderStatusChanged, order, previous, admin, note=note.strip())
        return OrderTransition(order=order, previous_status=previous)

    # ---- 人工改状态 ----

    async def override_status(
        self,
        order: Order,
        target: OrderStatus,
        reason: str,
        admin: Principal,
    ) -> OrderTransition:
        """
        管理员直接设置状态（绕过状态机，不产生资金记账）

        业务规则：
        1. 原因长度不少于配置值
        2. 目标状态与当前相同则拒绝，且不写状态历史
        3. 所有订单项同步为目标状态，并记录操作人
        """
        admin.require(Role.ADMIN)
        reason = (reason or "").strip()
        if len(reason) < self.policy.override_reason_min_length:
            raise DomainValidationException(
                f"Reason must be at least {self.policy.override_reason_min_length} characters",
                field="reason",
            )
        if target is order.status:
            raise InvalidTransitionException("order", order.status.value, target.value, reason="order already has this status")
        previous = order.record(target, actor=admin, now=self.clock(), note=f"Admin override: {reason}")
        await self.order_repository.update(order)
        self._status_event(OrderStatusOverridden, order, previous, admin, note=reason, reason=reason)
        return OrderTransition(order=order, previous_status=previous)

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
