"""
订单领域实体 - 订单聚合根（含订单项与状态历史）
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from domain.common.exceptions import DomainValidationException, InvalidTransitionException
from domain.common.money import ZERO, ensure_utc, to_money
from domain.common.principal import Principal
from domain.wallet.commission import normalize_rate


class OrderStatus(str, Enum):
    """订单状态枚举（订单项子状态复用同一枚举）"""
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    CANCELLED = "CANCELLED"
    RETURN_REQUESTED = "RETURN_REQUESTED"
    RETURNED = "RETURNED"
    DISPUTED = "DISPUTED"
    REFUNDED = "REFUNDED"


TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERY_CONFIRMED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
    OrderStatus.REFUNDED,
})

# 常规状态机；DELIVERY_CONFIRMED 虽为终态，仍允许窗口期内退货/争议
TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING_PAYMENT: frozenset({OrderStatus.PAYMENT_CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.PAYMENT_CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({
        OrderStatus.DELIVERY_CONFIRMED,
        OrderStatus.RETURN_REQUESTED,
        OrderStatus.DISPUTED,
    }),
    OrderStatus.DELIVERY_CONFIRMED: frozenset({OrderStatus.RETURN_REQUESTED, OrderStatus.DISPUTED}),
    OrderStatus.RETURN_REQUESTED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.DISPUTED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# 商家可操作的订单项履约顺序
ITEM_FLOW = (
    OrderStatus.PAYMENT_CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
)

DELIVERY_STATUSES = (OrderStatus.DELIVERED, OrderStatus.DELIVERY_CONFIRMED)


@dataclass
class OrderItem:
    id: Optional[int]
    order_id: Optional[int]
    vendor_id: str
    product_snapshot: dict
    unit_price: Decimal
    quantity: int
    commission_rate: Decimal
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    total: Decimal = ZERO
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    shipped_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.vendor_id:
            raise DomainValidationException("Order item requires a vendor", field="vendor_id")
        if self.quantity is None or self.quantity <= 0:
            raise DomainValidationException(f"Quantity must be positive: {self.quantity}", field="quantity")
        self.unit_price = to_money(self.unit_price, field="unit_price")
        if self.unit_price < 0:
            raise DomainValidationException(f"Unit price must not be negative: {self.unit_price}", field="unit_price")
        self.commission_rate = normalize_rate(self.commission_rate)
        self.total = to_money(self.unit_price * self.quantity, field="total")
        self.shipped_at = ensure_utc(self.shipped_at)


@dataclass
class StatusHistoryEntry:
    id: Optional[int]
    status: OrderStatus
    sequence: int
    created_at: datetime
    note: Optional[str] = None
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. sum(订单项金额) - discount + shipping_fee == total
    2. 当前状态始终是序号最大的状态历史记录
    3. 状态历史只追加，时间戳单调不减
    4. 地址/优惠券快照创建后不可变
    """

    id: Optional[int]
    order_number: str
    customer_id: str
    items: List[OrderItem]
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    total: Decimal
    address_snapshot: dict
    coupon_snapshot: Optional[dict] = None
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    history: List[StatusHistoryEntry] = field(default_factory=list)
    payment_ref: Optional[str] = None
    payment_confirmed_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.items:
            raise DomainValidationException("Order must contain at least one item", field="items")
        self.subtotal = to_money(self.subtotal, field="subtotal")
        self.discount = to_money(self.discount, field="discount")
        self.shipping_fee = to_money(self.shipping_fee, field="shipping_fee")
        self.total = to_money(self.total, field="total")
        self._validate_totals()
        self.history.sort(key=lambda h: h.sequence)
        if self.history:
            self.status = self.history[-1].status
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        self.payment_confirmed_at = ensure_utc(self.payment_confirmed_at)

    def _validate_totals(self) -> None:
        items_total = sum((i.total for i in self.items), ZERO)
        if items_total != self.subtotal:
            raise DomainValidationException(
                f"Subtotal {self.subtotal} does not match item totals {items_total}",
                field="subtotal",
            )
        if self.discount < 0 or self.shipping_fee < 0:
            raise DomainValidationException("Discount and shipping fee must not be negative", field="discount")
        if self.subtotal - self.discount + self.shipping_fee != self.total:
            raise DomainValidationException(
                f"Order total {self.total} does not equal subtotal - discount + shipping",
                field="total",
            )
        if self.total < 0:
            raise DomainValidationException("Order total must not be negative", field="total")

    # ---- 查询 ----

    @property
    def vendor_ids(self) -> List[str]:
        return list(self.items_by_vendor().keys())

    def items_by_vendor(self) -> "OrderedDict[str, List[OrderItem]]":
        groups: "OrderedDict[str, List[OrderItem]]" = OrderedDict()
        for item in self.items:
            groups.setdefault(item.vendor_id, []).append(item)
        return groups

    def item(self, item_id: int) -> Optional[OrderItem]:
        return next((i for i in self.items if i.id == item_id), None)

    def first_entry(self, status: OrderStatus) -> Optional[StatusHistoryEntry]:
        return next((e for e in self.history if e.status is status), None)

    def delivered_at(self) -> Optional[datetime]:
        """
        退货与争议窗口的起点：首次确认收货时间，未确认时取首次送达时间

        驳回退货或争议后恢复状态会追加新的历史记录，这些记录不会重置窗口。
        """
        entry = self.first_entry(OrderStatus.DELIVERY_CONFIRMED) or self.first_entry(OrderStatus.DELIVERED)
        return entry.created_at if entry else None

    def status_before_latest(self, status: OrderStatus) -> Optional[OrderStatus]:
        """最近一次进入 status 之前的状态，用于驳回退货/争议后恢复"""
        for idx in range(len(self.history) - 1, -1, -1):
            if self.history[idx].status is status:
                return self.history[idx - 1].status if idx > 0 else None
        return None

    def within_window(self, start: Optional[datetime], window: timedelta, now: datetime) -> bool:
        return start is not None and now - start <= window

    # ---- 状态变更 ----

    def transition(
        self,
        target: OrderStatus,
        *,
        actor: Optional[Principal],
        now: datetime,
        note: Optional[str] = None,
    ) -> OrderStatus:
        """按状态机推进；不合法时抛出 InvalidTransitionException，返回原状态"""
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionException("order", self.status.value, target.value)
        return self.record(target, actor=actor, now=now, note=note)

    def record(
        self,
        target: OrderStatus,
        *,
        actor: Optional[Principal],
        now: datetime,
        note: Optional[str] = None,
        cascade_items: bool = True,
    ) -> OrderStatus:
        """追加一条状态历史（不做状态机校验）"""
        previous = self.status
        last = self.history[-1] if self.history else None
        created_at = now if last is None or now >= last.created_at else last.created_at
        self.history.append(
            StatusHistoryEntry(
                id=None,
                status=target,
                sequence=(last.sequence + 1) if last else 1,
                created_at=created_at,
                note=note,
                actor_id=actor.user_id if actor else None,
                actor_role=actor.role.value if actor else None,
            )
        )
        self.status = target
        if cascade_items:
            for item in self.items:
                item.status = target
        self.updated_at = created_at
        return previous

    def rollup_item_status(self) -> OrderStatus:
        """订单状态取所有订单项中进度最慢者"""
        return min((i.status for i in self.items), key=ITEM_FLOW.index)
