"""
Order domain events.

Each event carries enough data for notification fan-out (ids, amounts,
before/after status) without another storage round trip.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from domain.common.events import DomainEvent


@dataclass
class OrderEvent(DomainEvent):
    aggregate_type = "order"
    aggregate_key = "order_id"

    order_id: int
    order_number: str
    customer_id: str


@dataclass
class OrderPlaced(OrderEvent):
    total: Decimal = Decimal("0")
    vendor_ids: List[str] = field(default_factory=list)


@dataclass
class OrderStatusChanged(OrderEvent):
    from_status: str = ""
    to_status: str = ""
    actor_id: Optional[str] = None
    note: Optional[str] = None
    vendor_ids: List[str] = field(default_factory=list)


@dataclass
class OrderPaymentConfirmed(OrderStatusChanged):
    payment_ref: Optional[str] = None
    held: dict = field(default_factory=dict)  # vendor_id -> gross held


@dataclass
class OrderFundsReleased(OrderStatusChanged):
    released: dict = field(default_factory=dict)  # vendor_id -> net released


@dataclass
class OrderCancelled(OrderStatusChanged):
    reason: str = ""
    reversed: dict = field(default_factory=dict)  # vendor_id -> gross reversed


@dataclass
class OrderReturnRequested(OrderStatusChanged):
    reason: str = ""


@dataclass
class OrderReturned(OrderStatusChanged):
    refund_amount: Decimal = Decimal("0")


@dataclass
class OrderStatusOverridden(OrderStatusChanged):
    reason: str = ""


@dataclass
class OrderItemShipped(OrderEvent):
    item_id: int = 0
    vendor_id: str = ""
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
