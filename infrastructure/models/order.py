"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON,
    Index, ForeignKey, UniqueConstraint, text,
)

from .base import Base, Money, Rate


class OrderModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中；
    当前状态冗余存储，权威来源是 order_status_history 中序号最大的记录
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    order_number = Column(String(32), unique=True, nullable=False, comment="订单号 ORD-YYYYMMDD-XXXXXXXX")
    customer_id = Column(String(64), nullable=False, index=True, comment="下单客户ID")

    # 金额快照（定点数，避免浮点误差）
    subtotal = Column(Money, nullable=False, comment="商品合计")
    discount = Column(Money, nullable=False, default=0, comment="优惠金额")
    shipping_fee = Column(Money, nullable=False, default=0, comment="运费")
    total = Column(Money, nullable=False, comment="应付总额")

    address_snapshot = Column(JSON, nullable=False, comment="收货地址快照（不可变）")
    coupon_snapshot = Column(JSON, nullable=True, comment="优惠券快照（不可变）")

    status = Column(String(32), nullable=False, index=True, comment="当前状态（冗余）")
    payment_ref = Column(String(128), nullable=True, comment="支付渠道流水号")
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True, comment="支付确认时间")
    cancel_reason = Column(Text, nullable=True, comment="取消原因")

    version = Column(Integer, nullable=False, default=0, server_default=text("0"), comment="乐观锁版本号")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_orders_customer_created", "customer_id", "created_at"),
        {"comment": "订单表"},
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"


class OrderItemModel(Base):
    """订单项，每项归属一个商家"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="所属订单ID"
    )
    vendor_id = Column(String(64), nullable=False, index=True, comment="商家ID")
    product_snapshot = Column(JSON, nullable=False, comment="商品快照")
    unit_price = Column(Money, nullable=False, comment="单价")
    quantity = Column(Integer, nullable=False, comment="数量")
    total = Column(Money, nullable=False, comment="小计 = 单价 × 数量")
    commission_rate = Column(Rate, nullable=False, comment="下单时的佣金费率（百分比）")
    status = Column(String(32), nullable=False, comment="订单项状态")
    tracking_number = Column(String(128), nullable=True, comment="物流单号")
    tracking_url = Column(String(512), nullable=True, comment="物流查询链接")
    shipped_at = Column(DateTime(timezone=True), nullable=True, comment="发货时间")

    __table_args__ = (
        Index("ix_order_items_vendor_status", "vendor_id", "status"),
    )


class OrderStatusHistoryModel(Base):
    """订单状态历史，只追加"""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="所属订单ID"
    )
    sequence = Column(Integer, nullable=False, comment="订单内递增序号")
    status = Column(String(32), nullable=False, comment="进入的状态")
    note = Column(Text, nullable=True, comment="备注")
    actor_id = Column(String(64), nullable=True, comment="操作人ID")
    actor_role = Column(String(16), nullable=True, comment="操作人角色")
    created_at = Column(DateTime(timezone=True), nullable=False, comment="记录时间")

    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="uq_order_status_history_sequence"),
    )
