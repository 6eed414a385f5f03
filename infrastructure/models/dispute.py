"""
争议与评论数据库模型
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON,
    Index, ForeignKey, text,
)

from .base import Base, Money


class DisputeModel(Base):
    """订单争议"""
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="订单ID"
    )
    customer_id = Column(String(64), nullable=False, index=True, comment="发起客户ID")
    reason = Column(String(32), nullable=False, comment="争议原因")
    description = Column(Text, nullable=False, comment="问题描述")
    evidence = Column(JSON, nullable=False, default=list, comment="证据URL列表")
    status = Column(String(32), nullable=False, default="OPEN", index=True, comment="争议状态")

    resolution_type = Column(String(32), nullable=True, comment="裁决类型")
    resolution_notes = Column(Text, nullable=True, comment="裁决说明")
    refund_amount = Column(Money, nullable=True, comment="退款金额")
    refund_processed_at = Column(DateTime(timezone=True), nullable=True, comment="退款执行时间（非空即已退款）")
    resolved_by = Column(String(64), nullable=True, comment="裁决人")
    resolved_at = Column(DateTime(timezone=True), nullable=True, comment="裁决时间")

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
        Index("ix_disputes_order_status", "order_id", "status"),
        {"comment": "订单争议表"},
    )


class DisputeCommentModel(Base):
    """争议评论"""
    __tablename__ = "dispute_comments"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    dispute_id = Column(
        Integer,
        ForeignKey("disputes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="争议ID"
    )
    author_id = Column(String(64), nullable=False, comment="作者ID")
    author_role = Column(String(16), nullable=False, comment="作者角色")
    content = Column(Text, nullable=False, comment="内容")
    created_at = Column(DateTime(timezone=True), nullable=False, comment="创建时间")
