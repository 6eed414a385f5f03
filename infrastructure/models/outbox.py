"""
Outbox 事件表：与业务变更同事务写入，提交后投递
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index, text

from .base import Base


class OutboxEventModel(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID（即发生顺序）")
    event_id = Column(String(36), unique=True, nullable=False, comment="事件UUID")
    event_type = Column(String(64), nullable=False, comment="事件类型")
    aggregate_type = Column(String(32), nullable=False, comment="聚合类型")
    aggregate_id = Column(String(64), nullable=False, comment="聚合ID")
    payload = Column(JSON, nullable=False, comment="事件内容")
    status = Column(
        String(16),
        nullable=False,
        default="PENDING",
        server_default=text("'PENDING'"),
        comment="PENDING/DISPATCHED/FAILED"
    )
    attempts = Column(Integer, nullable=False, default=0, server_default=text("0"), comment="投递次数")
    last_error = Column(Text, nullable=True, comment="最近一次投递错误")
    occurred_at = Column(DateTime(timezone=True), nullable=False, comment="事件发生时间")
    dispatched_at = Column(DateTime(timezone=True), nullable=True, comment="投递成功时间")

    __table_args__ = (
        Index("ix_outbox_events_status_id", "status", "id"),
    )
