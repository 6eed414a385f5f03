"""
提现申请数据库模型
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    Index, ForeignKey, text,
)

from .base import Base, Money


class PayoutRequestModel(Base):
    """提现申请"""
    __tablename__ = "payout_requests"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    wallet_id = Column(
        Integer,
        ForeignKey("wallets.id", ondelete="RESTRICT"),
        nullable=False,
        comment="钱包ID"
    )
    vendor_id = Column(String(64), nullable=False, index=True, comment="商家ID")
    amount = Column(Money, nullable=False, comment="提现金额")

    # 收款银行信息
    bank_name = Column(String(100), nullable=False, comment="银行名称")
    account_number = Column(String(20), nullable=False, comment="银行账号")
    account_holder = Column(String(100), nullable=False, comment="户名")
    branch_code = Column(String(3), nullable=True, comment="支行代码")

    status = Column(
        String(16),
        nullable=False,
        default="PENDING",
        index=True,
        comment="PENDING/PROCESSING/COMPLETED/FAILED"
    )
    notes = Column(Text, nullable=True, comment="商家备注")
    admin_notes = Column(Text, nullable=True, comment="管理员备注")
    transaction_ref = Column(String(128), nullable=True, comment="银行转账流水号")
    failure_reason = Column(Text, nullable=True, comment="失败原因")
    processed_by = Column(String(64), nullable=True, comment="处理人")
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="处理时间")
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="完成时间")

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
        Index("ix_payout_requests_wallet_status", "wallet_id", "status"),
        {"comment": "提现申请表"},
    )

    def __repr__(self):
        return f"<PayoutRequestModel(id={self.id}, vendor_id='{self.vendor_id}', amount={self.amount}, status='{self.status}')>"
