"""
钱包与流水数据库模型
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    Index, ForeignKey, CheckConstraint, text,
)

from .base import Base, Money, Rate


class WalletModel(Base):
    """商家钱包，余额为流水的缓存投影"""
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    vendor_id = Column(String(64), unique=True, nullable=False, comment="商家ID（一个商家一个钱包）")
    commission_rate = Column(Rate, nullable=False, comment="佣金费率（百分比）")

    pending_balance = Column(Money, nullable=False, default=0, comment="待结算余额")
    available_balance = Column(Money, nullable=False, default=0, comment="可提现余额")
    total_earnings = Column(Money, nullable=False, default=0, comment="累计收益")
    total_withdrawn = Column(Money, nullable=False, default=0, comment="累计提现")

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
        CheckConstraint("pending_balance >= 0", name="ck_wallets_pending_non_negative"),
        CheckConstraint("available_balance >= 0", name="ck_wallets_available_non_negative"),
        {"comment": "商家钱包表"},
    )

    def __repr__(self):
        return (
            f"<WalletModel(id={self.id}, vendor_id='{self.vendor_id}', "
            f"pending={self.pending_balance}, available={self.available_balance})>"
        )


class WalletTransactionModel(Base):
    """钱包流水，创建后不更新、不删除"""
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID（即写入顺序）")
    wallet_id = Column(
        Integer,
        ForeignKey("wallets.id", ondelete="RESTRICT"),
        nullable=False,
        comment="钱包ID"
    )
    type = Column(String(16), nullable=False, comment="HOLD/COMMISSION/RELEASE/REFUND/PAYOUT/CREDIT/DEBIT")
    amount = Column(Money, nullable=False, comment="带符号主金额")
    gross_amount = Column(Money, nullable=True, comment="RELEASE 从待结算扣除的毛额")
    net_amount = Column(Money, nullable=True, comment="REFUND 从可用余额冲销的净额")
    bucket = Column(String(16), nullable=True, comment="REFUND 冲销的余额桶")

    pending_before = Column(Money, nullable=False, comment="记账前待结算余额")
    pending_after = Column(Money, nullable=False, comment="记账后待结算余额")
    available_before = Column(Money, nullable=False, comment="记账前可用余额")
    available_after = Column(Money, nullable=False, comment="记账后可用余额")

    description = Column(Text, nullable=True, comment="说明")
    reference_type = Column(String(16), nullable=True, comment="ORDER/DISPUTE/PAYOUT/ADJUSTMENT")
    reference_id = Column(Integer, nullable=True, comment="业务对象ID")
    order_item_id = Column(Integer, nullable=True, comment="订单项ID")
    created_at = Column(DateTime(timezone=True), nullable=False, comment="记账时间")

    __table_args__ = (
        Index("ix_wallet_transactions_wallet_id", "wallet_id", "id"),
        Index("ix_wallet_transactions_reference", "wallet_id", "reference_type", "reference_id"),
        Index("ix_wallet_transactions_wallet_created", "wallet_id", "created_at"),
    )
