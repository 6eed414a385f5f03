"""
结算业务策略参数（时间窗口、提现上下限、原因长度等）。

领域层不依赖 core.config；应用层从 Settings 构造本对象并注入领域服务。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal


DEFAULT_BANKS = (
    "Bank of Ceylon",
    "People's Bank",
    "Commercial Bank of Ceylon",
    "Hatton National Bank",
    "Sampath Bank",
    "Seylan Bank",
    "National Development Bank",
    "DFCC Bank",
    "Nations Trust Bank",
    "Pan Asia Bank",
    "Union Bank of Colombo",
    "Amana Bank",
    "Cargills Bank",
    "HSBC Sri Lanka",
    "Standard Chartered Sri Lanka",
)


@dataclass(frozen=True)
class SettlementPolicy:
    cancel_window: timedelta = timedelta(hours=24)
    return_window: timedelta = timedelta(hours=24)
    dispute_window: timedelta = timedelta(days=7)

    payout_min: Decimal = Decimal("1000.00")
    payout_max: Decimal = Decimal("1000000.00")
    banks: tuple[str, ...] = field(default=DEFAULT_BANKS)

    override_reason_min_length: int = 10
    payout_fail_reason_min_length: int = 10
    transaction_ref_min_length: int = 5
    resolution_notes_min_length: int = 10

    dispute_description_min_length: int = 20
    dispute_description_max_length: int = 1000
    dispute_max_evidence: int = 5
    comment_max_length: int = 1000
