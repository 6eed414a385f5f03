"""佣金计算（纯函数，无状态）"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from domain.common.exceptions import DomainValidationException
from domain.common.money import CENT, MoneyLike, to_money

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CommissionBreakdown:
    item_total: Decimal
    rate: Decimal
    commission: Decimal
    vendor_net: Decimal


def normalize_rate(rate: MoneyLike) -> Decimal:
    value = rate if isinstance(rate, Decimal) else Decimal(str(rate))
    if not value.is_finite() or value < 0 or value > HUNDRED:
        raise DomainValidationException(
            f"Commission rate must be between 0 and 100: {rate}",
            field="commission_rate",
        )
    return value


def commission_on(amount: Decimal, rate: MoneyLike) -> Decimal:
    return (amount * normalize_rate(rate) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_commission(item_total: MoneyLike, rate: MoneyLike) -> CommissionBreakdown:
    """
    计算平台佣金与商家净额

    commission 四舍五入到分，vendor_net 取差额，保证 commission + vendor_net == item_total。
    """
    total = to_money(item_total, field="item_total")
    if total < 0:
        raise DomainValidationException(f"Item total must not be negative: {total}", field="item_total")
    pct = normalize_rate(rate)
    commission = commission_on(total, pct)
    return CommissionBreakdown(
        item_total=total,
        rate=pct,
        commission=commission,
        vendor_net=total - commission,
    )
