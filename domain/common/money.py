"""金额工具：统一使用 Decimal 两位小数，四舍五入（ROUND_HALF_UP）。"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from domain.common.exceptions import DomainValidationException

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, str]


def to_money(value: MoneyLike, *, field: str = "amount") -> Decimal:
    """把输入转换为两位小数的 Decimal；拒绝 float 以避免分位漂移"""
    if isinstance(value, float):
        raise DomainValidationException(
            "Monetary values must not be floats",
            field=field,
        )
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise DomainValidationException(f"Invalid amount: {value}", field=field)
    if not amount.is_finite():
        raise DomainValidationException(f"Invalid amount: {value}", field=field)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def ensure_cents(value: Decimal, *, field: str = "amount") -> Decimal:
    """校验金额最多两位小数（不做舍入），用于外部输入"""
    if value != value.quantize(CENT, rounding=ROUND_HALF_UP):
        raise DomainValidationException(
            f"Amount {value} has more than two decimal places",
            field=field,
        )
    return to_money(value, field=field)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
