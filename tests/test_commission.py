from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.common.money import ensure_cents, to_money
from domain.wallet.commission import compute_commission


@pytest.mark.parametrize(
    "total, rate, commission, net",
    [
        ("1000.00", "10", "100.00", "900.00"),
        ("500.00", "20", "100.00", "400.00"),
        ("333.33", "15", "50.00", "283.33"),
        ("0.05", "10", "0.01", "0.04"),
        ("250.00", "0", "0.00", "250.00"),
        ("250.00", "100", "250.00", "0.00"),
    ],
)
def test_compute_commission(total, rate, commission, net):
    result = compute_commission(Decimal(total), Decimal(rate))
    assert result.commission == Decimal(commission)
    assert result.vendor_net == Decimal(net)
    assert result.commission + result.vendor_net == result.item_total


@pytest.mark.parametrize("rate", ["-0.01", "100.01"])
def test_rate_out_of_range_rejected(rate):
    with pytest.raises(DomainValidationException):
        compute_commission(Decimal("100.00"), Decimal(rate))


def test_negative_item_total_rejected():
    with pytest.raises(DomainValidationException):
        compute_commission(Decimal("-1.00"), Decimal("10"))


def test_float_money_rejected():
    with pytest.raises(DomainValidationException):
        to_money(10.5)


def test_ensure_cents_rejects_sub_cent_amounts():
    assert ensure_cents(Decimal("1500.5")) == Decimal("1500.50")
    with pytest.raises(DomainValidationException):
        ensure_cents(Decimal("1500.555"))
