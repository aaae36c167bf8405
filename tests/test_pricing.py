from decimal import Decimal

import pytest

from set_splitter.errors import ConfigurationInvalid
from set_splitter.pricing import PriceAllocator


@pytest.mark.parametrize("n", [2, 3, 4])
@pytest.mark.parametrize("price", ["1200", "999.99", "4500", "5000", "12345.67", "1"])
def test_split_sums_to_price_within_a_cent(price, n):
    prices = PriceAllocator(Decimal("2000"))(price, n)
    assert len(prices) == n
    assert abs(sum(prices) - Decimal(price)) <= Decimal("0.01")


def test_even_share_under_ceiling():
    split = PriceAllocator(Decimal("2499")).split("1200", 2)
    assert split.as_strings() == ["600.00", "600.00"]
    assert split.even
    assert not split.ceiling_violated


def test_three_piece_at_ceiling_is_even():
    assert PriceAllocator(Decimal("1500")).split("4500", 3).as_strings() == ["1500.00", "1500.00", "1500.00"]


def test_last_piece_absorbs_remainder_over_ceiling():
    split = PriceAllocator(Decimal("2000")).split("5000", 2)
    assert split.as_strings() == ["2000.00", "3000.00"]
    assert split.total == Decimal("5000.00")
    assert not split.even
    assert split.ceiling_violated


def test_over_ceiling_fills_leading_pieces_to_ceiling():
    prices = PriceAllocator(Decimal("1000"))("3500", 3)
    assert prices[:2] == [Decimal("1000.00"), Decimal("1000.00")]
    assert prices[2] == Decimal("1500.00")


def test_uneven_share_rounds_half_up():
    assert PriceAllocator()("1000", 3) == [Decimal("333.33")] * 3


def test_zero_pieces_rejected():
    with pytest.raises(ConfigurationInvalid):
        PriceAllocator().split("100", 0)
