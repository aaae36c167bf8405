from __future__ import annotations
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union

from .errors import ConfigurationInvalid
from .models import CENT


log = logging.getLogger(__name__)

DEFAULT_MAX_COMPONENT_PRICE = Decimal("2499")

Number = Union[Decimal, int, float, str]


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PriceSplit:
    prices: List[Decimal]
    ceiling: Decimal
    even: bool

    @property
    def total(self) -> Decimal:
        return sum(self.prices, Decimal("0"))

    @property
    def ceiling_violated(self) -> bool:
        return any(p > self.ceiling for p in self.prices)

    def as_strings(self) -> List[str]:
        return [str(p) for p in self.prices]


class PriceAllocator:
    """Splits a set price across its pieces under a per-piece ceiling.

    When the even share fits under the ceiling every piece gets it. Otherwise
    the first n-1 pieces take ``min(ceiling, remaining - pieces_after)`` and the
    last piece absorbs whatever is left, clamped at zero. The last piece can
    therefore exceed the ceiling; no redistribution is attempted.
    """

    def __init__(self, ceiling: Number = DEFAULT_MAX_COMPONENT_PRICE):
        self.ceiling = Decimal(str(ceiling))

    def split(self, total: Number, piece_count: int) -> PriceSplit:
        if piece_count < 1:
            raise ConfigurationInvalid(f"piece count must be positive, got {piece_count}")
        price = Decimal(str(total))
        even = price / piece_count

        if even <= self.ceiling:
            return PriceSplit([_round(even)] * piece_count, self.ceiling, even=True)

        prices: List[Decimal] = []
        remaining = price
        for i in range(piece_count - 1):
            pieces_after = piece_count - i - 1
            share = _round(min(self.ceiling, remaining - pieces_after))
            prices.append(share)
            remaining -= share
        prices.append(_round(max(Decimal("0"), remaining)))

        result = PriceSplit(prices, self.ceiling, even=False)
        if result.ceiling_violated:
            log.warning(f"Last piece exceeds ceiling {self.ceiling}: {result.as_strings()}")
        return result

    def __call__(self, total: Number, piece_count: int) -> List[Decimal]:
        return self.split(total, piece_count).prices
