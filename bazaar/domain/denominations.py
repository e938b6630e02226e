"""
Domain Layer: Denomination Model
Stateless conversions between nominal values and coin counts.
"""
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

from .models import (
    CoinBag,
    Denomination,
    InvalidQuantityError,
    InvalidTotalError,
    MissingDenominationsError,
    ZERO,
)

DEFAULT_DENOMINATIONS = (
    Denomination("Gold Coin", Decimal("80"), Decimal("0.004")),
    Denomination("Silver Coin", Decimal("4"), Decimal("0.004")),
    Denomination("Copper Farthing", Decimal("1"), Decimal("0.008")),
    Denomination("Dime", Decimal("0.1"), Decimal("0.008")),
)

# Multiplier used when the wallet is abstract rather than physical coins
MODULE_SCALE = 100


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _require(denominations: Optional[Sequence[Denomination]]) -> Sequence[Denomination]:
    if not denominations:
        raise MissingDenominationsError("Denominations are required")
    return denominations


def decimal_places(value: Decimal) -> int:
    exponent = value.normalize().as_tuple().exponent
    if not isinstance(exponent, int) or exponent >= 0:
        return 0
    return -exponent


def base_unit_multiplier(denominations: Optional[Sequence[Denomination]]) -> int:
    """
    Smallest power of ten that turns every denomination value into an integer.
    An empty set yields 1.
    """
    if not denominations:
        return 1
    return 10 ** max(decimal_places(d.value) for d in denominations)


def scale_denominations(denominations: Sequence[Denomination], multiplier: int) -> List[Denomination]:
    """Denominations expressed in scaled-integer coordinates, highest value first"""
    scaled = [
        Denomination(d.name, (d.value * multiplier).to_integral_value(), d.weight)
        for d in denominations
    ]
    return sorted(scaled, key=lambda d: d.value, reverse=True)


def value_from_coins(coins: Mapping[str, int], denominations: Optional[Sequence[Denomination]]) -> Decimal:
    """
    Total value of a coin bag. Names without a matching denomination count as nothing.
    """
    denoms = {d.name: d for d in _require(denominations)}
    total = ZERO
    for name, count in coins.items():
        if not _is_non_negative_int(count):
            raise InvalidQuantityError(f"Invalid quantity for {name}: {count!r}")
        denomination = denoms.get(name)
        if denomination is not None:
            total += count * denomination.value
    return total


def make_change(total: int, denominations: Optional[Sequence[Denomination]]) -> CoinBag:
    """
    Greedy change-making: highest value first, floor division, carry the remainder.

    Only minimal in coin count for canonical denomination sets (every default set is
    canonical). For arbitrary sets the bag is always exact, not necessarily smallest.
    """
    if not _is_non_negative_int(total):
        raise InvalidTotalError(f"Invalid total: {total!r}")
    ordered = sorted(_require(denominations), key=lambda d: d.value, reverse=True)

    bag: CoinBag = {}
    remaining = Decimal(total)
    for denomination in ordered:
        if denomination.value <= 0:
            bag[denomination.name] = 0
            continue
        count = int(remaining // denomination.value)
        bag[denomination.name] = count
        remaining = remaining % denomination.value
    return bag


def normalize_coins(coins: Mapping[str, int], denominations: Sequence[Denomination]) -> CoinBag:
    """Re-expresses an integer-valued coin bag with the greedy distribution"""
    value = value_from_coins(coins, denominations)
    return make_change(int(value), denominations)
