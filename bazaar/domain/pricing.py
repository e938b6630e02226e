"""
Domain Layer: Pricing Policy
Rounding and payout rules shared by the purchase and sell flows.
"""
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Tuple

from .models import ZERO

MINIMUM_PAYOUT = Decimal("1")


def round_up(amount: Decimal) -> Decimal:
    """Money owed is always rounded up to a whole unit"""
    return amount.to_integral_value(rounding=ROUND_CEILING)


def coerce_quantity(raw: Any) -> int:
    """
    Lenient quantity parsing: anything that is not a number >= 1 becomes 1,
    fractional quantities are floored.
    """
    if isinstance(raw, bool):
        return 1
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        return 1
    if not value.is_finite() or value < 1:
        return 1
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def clamp_percentage(raw: Any, default: int = 0) -> int:
    try:
        value = int(raw)
    except (ValueError, TypeError):
        return default
    return max(0, min(100, value))


class PriceCalculator:
    """Sums request lines and applies the single final rounding step"""

    @staticmethod
    def line_total(price: Decimal, quantity: int) -> Decimal:
        return price * quantity

    def subtotal(self, lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
        return sum((self.line_total(price, qty) for price, qty in lines), ZERO)

    def purchase_cost(self, lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
        """
        Cost = ceil(sum(price * quantity)).
        Lines are summed unrounded and rounded once, never per line.
        """
        return round_up(self.subtotal(lines))


class SellPayoutPolicy:
    """
    Decides what a seller receives.

    Abstract wallets are paid the exact percentage. Physical coins are paid in
    whole units, rounded up, and sales worth less than one unit are refused.
    """

    def __init__(self, physical_coins: bool, minimum_payout: Decimal = MINIMUM_PAYOUT):
        self.physical_coins = physical_coins
        self.minimum_payout = minimum_payout

    @staticmethod
    def raw_payout(value: Decimal, percentage: int) -> Decimal:
        return value * Decimal(percentage) / Decimal(100)

    def finalize(self, value: Decimal, percentage: int) -> Optional[Decimal]:
        """Returns the payout to credit, or None when the sale must be refused"""
        payout = self.raw_payout(value, percentage)
        if not self.physical_coins:
            return payout
        if payout < self.minimum_payout:
            return None
        return round_up(payout)
