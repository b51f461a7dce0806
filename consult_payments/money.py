"""
Amount conversion between the processor (minor units, e.g. cents) and the
rest of the service (major units as two-place Decimals).

Each boundary crossing converts exactly once; nothing else in the package
multiplies or divides by 100.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union

from consult_payments.config import TAX_RATE

CENTS = Decimal("0.01")


def to_minor_units(amount: Union[Decimal, int, str]) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(amount_minor: int) -> Decimal:
    return (Decimal(int(amount_minor)) / 100).quantize(CENTS)


def compute_tax(base: Decimal) -> Tuple[Decimal, Decimal]:
    """Return ``(tax, total)`` for a base amount, rounded half-up to cents."""
    base = Decimal(str(base)).quantize(CENTS, rounding=ROUND_HALF_UP)
    tax = (base * TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    return tax, base + tax
