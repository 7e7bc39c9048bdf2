from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from fournil.app.core.config import settings

QUANTUM = Decimal("0.001")
ZERO = Decimal("0.000")


def to_quantity(value) -> Decimal:
    """Normalise en Decimal à 3 décimales (float, int, str ou Decimal)."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def quantities_equal(a: Decimal, b: Decimal) -> bool:
    return abs(to_quantity(a) - to_quantity(b)) <= settings.quantity_epsilon
