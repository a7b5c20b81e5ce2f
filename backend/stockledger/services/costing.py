# Overview: Moving average cost recomputation.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..validation import QUANTUM


def moving_average_cost(
    *,
    old_avg: Decimal,
    old_stock: Decimal,
    unit_cost: Decimal,
    quantity: Decimal,
) -> Decimal:
    """
    new_avg = (old_avg * old_stock + unit_cost * quantity) / (old_stock + quantity)

    A negative old_stock (oversold row) carries no valuation weight.
    When the weighted total is not positive the incoming unit_cost is used
    as-is. Result is rounded half-up to 4 decimal places.
    """
    weight = old_stock if old_stock > 0 else Decimal(0)
    total_units = weight + quantity
    if total_units <= 0:
        return unit_cost.quantize(QUANTUM, rounding=ROUND_HALF_UP)

    total_value = (old_avg * weight) + (unit_cost * quantity)
    return (total_value / total_units).quantize(QUANTUM, rounding=ROUND_HALF_UP)


def extended_cost(quantity: Decimal, unit_cost: Decimal | None) -> Decimal | None:
    """quantity * unit_cost, or None when the entry carries no valuation."""
    if unit_cost is None:
        return None
    return (quantity * unit_cost).quantize(QUANTUM, rounding=ROUND_HALF_UP)
