"""Currency rounding and percentage allocation helpers.

Every derived currency amount in the engine goes through ``round_half_up``
exactly once. Splitting an amount across several parties uses
``allocate_amounts`` so the parts always add back up to the whole.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence, Union

Number = Union[int, float, Decimal]

HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    """Convert ints, floats and Decimals without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: Number) -> int:
    """Round to the nearest whole currency unit, halves away from zero."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quantize_percentage(value: Number) -> Decimal:
    """Percentage to two decimals, halves rounded up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def settle_percentages(percentages: Sequence[Number]) -> List[Decimal]:
    """
    Move the gap between 100 and the sum onto the largest percentage.

    Used on sets already accepted within tolerance, so a stored set always
    sums to exactly 100.
    """
    pcts = [quantize_percentage(p) for p in percentages]
    if not pcts:
        return pcts
    remainder = HUNDRED - sum(pcts)
    if remainder:
        pcts[largest_index(pcts)] += remainder
    return pcts


def largest_index(percentages: Sequence[Decimal]) -> int:
    """Index of the largest percentage; ties go to the earliest entry."""
    best = 0
    for i, pct in enumerate(percentages):
        if pct > percentages[best]:
            best = i
    return best


def allocate_amounts(total: int, percentages: Sequence[Number]) -> List[int]:
    """
    Split ``total`` by percentage, rounding each part half-up.

    The difference between ``total`` and the sum of the rounded parts is
    added to the largest-percentage part, so the result always sums to
    ``total``.
    """
    if not percentages:
        return []
    pcts = [to_decimal(p) for p in percentages]
    amounts = [round_half_up(Decimal(total) * pct / HUNDRED) for pct in pcts]
    remainder = total - sum(amounts)
    if remainder:
        amounts[largest_index(pcts)] += remainder
    return amounts


def normalize_weights(weights: Sequence[Number]) -> List[Decimal]:
    """
    Turn non-negative weights into percentages with two decimals summing to 100.

    All-zero weights produce an equal split. The rounding remainder goes to
    the largest share.
    """
    if not weights:
        return []
    values = [to_decimal(w) for w in weights]
    if any(v < 0 for v in values):
        raise ValueError("Weights must be non-negative")
    total = sum(values)
    if total == 0:
        values = [Decimal(1)] * len(values)
        total = Decimal(len(values))
    return settle_percentages([v * HUNDRED / total for v in values])
