"""
Money arithmetic for two-decimal ledger amounts.

Responsibility:
    Parsing and quantizing amounts supplied by source adapters, and splitting
    an amount across several accounts without losing or inventing a paisa.

Invariants enforced:
    - Every amount that reaches a journal line has exactly two decimal places,
      rounded half-even.
    - ``allocate`` parts always sum to the input amount exactly.  Remainder
      units go to the parts with the largest fractional remainders; ties go
      to the earlier part, so the result is deterministic.

Failure modes:
    - ValueError for non-numeric or non-finite input, an amount too large
      to hold at two places, a negative amount passed to
      ``allocate``, or weights that are empty, negative or all zero.
"""

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Sequence

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """Convert int/str/Decimal to a finite Decimal.  Floats are rejected."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Amounts must be Decimal, int or str, got {value!r}")
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not d.is_finite():
        raise ValueError(f"Amounts must be finite, got {value!r}")
    return d


def quantize_amount(value) -> Decimal:
    """Round to two decimal places using banker's rounding."""
    d = to_decimal(value)
    try:
        return d.quantize(CENT, rounding=ROUND_HALF_EVEN)
    except InvalidOperation as exc:
        # More digits than the decimal context can hold at two places.
        raise ValueError(f"Amount out of range: {value!r}") from exc


def allocate(amount, weights: Sequence) -> list[Decimal]:
    """
    Split ``amount`` into parts proportional to ``weights``.

    Uses the largest-remainder method on whole cents:

        >>> allocate(Decimal("100.01"), [1, 1])
        [Decimal('50.01'), Decimal('50.00')]
        >>> allocate(Decimal("10.00"), [1, 1, 1])
        [Decimal('3.34'), Decimal('3.33'), Decimal('3.33')]
    """
    total = quantize_amount(amount)
    if total < 0:
        raise ValueError(f"Cannot allocate a negative amount: {total}")
    if not weights:
        raise ValueError("allocate() requires at least one weight")

    ws = [to_decimal(w) for w in weights]
    if any(w < 0 for w in ws):
        raise ValueError(f"Weights must be non-negative: {weights!r}")
    weight_sum = sum(ws, Decimal("0"))
    if weight_sum == 0:
        raise ValueError("Weights must not all be zero")

    cents = int(total / CENT)
    exact = [Decimal(cents) * w / weight_sum for w in ws]
    floors = [int(e.to_integral_value(rounding=ROUND_DOWN)) for e in exact]

    leftover = cents - sum(floors)
    # Stable sort: equal remainders keep their original order.
    order = sorted(range(len(ws)), key=lambda i: exact[i] - floors[i], reverse=True)
    for i in order[:leftover]:
        floors[i] += 1

    return [(Decimal(c) * CENT).quantize(CENT) for c in floors]
