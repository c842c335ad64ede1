"""
Money and meter-quantity helpers.

Money lives as integer minor units (cents / paise) everywhere past intake, so
"exact to the cent" is plain integer equality and tolerances are integer
distances. Meter values and litres are Decimal with 3 fractional digits.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
LITRE_QUANTUM = Decimal("0.001")


def _as_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, int):
        dec = Decimal(value)
    elif isinstance(value, float):
        # repr() round-trips the literal the client sent (95.5 -> "95.5")
        dec = Decimal(repr(value))
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            raise ValueError("empty value")
        try:
            dec = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"{value!r} is not a number")
    if not dec.is_finite():
        raise ValueError(f"{value!r} is not a finite number")
    return dec


def to_cents(value) -> int:
    """
    Convert a decimal currency amount ("4775.00", 95.5, 1000) to minor units.

    Amounts with more than two fractional digits are rejected rather than
    rounded: a discrete debt must be stated to the cent.
    """
    dec = _as_decimal(value)
    if dec != dec.quantize(CENT):
        raise ValueError(f"{value!r} has more than 2 decimal places")
    return int((dec * 100).to_integral_value())


def round_half_up_cents(amount_in_cents: Decimal) -> int:
    """Round a fractional cent amount to whole cents, halves away from zero."""
    return int(amount_in_cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_quantity(value) -> Decimal:
    """Cumulative meter value / litres, up to 3 fractional digits."""
    dec = _as_decimal(value)
    if dec != dec.quantize(LITRE_QUANTUM):
        raise ValueError(f"{value!r} has more than 3 decimal places")
    return dec.quantize(LITRE_QUANTUM)


def cents_to_decimal(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(CENT)


def format_money(cents: int | None) -> str:
    """477500 -> '4775.00'; negative amounts keep their sign."""
    if cents is None:
        return "0.00"
    return f"{cents_to_decimal(cents):.2f}"
