"""
Sale Calculator.

Pure function from one nozzle reading to litres sold and sale value. The
caller resolves the comparison value (last reading -> nozzle initial value
-> 0) and the price in effect; nothing is looked up here.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from fuelsync.domain.money import LITRE_QUANTUM, round_half_up_cents
from fuelsync.errors import InvalidReading, MissingPrice


@dataclass(frozen=True)
class SaleComputation:
    nozzle_id: int
    fuel_type: str
    entered_value: Decimal
    comparison_value: Decimal
    litres_sold: Decimal
    price_cents: int
    sale_value_cents: int

    def to_dict(self) -> dict:
        return {
            "nozzle_id": self.nozzle_id,
            "fuel_type": self.fuel_type,
            "entered_value": str(self.entered_value),
            "comparison_value": str(self.comparison_value),
            "litres_sold": str(self.litres_sold),
            "price_cents": self.price_cents,
            "sale_value_cents": self.sale_value_cents,
        }


def litres_between(entered_value: Decimal, comparison_value: Decimal) -> Decimal:
    return (Decimal(entered_value) - Decimal(comparison_value)).quantize(LITRE_QUANTUM)


def calculate_sale(
    *,
    nozzle_id: int,
    fuel_type: str,
    entered_value: Decimal,
    comparison_value: Decimal,
    price_cents: int | None,
) -> SaleComputation:
    """
    Derive litres and sale value for a single reading.

    Raises:
        InvalidReading: the meter did not advance (entered <= comparison)
        MissingPrice: no positive price is in effect for the fuel type
    """
    litres = litres_between(entered_value, comparison_value)
    if litres <= 0:
        raise InvalidReading(
            f"Reading {entered_value} does not advance nozzle {nozzle_id} past {comparison_value}",
            nozzle_id=nozzle_id,
            entered_value=str(entered_value),
            comparison_value=str(comparison_value),
        )

    if price_cents is None or price_cents <= 0:
        raise MissingPrice(
            f"No fuel price in effect for {fuel_type}",
            nozzle_id=nozzle_id,
            fuel_type=fuel_type,
        )

    # litres (3dp) x price in cents-per-litre -> fractional cents, half-up
    sale_value_cents = round_half_up_cents(litres * Decimal(price_cents))

    return SaleComputation(
        nozzle_id=nozzle_id,
        fuel_type=fuel_type,
        entered_value=Decimal(entered_value),
        comparison_value=Decimal(comparison_value),
        litres_sold=litres,
        price_cents=price_cents,
        sale_value_cents=sale_value_cents,
    )
