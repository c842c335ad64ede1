# Overview: Nozzle reading intake; resolves comparison value and price, then runs the Sale Calculator.

from __future__ import annotations

import logging
from datetime import date, time
from decimal import Decimal

from ..domain.money import LITRE_QUANTUM
from ..domain.sales import SaleComputation, calculate_sale
from ..extensions import db
from ..models import Nozzle, NozzleReading
from ..time_utils import utcnow
from ..validation import ValidationError
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .station_service import get_nozzle, get_price_for_date

logger = logging.getLogger(__name__)


def latest_reading(nozzle_id: int) -> NozzleReading | None:
    return (
        db.session.query(NozzleReading)
        .filter(NozzleReading.nozzle_id == nozzle_id)
        .order_by(NozzleReading.id.desc())
        .first()
    )


def resolve_comparison_value(nozzle: Nozzle) -> Decimal:
    """Last reading's value, else the nozzle's initial value, else 0."""
    last = latest_reading(nozzle.id)
    if last is not None:
        return Decimal(last.entered_value).quantize(LITRE_QUANTUM)
    if nozzle.initial_reading is not None:
        return Decimal(nozzle.initial_reading).quantize(LITRE_QUANTUM)
    return Decimal("0.000")


def _calculate(nozzle: Nozzle, reading_value: Decimal, reading_date: date) -> SaleComputation:
    if not nozzle.is_active:
        raise ValidationError("Nozzle is inactive", nozzle_id=nozzle.id)
    return calculate_sale(
        nozzle_id=nozzle.id,
        fuel_type=nozzle.fuel_type,
        entered_value=reading_value,
        comparison_value=resolve_comparison_value(nozzle),
        price_cents=get_price_for_date(nozzle.station_id, nozzle.fuel_type, reading_date),
    )


def preview_sale(nozzle_id: int, reading_value: Decimal, reading_date: date) -> SaleComputation:
    """Same resolution and calculation as record_reading, nothing persisted."""
    return _calculate(get_nozzle(nozzle_id), reading_value, reading_date)


def record_reading(
    *,
    nozzle_id: int,
    reading_value: Decimal,
    reading_date: date,
    reading_time: time | None = None,
    entered_by_user_id: int | None = None,
) -> NozzleReading:
    """
    Persist an immutable reading once the Sale Calculator accepts it.

    The nozzle row is locked and its version bumped, so two concurrent
    readings cannot both compare against the same previous value.

    Raises:
        NotFound, InvalidReading, MissingPrice, ValidationError,
        ConcurrencyConflict
    """
    def _op() -> NozzleReading:
        nozzle = lock_for_update(db.session.query(Nozzle).filter(Nozzle.id == nozzle_id)).first()
        if nozzle is None:
            get_nozzle(nozzle_id)  # raises NotFound

        sale = _calculate(nozzle, reading_value, reading_date)

        reading = NozzleReading(
            station_id=nozzle.station_id,
            nozzle_id=nozzle.id,
            fuel_type=nozzle.fuel_type,
            entered_value=sale.entered_value,
            comparison_value=sale.comparison_value,
            litres_sold=sale.litres_sold,
            price_cents=sale.price_cents,
            sale_value_cents=sale.sale_value_cents,
            reading_date=reading_date,
            reading_time=reading_time,
            entered_by_user_id=entered_by_user_id,
        )
        db.session.add(reading)
        nozzle.last_reading_at = utcnow()
        db.session.flush()

        append_audit_event(
            station_id=nozzle.station_id,
            event_type="reading.recorded",
            event_category="reading",
            entity_type="nozzle_reading",
            entity_id=reading.id,
            actor_user_id=entered_by_user_id,
            note=f"Nozzle {nozzle.label}: {sale.litres_sold} L",
            payload=sale.to_dict(),
        )
        db.session.commit()
        return reading

    reading = run_with_retry(_op)
    logger.info(
        "Reading %s recorded on nozzle %s: %s L, %s cents",
        reading.id, reading.nozzle_id, reading.litres_sold, reading.sale_value_cents,
    )
    return reading


def list_readings(
    station_id: int,
    *,
    reading_date: date | None = None,
    unsettled_only: bool = False,
    nozzle_id: int | None = None,
    limit: int = 500,
) -> list[NozzleReading]:
    query = db.session.query(NozzleReading).filter(NozzleReading.station_id == station_id)
    if reading_date is not None:
        query = query.filter(NozzleReading.reading_date == reading_date)
    if nozzle_id is not None:
        query = query.filter(NozzleReading.nozzle_id == nozzle_id)
    if unsettled_only:
        query = query.filter(NozzleReading.transaction_id.is_(None))
    return query.order_by(NozzleReading.id.asc()).limit(limit).all()
