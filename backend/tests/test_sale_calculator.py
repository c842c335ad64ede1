"""
Sale Calculator tests.

Verifies:
- litres = entered - comparison, sale value = litres x price, half-up to the cent
- meter must advance; a positive price must be in effect
- comparison value resolution: last reading -> nozzle initial value -> 0
- readings are persisted only when the calculation succeeds
"""

from datetime import date
from decimal import Decimal

import pytest

from fuelsync.domain.sales import calculate_sale
from fuelsync.errors import InvalidReading, MissingPrice, NotFound
from fuelsync.extensions import db
from fuelsync.models import AuditEvent, NozzleReading
from fuelsync.services import reading_service, station_service

BUSINESS_DAY = date(2026, 3, 1)


# =============================================================================
# PURE CALCULATION
# =============================================================================


class TestCalculateSale:

    def test_litres_and_value(self):
        sale = calculate_sale(
            nozzle_id=1,
            fuel_type="petrol",
            entered_value=Decimal("150.000"),
            comparison_value=Decimal("100.000"),
            price_cents=9550,
        )
        assert sale.litres_sold == Decimal("50.000")
        assert sale.sale_value_cents == 477500

    def test_value_rounds_half_up(self):
        sale = calculate_sale(
            nozzle_id=1,
            fuel_type="diesel",
            entered_value=Decimal("0.010"),
            comparison_value=Decimal("0.000"),
            price_cents=50,
        )
        # 0.010 L x 50 = 0.5 cents
        assert sale.sale_value_cents == 1

    def test_fractional_litres(self):
        sale = calculate_sale(
            nozzle_id=1,
            fuel_type="petrol",
            entered_value=Decimal("1010.005"),
            comparison_value=Decimal("1000.000"),
            price_cents=9999,
        )
        assert sale.litres_sold == Decimal("10.005")
        assert sale.sale_value_cents == 100040

    @pytest.mark.parametrize("entered", ["100.000", "99.999"])
    def test_meter_must_advance(self, entered):
        with pytest.raises(InvalidReading) as excinfo:
            calculate_sale(
                nozzle_id=7,
                fuel_type="petrol",
                entered_value=Decimal(entered),
                comparison_value=Decimal("100.000"),
                price_cents=9550,
            )
        assert excinfo.value.context["nozzle_id"] == 7

    @pytest.mark.parametrize("price", [None, 0, -5])
    def test_price_required(self, price):
        with pytest.raises(MissingPrice):
            calculate_sale(
                nozzle_id=1,
                fuel_type="cng",
                entered_value=Decimal("10.000"),
                comparison_value=Decimal("0.000"),
                price_cents=price,
            )

    def test_invalid_reading_reported_before_missing_price(self):
        with pytest.raises(InvalidReading):
            calculate_sale(
                nozzle_id=1,
                fuel_type="petrol",
                entered_value=Decimal("5.000"),
                comparison_value=Decimal("5.000"),
                price_cents=None,
            )


# =============================================================================
# READING INTAKE
# =============================================================================


class TestRecordReading:

    def test_first_reading_compares_with_initial_value(self, nozzle, petrol_price, employee):
        reading = reading_service.record_reading(
            nozzle_id=nozzle.id,
            reading_value=Decimal("150.000"),
            reading_date=BUSINESS_DAY,
            entered_by_user_id=employee.id,
        )
        assert reading.comparison_value == Decimal("100.000")
        assert reading.litres_sold == Decimal("50.000")
        assert reading.price_cents == 9550
        assert reading.sale_value_cents == 477500
        assert reading.transaction_id is None

    def test_next_reading_compares_with_previous(self, nozzle, petrol_price):
        reading_service.record_reading(
            nozzle_id=nozzle.id, reading_value=Decimal("150.000"), reading_date=BUSINESS_DAY
        )
        second = reading_service.record_reading(
            nozzle_id=nozzle.id, reading_value=Decimal("162.500"), reading_date=BUSINESS_DAY
        )
        assert second.comparison_value == Decimal("150.000")
        assert second.litres_sold == Decimal("12.500")
        assert second.sale_value_cents == 119375

    def test_nozzle_without_initial_value_starts_at_zero(self, station, petrol_price):
        fresh = station_service.create_nozzle(station.id, "P2-N1", "petrol")
        reading = reading_service.record_reading(
            nozzle_id=fresh.id, reading_value=Decimal("2.000"), reading_date=BUSINESS_DAY
        )
        assert reading.comparison_value == Decimal("0.000")
        assert reading.sale_value_cents == 19100

    def test_rejected_reading_is_not_stored(self, nozzle, petrol_price):
        with pytest.raises(InvalidReading):
            reading_service.record_reading(
                nozzle_id=nozzle.id, reading_value=Decimal("99.000"), reading_date=BUSINESS_DAY
            )
        assert db.session.query(NozzleReading).count() == 0
        assert db.session.query(AuditEvent).count() == 0

    def test_missing_price_for_fuel_type(self, station):
        diesel = station_service.create_nozzle(station.id, "D1-N1", "diesel", Decimal("0"))
        with pytest.raises(MissingPrice):
            reading_service.record_reading(
                nozzle_id=diesel.id, reading_value=Decimal("10.000"), reading_date=BUSINESS_DAY
            )

    def test_price_in_effect_on_reading_date(self, station, nozzle, petrol_price):
        station_service.set_fuel_price(station.id, "petrol", 9700, date(2026, 3, 2))

        old = reading_service.record_reading(
            nozzle_id=nozzle.id, reading_value=Decimal("110.000"), reading_date=BUSINESS_DAY
        )
        new = reading_service.record_reading(
            nozzle_id=nozzle.id, reading_value=Decimal("120.000"), reading_date=date(2026, 3, 2)
        )
        assert old.price_cents == 9550
        assert new.price_cents == 9700

    def test_preview_does_not_persist(self, nozzle, petrol_price):
        sale = reading_service.preview_sale(nozzle.id, Decimal("150.000"), BUSINESS_DAY)
        assert sale.sale_value_cents == 477500
        assert db.session.query(NozzleReading).count() == 0

    def test_unknown_nozzle(self, db_session):
        with pytest.raises(NotFound):
            reading_service.record_reading(
                nozzle_id=999999, reading_value=Decimal("1.000"), reading_date=BUSINESS_DAY
            )

    def test_reading_is_audited(self, nozzle, petrol_price, employee):
        reading = reading_service.record_reading(
            nozzle_id=nozzle.id,
            reading_value=Decimal("150.000"),
            reading_date=BUSINESS_DAY,
            entered_by_user_id=employee.id,
        )
        event = db.session.query(AuditEvent).filter_by(entity_id=reading.id).one()
        assert event.event_type == "reading.recorded"
        assert event.actor_user_id == employee.id
