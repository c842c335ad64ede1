"""
Shift Ledger tests.

Verifies:
- one ACTIVE shift per employee, across stations
- expected cash = sales - online - credit; difference = actual - expected
- CLOSED and CANCELLED are terminal
- closing seeds a shift_collection handover to the station manager
- summaries and discrepancy listings
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from fuelsync.domain.shifts import ActiveShift, ClosedShift, ShiftPosting
from fuelsync.errors import NoActiveShift, ShiftAlreadyActive, ShiftNotCancellable
from fuelsync.extensions import db
from fuelsync.models import CashHandover
from fuelsync.policy import SettlementPolicy
from fuelsync.services import handover_service, shift_service, station_service
from fuelsync.validation import ValidationError

BUSINESS_DAY = date(2026, 3, 1)


def _post(employee, station, sale_cents, online_cents=0, credit_cents=0):
    shift = shift_service.post_to_active_shift(
        employee_id=employee.id,
        station_id=station.id,
        posting=ShiftPosting(
            transaction_id=None,
            readings_count=1,
            litres_sold=Decimal("10.000"),
            sale_value_cents=sale_cents,
            online_cents=online_cents,
            credit_cents=credit_cents,
        ),
    )
    db.session.commit()
    return shift


# =============================================================================
# DOMAIN VARIANTS
# =============================================================================


class TestShiftVariants:

    def _active(self):
        return ActiveShift(
            id=1,
            employee_id=5,
            station_id=2,
            shift_date=BUSINESS_DAY,
            shift_type="morning",
            started_at=datetime(2026, 3, 1, 6, 0),
        )

    def test_expected_cash_excludes_online_and_credit(self):
        shift = self._active().record(
            ShiftPosting(None, 2, Decimal("50.000"), 477500, 100000, 100000)
        )
        assert shift.expected_cash_cents == 277500

    def test_close_computes_difference(self):
        shift = self._active().record(ShiftPosting(None, 1, Decimal("50.000"), 500000, 0, 0))
        closed = shift.close(actual_cash_cents=495000, ended_at=datetime(2026, 3, 1, 14, 0))
        assert isinstance(closed, ClosedShift)
        assert closed.cash_difference_cents == -5000

    def test_closed_shift_accepts_no_postings(self):
        closed = self._active().close(actual_cash_cents=0, ended_at=datetime(2026, 3, 1, 14, 0))
        assert not hasattr(closed, "record")
        assert not hasattr(closed, "close")

    def test_unknown_shift_type(self):
        with pytest.raises(ValidationError):
            ActiveShift(
                id=None,
                employee_id=1,
                station_id=1,
                shift_date=BUSINESS_DAY,
                shift_type="graveyard",
                started_at=datetime(2026, 3, 1, 0, 0),
            )


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestStartShift:

    def test_start(self, station, employee):
        shift = shift_service.start_shift(
            employee_id=employee.id, station_id=station.id, shift_type="morning", shift_date=BUSINESS_DAY
        )
        assert shift.status == "ACTIVE"
        assert shift.expected_cash_cents == 0
        assert shift_service.get_active_shift(employee.id).id == shift.id

    def test_second_active_shift_rejected(self, station, other_station, employee):
        shift_service.start_shift(employee_id=employee.id, station_id=station.id)

        with pytest.raises(ShiftAlreadyActive):
            shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        with pytest.raises(ShiftAlreadyActive):
            shift_service.start_shift(employee_id=employee.id, station_id=other_station.id)

    def test_new_shift_after_close(self, station, employee):
        first = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        shift_service.end_shift(first.id, actual_cash_cents=0)

        second = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        assert second.id != first.id
        assert second.status == "ACTIVE"


class TestEndShift:

    def test_close_with_shortage(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id, shift_date=BUSINESS_DAY)
        _post(employee, station, 500000)

        closure = shift_service.end_shift(shift.id, actual_cash_cents=495000, ended_by_user_id=employee.id)

        closed = closure.shift
        assert closed.status == "CLOSED"
        assert closed.expected_cash_cents == 500000
        assert closed.actual_cash_cents == 495000
        assert closed.cash_difference_cents == -5000
        assert shift_service.get_active_shift(employee.id) is None

    def test_close_by_employee_without_shift_id(self, station, employee):
        shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        closure = shift_service.end_shift(employee_id=employee.id, actual_cash_cents=0)
        assert closure.shift.status == "CLOSED"

    def test_closed_shift_is_terminal(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        shift_service.end_shift(shift.id, actual_cash_cents=0)

        with pytest.raises(NoActiveShift):
            shift_service.end_shift(shift.id, actual_cash_cents=0)
        with pytest.raises(NoActiveShift):
            shift_service.cancel_shift(shift.id)

    def test_online_difference_in_payload(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        _post(employee, station, 100000, online_cents=40000)

        closure = shift_service.end_shift(shift.id, actual_cash_cents=60000, actual_online_cents=38000)

        payload = closure.shift.to_dict()
        assert payload["actual_online_cents"] == 38000
        assert payload["online_difference_cents"] == -2000

    def test_online_difference_absent_without_count(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        _post(employee, station, 100000, online_cents=40000)

        closure = shift_service.end_shift(shift.id, actual_cash_cents=60000)
        assert closure.shift.to_dict()["online_difference_cents"] is None

    def test_negative_cash_rejected(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        with pytest.raises(ValidationError):
            shift_service.end_shift(shift.id, actual_cash_cents=-1)
        assert shift_service.get_shift(shift.id).status == "ACTIVE"

    def test_no_active_shift(self, station, employee):
        with pytest.raises(NoActiveShift):
            shift_service.end_shift(employee_id=employee.id, actual_cash_cents=100)

    def test_postings_only_reach_active_shift(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        shift_service.end_shift(shift.id, actual_cash_cents=0)

        assert _post(employee, station, 1000) is None
        assert shift_service.get_shift(shift.id).total_sales_cents == 0


class TestShiftCollectionHandover:

    def test_close_creates_handover_to_manager(self, station, manager, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id, shift_date=BUSINESS_DAY)
        _post(employee, station, 500000, online_cents=100000)

        closure = shift_service.end_shift(shift.id, actual_cash_cents=400000)

        handover = closure.handover
        assert handover is not None
        assert handover.handover_type == "shift_collection"
        assert handover.status == "PENDING"
        assert handover.from_user_id == employee.id
        assert handover.to_user_id == manager.id
        assert handover.expected_amount_cents == 400000
        assert handover.shift_id == shift.id
        assert handover.handover_date == BUSINESS_DAY

    def test_no_handover_without_manager(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        _post(employee, station, 1000)
        closure = shift_service.end_shift(shift.id, actual_cash_cents=1000)
        assert closure.handover is None

    def test_no_handover_when_nothing_expected_or_counted(self, station, manager, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        closure = shift_service.end_shift(shift.id, actual_cash_cents=0)
        assert closure.handover is None
        assert db.session.query(CashHandover).count() == 0

    def test_counted_cash_without_sales_seeds_handover(self, station, manager, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id, shift_date=BUSINESS_DAY)

        closure = shift_service.end_shift(shift.id, actual_cash_cents=50000)

        assert closure.shift.expected_cash_cents == 0
        assert closure.shift.cash_difference_cents == 50000
        handover = closure.handover
        assert handover is not None
        assert handover.to_user_id == manager.id
        assert handover.expected_amount_cents == 50000
        assert handover.status == "PENDING"

    def test_fully_digital_shift_still_hands_over_counted_cash(self, station, manager, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        _post(employee, station, 30000, online_cents=30000)

        closure = shift_service.end_shift(shift.id, actual_cash_cents=2000)

        assert closure.shift.expected_cash_cents == 0
        assert closure.handover.expected_amount_cents == 2000

    def test_handover_uses_policy_given_to_end_shift(self, monkeypatch, station, manager, employee):
        def _unexpected():
            raise AssertionError("policy should come from end_shift")

        monkeypatch.setattr(handover_service, "current_policy", _unexpected)
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        _post(employee, station, 1000)

        closure = shift_service.end_shift(shift.id, actual_cash_cents=1000, policy=SettlementPolicy())
        assert closure.handover.expected_amount_cents == 1000

    def test_policy_can_disable_handover_seeding(self, station, manager, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        _post(employee, station, 1000)

        closure = shift_service.end_shift(
            shift.id, actual_cash_cents=1000, policy=SettlementPolicy(auto_handover_on_shift_end=False)
        )
        assert closure.handover is None

    def test_no_handover_for_manager_own_shift(self, station, manager):
        shift = shift_service.start_shift(employee_id=manager.id, station_id=station.id)
        _post(manager, station, 1000)
        closure = shift_service.end_shift(shift.id, actual_cash_cents=1000)
        assert closure.handover is None


class TestCancelShift:

    def test_cancel_empty_shift(self, station, manager, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        cancelled = shift_service.cancel_shift(shift.id, cancelled_by_user_id=manager.id, reason="Opened by mistake")

        assert cancelled.status == "CANCELLED"
        assert cancelled.end_notes == "Opened by mistake"
        assert shift_service.get_active_shift(employee.id) is None

    def test_cannot_cancel_with_postings(self, station, employee):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id)
        _post(employee, station, 1000)

        with pytest.raises(ShiftNotCancellable):
            shift_service.cancel_shift(shift.id)
        assert shift_service.get_shift(shift.id).status == "ACTIVE"


# =============================================================================
# QUERIES
# =============================================================================


class TestShiftQueries:

    def _closed_shift(self, station, employee, sale, actual):
        shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id, shift_date=BUSINESS_DAY)
        _post(employee, station, sale)
        return shift_service.end_shift(shift.id, actual_cash_cents=actual).shift

    def test_summary_per_employee(self, station, employee, second_employee):
        self._closed_shift(station, employee, 100000, 99000)
        self._closed_shift(station, employee, 50000, 50000)
        self._closed_shift(station, second_employee, 20000, 21000)

        rows = shift_service.shift_summary(station.id, BUSINESS_DAY, BUSINESS_DAY)
        by_employee = {r["employee_id"]: r for r in rows}

        assert by_employee[employee.id]["shift_count"] == 2
        assert by_employee[employee.id]["total_sales_cents"] == 150000
        assert by_employee[employee.id]["total_difference_cents"] == -1000
        assert by_employee[second_employee.id]["total_difference_cents"] == 1000

    def test_discrepancies_above_threshold(self, station, employee, second_employee):
        small = self._closed_shift(station, employee, 100000, 95000)
        large = self._closed_shift(station, second_employee, 100000, 80000)

        flagged = shift_service.shift_discrepancies(station.id, threshold_cents=10000)
        assert [s.id for s in flagged] == [large.id]

        flagged = shift_service.shift_discrepancies(station.id, threshold_cents=1000)
        assert {s.id for s in flagged} == {small.id, large.id}

    def test_station_scoping(self, station, other_station, employee):
        self._closed_shift(station, employee, 100000, 0)
        assert shift_service.shift_discrepancies(other_station.id) == []
        assert station_service.get_station(other_station.id).code == "RR01"
