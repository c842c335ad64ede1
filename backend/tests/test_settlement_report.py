"""
Settlement Aggregator tests.

Verifies:
- variance percent and OK / REVIEW / INVESTIGATE classification
- every day in the range appears, with or without shifts
- receivables are aged from the oldest unsettled credit (settlements pay oldest first)
- a creditor is overdue once its oldest unsettled credit outlives its credit period
- owner-confirmed channel totals are compared with the employee-reported ones
- payment verification reports a mismatch instead of raising
- reports are read-only and repeatable
"""

from datetime import date
from decimal import Decimal

import pytest

from fuelsync.domain.allocation import CreditAllocationRequest, PaymentBreakdown
from fuelsync.domain.settlement import (
    BUCKET_CURRENT,
    BUCKET_OVER_30,
    BUCKET_OVER_60,
    BUCKET_OVERDUE,
    VARIANCE_INVESTIGATE,
    VARIANCE_OK,
    VARIANCE_REVIEW,
    ChannelAmounts,
    CreditEntryFact,
    CreditorFact,
    PaymentFact,
    ShiftCashFact,
    aging_bucket,
    build_settlement_summary,
    channel_variances,
    classify_variance,
    credit_terms,
    daily_cash_rows,
    income_statement,
    oldest_unsettled_credit_date,
    overdue_creditors,
    receivables_aging,
    reported_channels,
    variance_percent,
    verify_totals,
)
from fuelsync.errors import NotFound
from fuelsync.extensions import db
from fuelsync.models import AuditEvent
from fuelsync.policy import AgingThresholds, SettlementPolicy, VarianceThresholds
from fuelsync.services import reading_service, settlement_service, shift_service, transaction_service
from fuelsync.validation import ValidationError

BUSINESS_DAY = date(2026, 3, 1)


def _credit(entry_id, creditor_id, amount, on):
    return CreditEntryFact(entry_id, creditor_id, "CREDIT", amount, on)


def _settlement(entry_id, creditor_id, amount, on):
    return CreditEntryFact(entry_id, creditor_id, "SETTLEMENT", -amount, on)


# =============================================================================
# VARIANCE
# =============================================================================


class TestVariance:

    def test_percent_of_expected(self):
        assert variance_percent(-5000, 500000) == -1.0
        assert variance_percent(1, 3) == 33.33
        assert variance_percent(2, 3) == 66.67

    @pytest.mark.parametrize(
        "variance,expected_percent",
        [(0, 0.0), (500, 100.0), (-500, -100.0)],
    )
    def test_nothing_expected(self, variance, expected_percent):
        assert variance_percent(variance, 0) == expected_percent

    @pytest.mark.parametrize(
        "percent,status",
        [
            (-1.0, VARIANCE_OK),
            (2.0, VARIANCE_OK),
            (-2.01, VARIANCE_REVIEW),
            (5.0, VARIANCE_REVIEW),
            (5.01, VARIANCE_INVESTIGATE),
            (-100.0, VARIANCE_INVESTIGATE),
        ],
    )
    def test_classification(self, percent, status):
        assert classify_variance(percent, VarianceThresholds()) == status

    def test_every_day_emitted(self):
        shifts = [ShiftCashFact(1, BUSINESS_DAY, 7, 500000, 495000)]
        rows = daily_cash_rows(
            date(2026, 2, 28), date(2026, 3, 2), shifts, [], VarianceThresholds()
        )

        assert [r["date"] for r in rows] == ["2026-02-28", "2026-03-01", "2026-03-02"]
        assert rows[0]["shifts_closed"] == 0
        assert rows[0]["variance_status"] == VARIANCE_OK
        assert rows[1]["variance_cents"] == -5000
        assert rows[1]["variance_percent"] == -1.0
        assert rows[1]["variance_status"] == VARIANCE_OK

    def test_several_shifts_on_one_day(self):
        shifts = [
            ShiftCashFact(1, BUSINESS_DAY, 7, 100000, 100000),
            ShiftCashFact(2, BUSINESS_DAY, 8, 100000, 90000),
        ]
        (row,) = daily_cash_rows(BUSINESS_DAY, BUSINESS_DAY, shifts, [], VarianceThresholds())

        assert row["shifts_closed"] == 2
        assert row["expected_cash_cents"] == 200000
        assert row["variance_percent"] == -5.0
        assert row["variance_status"] == VARIANCE_REVIEW


# =============================================================================
# VERIFICATION / INCOME
# =============================================================================


class TestVerification:

    def test_match_within_tolerance(self):
        breakdown = {"cash_received_cents": 277501, "online_received_cents": 100000, "credit_pending_cents": 100000}
        result = verify_totals(breakdown, 477500, tolerance_cents=1)
        assert result["match"] is True
        assert result["difference_cents"] == 1

    def test_mismatch_is_reported(self):
        breakdown = {"cash_received_cents": 200000, "online_received_cents": 0, "credit_pending_cents": 0}
        result = verify_totals(breakdown, 477500, tolerance_cents=1)
        assert result["match"] is False
        assert result["difference_cents"] == -277500

    def test_income_statement_counts_every_variance(self):
        rows = [{"variance_cents": -500}, {"variance_cents": 300}, {"variance_cents": 0}]
        statement = income_statement(100000, 20000, rows)

        assert statement["cash_variance_abs_cents"] == 800
        assert statement["net_cash_income_cents"] == 79200


# =============================================================================
# RECEIVABLES AGING
# =============================================================================


class TestReceivablesAging:

    @pytest.mark.parametrize(
        "age,bucket",
        [(0, BUCKET_CURRENT), (30, BUCKET_CURRENT), (31, BUCKET_OVERDUE), (60, BUCKET_OVERDUE), (61, BUCKET_OVER_60)],
    )
    def test_bucket_boundaries(self, age, bucket):
        assert aging_bucket(age, AgingThresholds()) == bucket

    def test_settlements_pay_oldest_credit_first(self):
        entries = [
            _credit(1, 1, 10000, date(2026, 1, 1)),
            _credit(2, 1, 20000, date(2026, 2, 15)),
            _settlement(3, 1, 10000, date(2026, 3, 1)),
        ]
        assert oldest_unsettled_credit_date(entries) == date(2026, 2, 15)

    def test_partly_settled_credit_is_still_oldest(self):
        entries = [
            _credit(1, 1, 10000, date(2026, 1, 1)),
            _settlement(2, 1, 9999, date(2026, 3, 1)),
        ]
        assert oldest_unsettled_credit_date(entries) == date(2026, 1, 1)

    def test_aging_buckets(self):
        creditors = [
            CreditorFact(1, "City Transport Co", 500000),
            CreditorFact(2, "Metro Logistics", 0),
            CreditorFact(3, "Farm Co-op", 0),
            CreditorFact(4, "Paid Up Ltd", 0),
        ]
        entries = [
            _credit(1, 1, 10000, date(2026, 1, 1)),
            _credit(2, 1, 20000, date(2026, 2, 15)),
            _settlement(3, 1, 10000, date(2026, 3, 1)),
            _credit(4, 2, 5000, date(2026, 1, 10)),
            _credit(5, 3, 3000, date(2026, 3, 20)),
            _credit(6, 3, 7000, date(2026, 4, 5)),
            _credit(7, 4, 1000, date(2026, 1, 1)),
            _settlement(8, 4, 1000, date(2026, 1, 20)),
        ]

        aging = receivables_aging(creditors, entries, date(2026, 3, 31), AgingThresholds())

        assert aging["total_outstanding_cents"] == 28000
        assert aging["buckets"] == {
            BUCKET_CURRENT: 3000,
            BUCKET_OVERDUE: 20000,
            BUCKET_OVER_30: 25000,
            BUCKET_OVER_60: 5000,
        }
        rows = {r["creditor_id"]: r for r in aging["creditors"]}
        assert set(rows) == {1, 2, 3}
        assert rows[1]["age_days"] == 44
        assert rows[1]["oldest_unsettled_date"] == "2026-02-15"
        assert rows[2]["age_days"] == 80
        assert rows[3]["outstanding_cents"] == 3000

    def test_end_before_start(self):
        with pytest.raises(ValueError):
            build_settlement_summary(
                station_id=1,
                start=BUSINESS_DAY,
                end=date(2026, 2, 1),
                as_of=BUSINESS_DAY,
                policy=SettlementPolicy(),
            )



class TestOverdueCreditors:

    def _creditors(self):
        return [
            CreditorFact(1, "City Transport Co", 0, credit_period_days=15),
            CreditorFact(2, "Metro Logistics", 0),
            CreditorFact(3, "Farm Co-op", 0, credit_period_days=90),
            CreditorFact(4, "Cash On Delivery Ltd", 0, credit_period_days=0),
        ]

    def test_credit_terms(self):
        assert credit_terms(None, 30, date(2026, 3, 31)) == (None, 0)
        assert credit_terms(date(2026, 3, 1), 30, date(2026, 3, 31)) == (date(2026, 3, 31), 0)
        assert credit_terms(date(2026, 3, 1), 30, date(2026, 4, 2)) == (date(2026, 3, 31), 2)

    def test_period_drives_overdue(self):
        entries = [
            _credit(1, 1, 10000, date(2026, 3, 1)),
            _credit(2, 2, 5000, date(2026, 3, 1)),
            _credit(3, 3, 7000, date(2026, 1, 1)),
            _credit(4, 4, 2000, date(2026, 3, 30)),
        ]

        rows = overdue_creditors(self._creditors(), entries, date(2026, 3, 31), AgingThresholds())

        assert [r["creditor_id"] for r in rows] == [1, 4]
        assert rows[0]["due_date"] == "2026-03-16"
        assert rows[0]["days_past_due"] == 15
        assert rows[1]["credit_period_days"] == 0
        assert rows[1]["days_past_due"] == 1

    def test_default_period_is_current_window(self):
        entries = [_credit(1, 2, 5000, date(2026, 1, 1))]

        rows = overdue_creditors(self._creditors(), entries, date(2026, 3, 31), AgingThresholds(current_max_days=45))

        assert rows[0]["creditor_id"] == 2
        assert rows[0]["credit_period_days"] == 45
        assert rows[0]["days_past_due"] == 44

    def test_settled_credit_is_never_overdue(self):
        entries = [
            _credit(1, 1, 10000, date(2026, 1, 1)),
            _settlement(2, 1, 10000, date(2026, 3, 30)),
        ]
        assert overdue_creditors(self._creditors(), entries, date(2026, 3, 31), AgingThresholds()) == []

    def test_aging_rows_carry_terms(self):
        entries = [_credit(1, 3, 7000, date(2026, 1, 1))]
        aging = receivables_aging(self._creditors(), entries, date(2026, 3, 31), AgingThresholds())

        row = aging["creditors"][0]
        assert row["bucket"] == BUCKET_OVER_60
        assert row["credit_period_days"] == 90
        assert row["due_date"] == "2026-04-01"
        assert row["days_past_due"] == 0

    def test_from_committed_ledger(self, station, nozzle, petrol_price, creditor):
        reading = reading_service.record_reading(
            nozzle_id=nozzle.id, reading_value=Decimal("150.000"), reading_date=BUSINESS_DAY
        )
        transaction_service.create_transaction(
            station_id=station.id,
            transaction_date=BUSINESS_DAY,
            reading_ids=[reading.id],
            breakdown=PaymentBreakdown(377500, 0, 100000),
            allocations=[CreditAllocationRequest(creditor.id, 100000)],
        )

        assert settlement_service.overdue_creditors(station.id, as_of=date(2026, 3, 31)) == []

        rows = settlement_service.overdue_creditors(station.id, as_of=date(2026, 4, 15))
        assert len(rows) == 1
        assert rows[0]["creditor_id"] == creditor.id
        assert rows[0]["outstanding_cents"] == 100000
        assert rows[0]["days_past_due"] == 15


# =============================================================================
# OWNER SETTLEMENT VARIANCE
# =============================================================================


class TestChannelVariances:

    def test_variance_per_channel(self):
        channels = channel_variances(
            ChannelAmounts(277500, 100000, 100000),
            ChannelAmounts(272500, 100000, 90000),
            VarianceThresholds(),
        )

        assert channels["cash"]["variance_cents"] == -5000
        assert channels["cash"]["variance_percent"] == -1.8
        assert channels["cash"]["variance_status"] == VARIANCE_OK
        assert channels["online"]["variance_cents"] == 0
        assert channels["credit"]["variance_percent"] == -10.0
        assert channels["credit"]["variance_status"] == VARIANCE_INVESTIGATE

    def test_reported_channels_sum_payments(self):
        reported = reported_channels([
            PaymentFact(BUSINESS_DAY, 1000, 200, 0),
            PaymentFact(BUSINESS_DAY, 500, 0, 300),
        ])
        assert reported == ChannelAmounts(1500, 200, 300)

    def test_confirmed_without_report(self):
        channels = channel_variances(ChannelAmounts(0, 0, 0), ChannelAmounts(0, 500, 0), VarianceThresholds())
        assert channels["online"]["variance_percent"] == 100.0
        assert channels["online"]["variance_status"] == VARIANCE_INVESTIGATE

# =============================================================================
# REPORT FROM COMMITTED RECORDS
# =============================================================================


@pytest.fixture
def settled_day(station, manager, employee, nozzle, petrol_price, creditor):
    """One closed shift: 477500 sold, 100000 online, 100000 on credit, 5000 short."""
    reading = reading_service.record_reading(
        nozzle_id=nozzle.id, reading_value=Decimal("150.000"), reading_date=BUSINESS_DAY
    )
    shift = shift_service.start_shift(employee_id=employee.id, station_id=station.id, shift_date=BUSINESS_DAY)
    transaction_service.create_transaction(
        station_id=station.id,
        transaction_date=BUSINESS_DAY,
        reading_ids=[reading.id],
        breakdown=PaymentBreakdown(277500, 100000, 100000),
        allocations=[CreditAllocationRequest(creditor.id, 100000)],
        created_by_user_id=employee.id,
    )
    shift_service.end_shift(shift.id, actual_cash_cents=272500, ended_by_user_id=employee.id)
    return shift


class TestSettlementReport:

    def test_report(self, station, settled_day):
        summary = settlement_service.build_settlement_report(
            station.id, date(2026, 2, 28), date(2026, 3, 2)
        ).to_dict()

        assert summary["period"] == {"start": "2026-02-28", "end": "2026-03-02", "as_of": "2026-03-02", "days": 3}
        assert summary["summary_metrics"]["readings_count"] == 1
        assert summary["summary_metrics"]["total_litres"] == "50.000"
        assert summary["summary_metrics"]["total_sale_value_cents"] == 477500
        assert summary["verification"]["match"] is True

        day = summary["daily"][1]
        assert day["expected_cash_cents"] == 277500
        assert day["actual_cash_cents"] == 272500
        assert day["variance_cents"] == -5000
        assert day["variance_percent"] == -1.8
        assert day["variance_status"] == VARIANCE_OK
        assert day["handovers"]["pending"] == 1

        assert summary["income_statement"]["net_cash_income_cents"] == 477500 - 100000 - 5000
        assert summary["receivables_aging"]["buckets"][BUCKET_CURRENT] == 100000
        assert summary["creditor_settlements"][0]["credited_cents"] == 100000
        assert summary["cash_flow"]["shift_collection"]["expected_cents"] == 277500

    def test_as_of_ages_receivables(self, station, settled_day):
        summary = settlement_service.build_settlement_report(
            station.id, BUSINESS_DAY, BUSINESS_DAY, as_of=date(2026, 4, 15)
        )
        aging = summary.receivables_aging
        assert aging["buckets"][BUCKET_OVERDUE] == 100000
        assert aging["creditors"][0]["age_days"] == 45

    def test_threshold_overrides(self, station, settled_day):
        summary = settlement_service.build_settlement_report(
            station.id, BUSINESS_DAY, BUSINESS_DAY, review_percent=0.5, investigate_percent=1.5
        )
        assert summary.daily[0]["variance_status"] == VARIANCE_INVESTIGATE
        assert summary.thresholds["variance_review_percent"] == 0.5

    def test_repeatable_and_read_only(self, station, settled_day):
        events_before = db.session.query(AuditEvent).count()

        first = settlement_service.build_settlement_report(station.id, BUSINESS_DAY, BUSINESS_DAY).to_dict()
        second = settlement_service.build_settlement_report(station.id, BUSINESS_DAY, BUSINESS_DAY).to_dict()

        assert first == second
        assert db.session.query(AuditEvent).count() == events_before

    def test_empty_station(self, other_station):
        summary = settlement_service.build_settlement_report(other_station.id, BUSINESS_DAY, BUSINESS_DAY)
        assert summary.settlement_summary["days_with_shifts"] == 0
        assert summary.verification["match"] is True
        assert summary.receivables_aging["total_outstanding_cents"] == 0

    def test_end_before_start(self, station):
        with pytest.raises(ValidationError):
            settlement_service.build_settlement_report(station.id, BUSINESS_DAY, date(2026, 2, 1))

    def test_range_too_long(self, station):
        with pytest.raises(ValidationError):
            settlement_service.build_settlement_report(station.id, date(2025, 1, 1), date(2026, 1, 2))

    def test_thresholds_out_of_order(self, station):
        with pytest.raises(ValidationError):
            settlement_service.build_settlement_report(
                station.id, BUSINESS_DAY, BUSINESS_DAY, review_percent=6, investigate_percent=5
            )

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_thresholds(self, station, value):
        with pytest.raises(ValidationError):
            settlement_service.build_settlement_report(
                station.id, BUSINESS_DAY, BUSINESS_DAY, review_percent=value
            )
        with pytest.raises(ValueError):
            VarianceThresholds(review_percent=2.0, investigate_percent=value)

    def test_unknown_station(self, db_session):
        with pytest.raises(NotFound):
            settlement_service.build_settlement_report(99999, BUSINESS_DAY, BUSINESS_DAY)
