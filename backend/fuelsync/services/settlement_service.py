# Overview: Settlement Aggregator queries; read-only, no locks, no writes.

from __future__ import annotations

from datetime import date

from ..domain.settlement import (
    CreditEntryFact,
    CreditorFact,
    PaymentFact,
    ReadingFact,
    SettlementSummary,
    ShiftCashFact,
    build_settlement_summary,
    overdue_creditors as domain_overdue_creditors,
)
from ..domain.shifts import STATUS_CLOSED
from ..extensions import db
from ..models import CashHandover, Creditor, CreditLedgerEntry, DailyTransaction, NozzleReading, Shift
from ..policy import SettlementPolicy, current_policy
from ..time_utils import today
from ..validation import ValidationError
from .handover_service import handover_fact
from .station_service import get_station


def _closed_shifts(station_id: int, start: date, end: date) -> list[ShiftCashFact]:
    rows = (
        db.session.query(Shift)
        .filter(
            Shift.station_id == station_id,
            Shift.status == STATUS_CLOSED,
            Shift.shift_date >= start,
            Shift.shift_date <= end,
        )
        .order_by(Shift.id.asc())
        .all()
    )
    return [
        ShiftCashFact(
            shift_id=s.id,
            shift_date=s.shift_date,
            employee_id=s.employee_id,
            expected_cash_cents=s.expected_cash_cents,
            actual_cash_cents=s.actual_cash_cents or 0,
        )
        for s in rows
    ]


def _readings(station_id: int, start: date, end: date) -> list[ReadingFact]:
    rows = (
        db.session.query(NozzleReading)
        .filter(
            NozzleReading.station_id == station_id,
            NozzleReading.reading_date >= start,
            NozzleReading.reading_date <= end,
        )
        .order_by(NozzleReading.id.asc())
        .all()
    )
    return [
        ReadingFact(
            reading_date=r.reading_date,
            fuel_type=r.fuel_type,
            litres_sold=r.litres_sold,
            sale_value_cents=r.sale_value_cents,
        )
        for r in rows
    ]


def _payments(station_id: int, start: date, end: date) -> list[PaymentFact]:
    rows = (
        db.session.query(DailyTransaction)
        .filter(
            DailyTransaction.station_id == station_id,
            DailyTransaction.transaction_date >= start,
            DailyTransaction.transaction_date <= end,
        )
        .order_by(DailyTransaction.id.asc())
        .all()
    )
    return [
        PaymentFact(
            transaction_date=t.transaction_date,
            cash_cents=t.cash_cents,
            online_cents=t.online_cents,
            credit_cents=t.credit_cents,
        )
        for t in rows
    ]


def _creditors(station_id: int) -> list[CreditorFact]:
    rows = db.session.query(Creditor).filter(Creditor.station_id == station_id).order_by(Creditor.id.asc()).all()
    return [
        CreditorFact(
            creditor_id=c.id,
            name=c.name,
            credit_limit_cents=c.credit_limit_cents,
            credit_period_days=c.credit_period_days,
        )
        for c in rows
    ]


def _credit_entries(station_id: int, through: date) -> list[CreditEntryFact]:
    rows = (
        db.session.query(CreditLedgerEntry)
        .filter(
            CreditLedgerEntry.station_id == station_id,
            CreditLedgerEntry.entry_date <= through,
        )
        .order_by(CreditLedgerEntry.id.asc())
        .all()
    )
    return [
        CreditEntryFact(
            entry_id=e.id,
            creditor_id=e.creditor_id,
            entry_type=e.entry_type,
            delta_cents=e.delta_cents,
            entry_date=e.entry_date,
        )
        for e in rows
    ]


def build_settlement_report(
    station_id: int,
    start: date,
    end: date,
    *,
    as_of: date | None = None,
    review_percent: float | None = None,
    investigate_percent: float | None = None,
    policy: SettlementPolicy | None = None,
) -> SettlementSummary:
    """
    Aggregate a station's committed records for [start, end] (inclusive).

    Receivables are aged at as_of, which defaults to the range end. Two calls
    with no writes in between return identical summaries.

    Raises:
        ValidationError: bad range or thresholds
        NotFound: unknown station
    """
    if end < start:
        raise ValidationError("end must not be before start", field="end")

    policy = policy or current_policy()
    days = (end - start).days + 1
    if days > policy.max_report_days:
        raise ValidationError(
            f"Date range exceeds {policy.max_report_days} days",
            field="end",
            days=days,
        )
    try:
        policy = policy.with_variance(review_percent, investigate_percent)
    except ValueError as exc:
        raise ValidationError(str(exc), field="thresholds")

    as_of = as_of or end
    get_station(station_id)

    handovers = (
        db.session.query(CashHandover)
        .filter(
            CashHandover.station_id == station_id,
            CashHandover.handover_date >= start,
            CashHandover.handover_date <= end,
        )
        .order_by(CashHandover.id.asc())
        .all()
    )

    return build_settlement_summary(
        station_id=station_id,
        start=start,
        end=end,
        as_of=as_of,
        policy=policy,
        shifts=_closed_shifts(station_id, start, end),
        handovers=[handover_fact(h) for h in handovers],
        readings=_readings(station_id, start, end),
        payments=_payments(station_id, start, end),
        creditors=_creditors(station_id),
        credit_entries=_credit_entries(station_id, max(as_of, end)),
    )


def overdue_creditors(
    station_id: int,
    *,
    as_of: date | None = None,
    policy: SettlementPolicy | None = None,
) -> list[dict]:
    """
    Creditors at a station whose oldest unsettled credit is past its credit
    period at as_of (default today). Creditors without a period use the
    current aging window.
    """
    policy = policy or current_policy()
    as_of = as_of or today()
    get_station(station_id)
    return domain_overdue_creditors(
        _creditors(station_id),
        _credit_entries(station_id, as_of),
        as_of,
        policy.aging,
    )
